"""
Correlation Context.

An immutable {id, parentId?} value created once per externally triggered
operation and copied into every RPC call, every response and every domain
event caused by that operation. Following parentId links reconstructs a
trace across asynchronous hops.

Derivation policy for sub-calls:
    - reuse the same id (the default), or
    - mint a fresh id with parentId set to the triggering id, when the
      sub-call's result must be distinguishable from its parent's.

The context is observability only. It never gates control flow, and a
missing context degrades logs, not correctness.

Usage:
    from modules.fabric.contracts.correlation import (
        CorrelationContext,
        correlation_scope,
        current_correlation,
    )

    ctx = CorrelationContext.from_headers(headers) or CorrelationContext.new()
    with correlation_scope(ctx):
        await client.call(TasksPattern.CREATE, payload)   # carries ctx.id
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from pydantic import Field, field_validator

from modules.fabric.contracts.base import ContractModel
from modules.fabric.core.utils import new_id

REQUEST_ID_HEADER = "x-request-id"
PARENT_REQUEST_ID_HEADER = "x-parent-request-id"

# Accepted on input only, for producers that name the header differently.
_REQUEST_ID_FALLBACK_HEADERS = ("request-id", "x-correlation-id")

_current: ContextVar["CorrelationContext | None"] = ContextVar(
    "fabric_correlation", default=None,
)


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


class CorrelationContext(ContractModel):
    """Opaque correlation id plus optional parent id."""

    id: str = Field(min_length=1)
    parent_id: str | None = None

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("correlation id must not be blank")
        return value

    @classmethod
    def new(cls) -> "CorrelationContext":
        """Start a fresh chain for an externally triggered operation."""
        return cls(id=new_id())

    def derive(self, *, distinct: bool = False) -> "CorrelationContext":
        """
        Context for a sub-call made because of this one.

        Args:
            distinct: Mint a new id (parentId = this id) instead of reusing
                this one. Use it when the sub-call's result must be told
                apart from its parent's.
        """
        if not distinct:
            return self.model_copy()
        return CorrelationContext(id=new_id(), parent_id=self.id)

    def to_headers(self) -> dict[str, str]:
        """Transport headers carrying this context."""
        headers = {REQUEST_ID_HEADER: self.id}
        if self.parent_id:
            headers[PARENT_REQUEST_ID_HEADER] = self.parent_id
        return headers

    @classmethod
    def from_headers(cls, headers: Mapping[str, Any] | None) -> "CorrelationContext | None":
        """
        Read a context from transport headers.

        Header names are matched case-insensitively. Blank values count as
        absent. Returns None when no id is present.
        """
        if not headers:
            return None
        lowered = {str(k).lower(): v for k, v in headers.items()}

        request_id = _clean(lowered.get(REQUEST_ID_HEADER))
        if request_id is None:
            for name in _REQUEST_ID_FALLBACK_HEADERS:
                request_id = _clean(lowered.get(name))
                if request_id:
                    break
        if request_id is None:
            return None

        return cls(id=request_id, parent_id=_clean(lowered.get(PARENT_REQUEST_ID_HEADER)))


def current_correlation() -> CorrelationContext | None:
    """The context bound by the innermost correlation_scope, if any."""
    return _current.get()


@contextmanager
def correlation_scope(context: CorrelationContext | None) -> Iterator[CorrelationContext | None]:
    """
    Make `context` current and bind it into structlog for the block.

    Passing None is allowed for background work with no originating
    request; current_correlation() then returns None inside the block.
    """
    token = _current.set(context)
    bound: dict[str, str] = {}
    if context is not None:
        bound["correlation_id"] = context.id
        if context.parent_id:
            bound["parent_correlation_id"] = context.parent_id
    tokens = structlog.contextvars.bind_contextvars(**bound)
    try:
        yield context
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
        _current.reset(token)
