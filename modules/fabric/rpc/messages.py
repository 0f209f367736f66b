"""
RPC Wire Messages.

The two shapes every transport moves for a request/response call:

    RpcRequest  {"pattern", "payload", "correlation": {"id", "parentId"}}
    RpcReply    {"pattern", "correlationId", "ok", "data" | "error"}

Errors travel as ErrorDetail (code, message, details) and are rebuilt on
the calling side as the matching typed exception.
"""

from typing import Any

from pydantic import Field, model_validator

from modules.fabric.contracts.base import ContractModel
from modules.fabric.contracts.correlation import CorrelationContext
from modules.fabric.core.exceptions import ApplicationError, error_from_detail


class ErrorDetail(ContractModel):
    """Error detail structure."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class RpcRequest(ContractModel):
    pattern: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)
    correlation: CorrelationContext | None = None


class RpcReply(ContractModel):
    pattern: str
    correlation_id: str | None = None
    ok: bool
    data: Any = None
    error: ErrorDetail | None = None

    @model_validator(mode="after")
    def _error_iff_failed(self) -> "RpcReply":
        if self.ok and self.error is not None:
            raise ValueError("successful reply must not carry an error")
        if not self.ok and self.error is None:
            raise ValueError("failed reply must carry an error")
        return self

    @classmethod
    def success(cls, pattern: str, correlation_id: str | None, data: Any) -> "RpcReply":
        return cls(pattern=pattern, correlation_id=correlation_id, ok=True, data=data)

    @classmethod
    def failure(cls, pattern: str, correlation_id: str | None, exc: ApplicationError) -> "RpcReply":
        return cls(
            pattern=pattern,
            correlation_id=correlation_id,
            ok=False,
            error=ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
        )

    def raise_for_error(self) -> None:
        """Raise the typed exception carried by a failed reply."""
        if self.ok or self.error is None:
            return
        raise error_from_detail(self.error.code, self.error.message, self.error.details)
