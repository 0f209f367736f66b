"""
Pagination Utilities.

Standardized page-number pagination shared by every list-returning RPC
pattern across services. Every list result is a PaginatedEnvelope:

    {"data": [...], "total": 25, "page": 3, "size": 10, "totalPages": 3}

totalPages is always derived from total and size. It is emitted on the
wire but never accepted as input, so a caller and a callee cannot disagree
about it. Requesting a page past the last one is not an error; it yields
an empty data list with the real total.
"""

import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, Field, computed_field, model_validator

from modules.fabric.contracts.base import ContractModel

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_SIZE = 10


# =============================================================================
# Pagination Parameters
# =============================================================================


@dataclass(frozen=True)
class PaginationParams:
    """Clamped page/size pair. Build it with from_request()."""

    page: int
    size: int

    @property
    def offset(self) -> int:
        """Number of items skipped before this page."""
        return (self.page - 1) * self.size

    @classmethod
    def from_request(
        cls,
        page: int | None = None,
        size: int | None = None,
        default_size: int = DEFAULT_SIZE,
        max_size: int | None = None,
    ) -> "PaginationParams":
        """
        Apply defaults and clamp both values to be at least 1.

        Args:
            page: Requested page (1-based), None for the first page
            size: Requested page size, None for the service default
            default_size: Service-defined default page size
            max_size: Optional upper bound for the page size
        """
        effective_page = page if page is not None else DEFAULT_PAGE
        effective_size = size if size is not None else default_size

        effective_page = max(1, effective_page)
        effective_size = max(1, effective_size)
        if max_size is not None:
            effective_size = min(effective_size, max_size)

        return cls(page=effective_page, size=effective_size)


def total_pages_for(total: int, size: int) -> int:
    """ceil(total / size); zero exactly when total is zero."""
    return math.ceil(total / size) if total > 0 else 0


# =============================================================================
# Envelope
# =============================================================================


class PaginatedEnvelope(ContractModel, Generic[T]):
    """
    List result wrapper used by every service.

    `limit` is accepted as an input alias of `size` because some callers
    still send it. `totalPages` is ignored on input and recomputed.
    """

    data: list[T]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    size: int = Field(ge=1, validation_alias=AliasChoices("size", "limit"))

    @model_validator(mode="before")
    @classmethod
    def _discard_total_pages(cls, value: Any) -> Any:
        if isinstance(value, dict) and ("totalPages" in value or "total_pages" in value):
            value = {k: v for k, v in value.items() if k not in ("totalPages", "total_pages")}
        return value

    @computed_field(alias="totalPages")
    @property
    def total_pages(self) -> int:
        return total_pages_for(self.total, self.size)


# =============================================================================
# Builders
# =============================================================================


def build_envelope(items: Sequence[T], total: int, params: PaginationParams) -> PaginatedEnvelope[T]:
    """Wrap an already-sliced page of items."""
    return PaginatedEnvelope(
        data=list(items),
        total=total,
        page=params.page,
        size=params.size,
    )


def paginate(items: Sequence[T], params: PaginationParams) -> PaginatedEnvelope[T]:
    """
    Paginate an in-memory sequence.

    Usage:
        params = PaginationParams.from_request(page=payload.page, size=payload.size)
        return paginate(sorted_tasks, params)
    """
    page_items = items[params.offset:params.offset + params.size]
    return build_envelope(page_items, len(items), params)


async def paginate_query(
    query_func: Callable[[int, int], Awaitable[Sequence[T]]],
    count_func: Callable[[], Awaitable[int]],
    params: PaginationParams,
) -> PaginatedEnvelope[T]:
    """
    Execute a paginated query against a storage collaborator.

    Args:
        query_func: Async function taking (limit, offset) and returning items
        count_func: Async function returning the total number of items
        params: Clamped pagination parameters

    Usage:
        envelope = await paginate_query(
            query_func=lambda limit, offset: repo.list(limit=limit, offset=offset),
            count_func=repo.count,
            params=params,
        )
    """
    items = await query_func(params.size, params.offset)
    total = await count_func()
    return build_envelope(items, total, params)
