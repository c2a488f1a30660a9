"""
Pagination metadata.

Pages are 1-indexed. A page past the end clamps to the last page; an
empty result has a single (empty) page 1.
"""

import math

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)
    has_next: bool
    has_prev: bool
    next_page: int | None = None
    prev_page: int | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def paginate(total: int, page: int, limit: int) -> PaginationMeta:
    """
    Compute pagination metadata for `total` items.

    Args:
        total: Number of matching items
        page: Requested page (1-indexed)
        limit: Items per page

    Returns:
        PaginationMeta with the clamped page
    """
    limit = max(1, limit)
    total = max(0, total)
    pages = math.ceil(total / limit)
    current = min(max(1, page), max(1, pages))

    return PaginationMeta(
        page=current,
        limit=limit,
        total=total,
        pages=pages,
        has_next=current < pages,
        has_prev=current > 1,
        next_page=current + 1 if current < pages else None,
        prev_page=current - 1 if current > 1 else None,
    )
