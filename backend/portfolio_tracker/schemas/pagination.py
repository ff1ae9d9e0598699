# backend/portfolio_tracker/schemas/pagination.py
"""
Pagination metadata for list endpoints.

Usage:
    @router.get("/transactions")
    def list_transactions(
        skip: int = Query(default=0, ge=0),
        limit: int = Query(default=100, ge=1, le=MAX_LIST_LIMIT),
    ):
        items, total = service.list_transactions(db, skip=skip, limit=limit)
        return {"items": items, "pagination": PaginationMeta.create(total, skip, limit)}
"""

from pydantic import BaseModel, Field, computed_field


class PaginationMeta(BaseModel):
    """
    Pagination metadata for list responses.

    Attributes:
        total: Total number of items matching the query
        skip: Number of items skipped (offset)
        limit: Maximum items returned per page
        page: Current page number (1-indexed, computed)
        pages: Total number of pages (computed)
        has_next: Whether there are more pages (computed)
    """

    total: int = Field(..., ge=0, description="Total number of items matching query")
    skip: int = Field(..., ge=0, description="Number of items skipped (offset)")
    limit: int = Field(..., ge=1, description="Maximum items per page")

    @computed_field
    @property
    def page(self) -> int:
        """Current page number (1-indexed)."""
        return (self.skip // self.limit) + 1

    @computed_field
    @property
    def pages(self) -> int:
        """Total number of pages."""
        if self.total <= 0:
            return 1
        return (self.total + self.limit - 1) // self.limit  # Ceiling division

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.skip + self.limit < self.total

    @classmethod
    def create(cls, total: int, skip: int, limit: int) -> "PaginationMeta":
        return cls(total=total, skip=skip, limit=limit)
