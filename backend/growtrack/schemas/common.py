"""Common schemas used across the application."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=PaginatedResponse[PlantSummary]

    Returns:
        {
            "items": [...],
            "total": 150,
            "limit": 50,
            "offset": 0
        }
    """
    items: list[T]
    total: int
    limit: int
    offset: int


class ItemOutcomeOut(BaseModel):
    item: str
    ok: bool
    entity_id: str | None = None
    error_code: str | None = None
    message: str | None = None


class BulkResultOut(BaseModel):
    """Per-item report for partial-failure bulk operations."""
    succeeded: int
    failed: int
    items: list[ItemOutcomeOut]

    @classmethod
    def from_result(cls, result) -> "BulkResultOut":
        return cls(
            succeeded=len(result.succeeded),
            failed=len(result.failed),
            items=[ItemOutcomeOut(**vars(o)) for o in result.outcomes],
        )
