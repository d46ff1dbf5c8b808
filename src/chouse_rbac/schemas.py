"""Schemas shared across services."""

from typing import Generic, NamedTuple, TypeVar

T = TypeVar("T")


class PaginatedResult(NamedTuple, Generic[T]):
    """Named return type for paginated service queries."""

    items: list[T]
    total: int


def clamp_page(page: int, limit: int, max_limit: int) -> tuple[int, int]:
    """Normalise a 1-based page number and cap *limit* at *max_limit*."""
    return max(page, 1), min(max(limit, 1), max_limit)
