"""TypedDicts for query results and HTTP API responses."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

from civictrack.types.core import UserDict


class PageResult(TypedDict):
    """Envelope returned by paginated issue queries.

    ``items`` holds ``Issue`` objects in the store layer; the API serializes them.
    """

    items: list[Any]
    total: int
    page: int
    limit: int


class StatsResult(TypedDict):
    total: int
    pending: int
    in_progress: int
    resolved: int
    high_priority_open: int
    by_category: NotRequired[dict[str, int]]


class AuthResponse(TypedDict):
    token: str
    user: UserDict


class ErrorResponse(TypedDict):
    """Standard error envelope returned by every failing API call."""

    success: bool
    message: str
    code: str
    details: dict[str, Any]
