"""Shared helpers for API route modules."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse

from civictrack.auth import can_view_full
from civictrack.db_query import DEFAULT_PAGE_SIZE, IssueFilters
from civictrack.errors import ValidationError
from civictrack.types.api import ErrorResponse

if TYPE_CHECKING:
    from starlette.requests import Request

    from civictrack.auth import Actor
    from civictrack.core import Issue
    from civictrack.types.api import PageResult

logger = logging.getLogger(__name__)


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    if status_code >= 500:
        logger.error("API error [%s] %s: %s", status_code, code, message, extra={"code": code, "status_code": status_code})
    else:
        logger.warning("API error [%s] %s: %s", status_code, code, message, extra={"code": code, "status_code": status_code})
    body = ErrorResponse(success=False, message=message, code=code, details=details or {})
    return JSONResponse(body, status_code=status_code)


async def _parse_json_body(request: Request) -> dict[str, Any]:
    """Parse a JSON object body, raising ValidationError on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _safe_int(value: str | None, name: str, default: int) -> int:
    """Parse a query-param string to int, raising ValidationError on failure."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        raise ValidationError.for_field(name, f'"{value}" is not an integer') from None


def _expected_version(raw: Any) -> int | None:
    """Parse an optional ``version`` field sent with a mutation."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError.for_field("version", "must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        return _safe_int(raw, "version", 0)
    raise ValidationError.for_field("version", "must be an integer")


def _parse_listing(params: Mapping[str, str], **overrides: Any) -> tuple[IssueFilters, dict[str, Any]]:
    """Extract filters and sort/page options from query params.

    *overrides* replace filter values taken from the query (e.g. ``owner_id``).
    """
    raw = {k: params.get(k) for k in ("status", "priority", "category", "ward", "search")}
    raw.update(overrides)
    filters = IssueFilters.from_params(raw)
    options = {
        "sort": params.get("sort") or "date",
        "order": (params.get("order") or "desc").lower(),
        "page": _safe_int(params.get("page"), "page", 1),
        "limit": _safe_int(params.get("limit"), "limit", DEFAULT_PAGE_SIZE),
    }
    return filters, options


def _issue_view(issue: Issue, actor: Actor | None) -> dict[str, Any]:
    """Full detail for owner/staff/admin, the public projection for everyone else."""
    if can_view_full(actor, issue):
        return dict(issue.to_dict())
    return dict(issue.to_public_dict())


def _page_response(page: PageResult, actor: Actor | None) -> JSONResponse:
    return JSONResponse(
        {
            "items": [_issue_view(i, actor) for i in page["items"]],
            "total": page["total"],
            "page": page["page"],
            "limit": page["limit"],
        }
    )
