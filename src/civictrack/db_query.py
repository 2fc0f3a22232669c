"""QueryMixin: filtered, sorted, paginated issue listings and status statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from civictrack.db_base import DBMixinProtocol
from civictrack.errors import ValidationError
from civictrack.types.api import PageResult, StatsResult
from civictrack.workflow import CATEGORIES, HIGH_PRIORITIES, IN_PROGRESS, PENDING, PRIORITIES, PRIORITY_RANK, RESOLVED, normalize_status

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SORT_FIELDS = ("date", "priority", "status")
SORT_ORDERS = ("asc", "desc")

_PRIORITY_RANK_SQL = "CASE priority " + " ".join(f"WHEN '{p}' THEN {r}" for p, r in PRIORITY_RANK.items()) + " ELSE 0 END"
_SORT_EXPR = {"date": "created_at", "priority": _PRIORITY_RANK_SQL, "status": "status"}


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class IssueFilters:
    """Conjunctive listing filters. ``None`` means no constraint."""

    status: str | None = None
    priority: str | None = None
    category: str | None = None
    ward: str | None = None
    owner_id: str | None = None
    search: str | None = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> IssueFilters:
        """Build from query-string style values, validating enum members.

        Empty strings are treated as absent, matching how list screens send
        unset dropdowns.
        """

        def _get(name: str) -> str | None:
            value = params.get(name)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ValidationError.for_field(name, "must be a string")
            return value.strip() or None

        status = _get("status")
        if status is not None:
            status = normalize_status(status)
        priority = _get("priority")
        if priority is not None:
            priority = priority.lower()
            if priority not in PRIORITIES:
                raise ValidationError.for_field("priority", f"must be one of: {', '.join(PRIORITIES)}")
        category = _get("category")
        if category is not None and category not in CATEGORIES:
            raise ValidationError.for_field("category", f"must be one of: {', '.join(CATEGORIES)}")
        return cls(
            status=status,
            priority=priority,
            category=category,
            ward=_get("ward"),
            owner_id=_get("owner_id"),
            search=_get("search"),
        )


def _where(filters: IssueFilters) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    if filters.status is not None:
        conditions.append("status = ?")
        params.append(filters.status)
    if filters.priority is not None:
        conditions.append("priority = ?")
        params.append(filters.priority)
    if filters.category is not None:
        conditions.append("category = ?")
        params.append(filters.category)
    if filters.ward is not None:
        conditions.append("ward = ?")
        params.append(filters.ward)
    if filters.owner_id is not None:
        conditions.append("created_by = ?")
        params.append(filters.owner_id)
    if filters.search is not None:
        # Both sides case-folded; built-in LIKE only folds ASCII
        pattern = f"%{_escape_like(filters.search.casefold())}%"
        conditions.append(
            "(casefold(title) LIKE ? ESCAPE '\\' OR casefold(description) LIKE ? ESCAPE '\\' "
            "OR casefold(address) LIKE ? ESCAPE '\\' OR casefold(IFNULL(ward, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern] * 4)
    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


class QueryMixin(DBMixinProtocol):
    """Read-side queries over issues.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    ``_build_issues_batch`` comes from ``IssuesMixin`` at composition time.
    """

    def list_issues(
        self,
        filters: IssueFilters | None = None,
        *,
        sort: str = "date",
        order: str = "desc",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> PageResult:
        """Return one page of issues matching every filter.

        Ties on the sort key fall back to insertion order, ascending, in both
        directions so paging is stable.
        """
        filters = filters or IssueFilters()
        if sort not in SORT_FIELDS:
            raise ValidationError.for_field("sort", f"must be one of: {', '.join(SORT_FIELDS)}")
        if order not in SORT_ORDERS:
            raise ValidationError.for_field("order", f"must be one of: {', '.join(SORT_ORDERS)}")
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValidationError.for_field("page", "must be an integer >= 1")
        if isinstance(limit, bool) or not isinstance(limit, int) or not (1 <= limit <= MAX_PAGE_SIZE):
            raise ValidationError.for_field("limit", f"must be an integer between 1 and {MAX_PAGE_SIZE}")

        where, params = _where(filters)
        total: int = self.conn.execute(f"SELECT COUNT(*) FROM issues{where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT id FROM issues{where} ORDER BY {_SORT_EXPR[sort]} {order.upper()}, rowid ASC LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        ).fetchall()
        items = self._build_issues_batch([r["id"] for r in rows])  # type: ignore[attr-defined]
        return PageResult(items=items, total=total, page=page, limit=limit)

    def get_stats(self, owner_id: str | None = None) -> StatsResult:
        """Status counts, optionally scoped to one reporter's issues.

        Unscoped calls also break the total down by category.
        """
        where, params = ("", []) if owner_id is None else (" WHERE created_by = ?", [owner_id])
        counts = {PENDING: 0, IN_PROGRESS: 0, RESOLVED: 0}
        for r in self.conn.execute(f"SELECT status, COUNT(*) AS cnt FROM issues{where} GROUP BY status", params).fetchall():
            counts[r["status"]] = r["cnt"]

        high_ph = ",".join("?" * len(HIGH_PRIORITIES))
        open_clause = f"priority IN ({high_ph}) AND status != ?"
        high_where = f"{where} AND {open_clause}" if where else f" WHERE {open_clause}"
        high_open: int = self.conn.execute(
            f"SELECT COUNT(*) FROM issues{high_where}",
            [*params, *sorted(HIGH_PRIORITIES), RESOLVED],
        ).fetchone()[0]

        result = StatsResult(
            total=sum(counts.values()),
            pending=counts[PENDING],
            in_progress=counts[IN_PROGRESS],
            resolved=counts[RESOLVED],
            high_priority_open=high_open,
        )
        if owner_id is None:
            by_category = dict.fromkeys(CATEGORIES, 0)
            for r in self.conn.execute("SELECT category, COUNT(*) AS cnt FROM issues GROUP BY category").fetchall():
                by_category[r["category"]] = r["cnt"]
            result["by_category"] = by_category
        return result
