"""Tests for issue listing (filters, search, sorting, pagination) and stats."""

from __future__ import annotations

import itertools

import pytest

from civictrack.db_query import IssueFilters
from civictrack.errors import ValidationError
from tests.conftest import PopulatedDB, make_payload


def _ids(populated_db: PopulatedDB, **kwargs: object) -> list[str]:
    filters = IssueFilters.from_params({k: v for k, v in kwargs.items() if k in IssueFilters.__dataclass_fields__})
    options = {k: v for k, v in kwargs.items() if k not in IssueFilters.__dataclass_fields__}
    return [i.id for i in populated_db.db.list_issues(filters, **options)["items"]]  # type: ignore[arg-type]


class TestFilters:
    def test_resolved_pothole_search(self, populated_db: PopulatedDB) -> None:
        result = populated_db.db.list_issues(IssueFilters(status="Resolved", search="pothole"))
        assert [i.id for i in result["items"]] == [populated_db.ids["pothole"]]
        assert result["total"] == 1

    def test_search_is_case_insensitive(self, populated_db: PopulatedDB) -> None:
        ids = set(_ids(populated_db, search="POTHOLE"))
        assert ids == {populated_db.ids["pothole"], populated_db.ids["school"]}

    def test_search_folds_non_ascii_case(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        lamp = db.create_issue(
            make_payload("Straßenlaterne ÄRGER defekt", address="Königsallee 3", ward="Düsseldorf-Mitte"),
            actor=populated_db.people.actor("citizen"),
        )
        for term in ("ärger", "ÄRGER", "STRASSENLATERNE", "königsallee", "DÜSSELDORF"):
            assert _ids(populated_db, search=term) == [lamp.id], term

    def test_search_covers_address_and_ward(self, populated_db: PopulatedDB) -> None:
        assert _ids(populated_db, search="elm road") == [populated_db.ids["light"]]
        assert _ids(populated_db, search="south") == [populated_db.ids["light"]]

    def test_search_treats_wildcards_literally(self, populated_db: PopulatedDB) -> None:
        assert _ids(populated_db, search="%") == []
        assert _ids(populated_db, search="_") == []

    def test_status_alias_filter(self, populated_db: PopulatedDB) -> None:
        assert _ids(populated_db, status="closed") == [populated_db.ids["pothole"]]

    def test_owner_filter(self, populated_db: PopulatedDB) -> None:
        ids = set(_ids(populated_db, owner_id=populated_db.people.citizen.id))
        assert ids == {populated_db.ids["pothole"], populated_db.ids["light"]}

    def test_conjunction_is_intersection(self, populated_db: PopulatedDB) -> None:
        singles = {
            "category": "Roads",
            "ward": "North",
            "priority": "critical",
            "search": "pothole",
            "owner_id": populated_db.people.neighbour.id,
        }
        for (k1, v1), (k2, v2) in itertools.combinations(singles.items(), 2):
            both = set(_ids(populated_db, **{k1: v1, k2: v2}))
            assert both == set(_ids(populated_db, **{k1: v1})) & set(_ids(populated_db, **{k2: v2})), (k1, k2)

    @pytest.mark.parametrize(("name", "value"), [("priority", "urgent"), ("category", "Parks"), ("status", "archived")])
    def test_unknown_enum_value(self, name: str, value: str) -> None:
        with pytest.raises(ValidationError):
            IssueFilters.from_params({name: value})

    def test_blank_filters_are_ignored(self, populated_db: PopulatedDB) -> None:
        assert len(_ids(populated_db, status="", ward="  ")) == 3


class TestSorting:
    def _set_created(self, populated_db: PopulatedDB, stamps: dict[str, str]) -> None:
        for key, stamp in stamps.items():
            populated_db.db.conn.execute("UPDATE issues SET created_at = ? WHERE id = ?", (stamp, populated_db.ids[key]))
        populated_db.db.conn.commit()

    def test_priority_rank(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        assert _ids(populated_db, sort="priority", order="desc") == [ids["school"], ids["pothole"], ids["light"]]
        assert _ids(populated_db, sort="priority", order="asc") == [ids["light"], ids["pothole"], ids["school"]]

    def test_status_lexicographic(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        assert _ids(populated_db, sort="status", order="asc") == [ids["school"], ids["light"], ids["pothole"]]

    def test_date(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        self._set_created(
            populated_db,
            {"pothole": "2026-01-01T00:00:00+00:00", "light": "2026-01-02T00:00:00+00:00", "school": "2026-01-03T00:00:00+00:00"},
        )
        assert _ids(populated_db, sort="date", order="desc") == [ids["school"], ids["light"], ids["pothole"]]
        assert _ids(populated_db, sort="date", order="asc") == [ids["pothole"], ids["light"], ids["school"]]

    def test_ties_keep_insertion_order_in_both_directions(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        same = "2026-01-01T00:00:00+00:00"
        self._set_created(populated_db, {"pothole": same, "light": same, "school": same})
        expected = [ids["pothole"], ids["light"], ids["school"]]
        assert _ids(populated_db, sort="date", order="desc") == expected
        assert _ids(populated_db, sort="date", order="asc") == expected

    def test_unknown_sort(self, populated_db: PopulatedDB) -> None:
        with pytest.raises(ValidationError, match="sort"):
            populated_db.db.list_issues(sort="title")


class TestPagination:
    def test_pages(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        first = db.list_issues(sort="priority", page=1, limit=2)
        second = db.list_issues(sort="priority", page=2, limit=2)
        beyond = db.list_issues(sort="priority", page=3, limit=2)
        assert (len(first["items"]), len(second["items"]), len(beyond["items"])) == (2, 1, 0)
        assert first["total"] == second["total"] == beyond["total"] == 3
        assert second["page"] == 2
        assert second["limit"] == 2

    @pytest.mark.parametrize(("page", "limit"), [(0, 20), (1, 0), (1, 101)])
    def test_out_of_range(self, populated_db: PopulatedDB, page: int, limit: int) -> None:
        with pytest.raises(ValidationError):
            populated_db.db.list_issues(page=page, limit=limit)

    def test_default_page_size(self, populated_db: PopulatedDB) -> None:
        assert populated_db.db.list_issues()["limit"] == 20


class TestStats:
    def test_unscoped(self, populated_db: PopulatedDB) -> None:
        stats = populated_db.db.get_stats()
        assert stats["total"] == 3
        assert (stats["pending"], stats["in_progress"], stats["resolved"]) == (1, 1, 1)
        assert stats["total"] == stats["pending"] + stats["in_progress"] + stats["resolved"]
        # pothole is high but resolved; school is critical and open
        assert stats["high_priority_open"] == 1
        assert stats["by_category"]["Roads"] == 2
        assert stats["by_category"]["Lighting"] == 1
        assert stats["by_category"]["Water"] == 0

    def test_scoped_to_owner(self, populated_db: PopulatedDB) -> None:
        stats = populated_db.db.get_stats(owner_id=populated_db.people.citizen.id)
        assert stats["total"] == 2
        assert (stats["pending"], stats["in_progress"], stats["resolved"]) == (1, 0, 1)
        assert stats["high_priority_open"] == 0
        assert "by_category" not in stats

    def test_owner_without_issues(self, populated_db: PopulatedDB) -> None:
        stats = populated_db.db.get_stats(owner_id=populated_db.people.staff.id)
        assert stats["total"] == 0
        assert stats["high_priority_open"] == 0
