"""Tests for the shared validation module."""

from __future__ import annotations

import pytest

from civictrack.errors import ValidationError
from civictrack.validation import (
    IssueCreate,
    ProfileUpdate,
    normalize_email,
    sanitize_text,
    validate_note,
    validate_password,
)


class TestSanitizeText:
    """sanitize_text() pure function tests."""

    def test_strips_whitespace(self) -> None:
        cleaned, err = sanitize_text("  Main Street  ", "address")
        assert cleaned == "Main Street"
        assert err is None

    def test_at_max_length(self) -> None:
        cleaned, err = sanitize_text("a" * 128, "name")
        assert cleaned == "a" * 128
        assert err is None

    def test_over_max_length(self) -> None:
        cleaned, err = sanitize_text("a" * 129, "name")
        assert cleaned == ""
        assert err is not None
        assert "128" in err

    def test_whitespace_only(self) -> None:
        cleaned, err = sanitize_text("   ", "name")
        assert cleaned == ""
        assert err is not None
        assert "empty" in err

    def test_non_string(self) -> None:
        _, err = sanitize_text(42, "name")
        assert err == "name must be a string"

    def test_control_chars_rejected(self) -> None:
        _, err = sanitize_text("bad\x00name", "name")
        assert err is not None
        assert "U+0000" in err

    def test_newlines_only_when_multiline(self) -> None:
        assert sanitize_text("line one\nline two", "description", multiline=True)[1] is None
        assert sanitize_text("line one\nline two", "title")[1] is not None


class TestCredentials:
    def test_email_normalized(self) -> None:
        assert normalize_email("  Ana@Example.COM ") == "ana@example.com"

    @pytest.mark.parametrize("value", ["", "ana", "ana@", "ana@example", None])
    def test_bad_email(self, value: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_email(value)
        assert "email" in exc_info.value.details

    def test_password_length_bounds(self) -> None:
        assert validate_password("secret") == "secret"
        with pytest.raises(ValidationError, match="at least 6"):
            validate_password("short")
        with pytest.raises(ValidationError, match="72 bytes"):
            validate_password("é" * 37)


class TestIssueCreate:
    def test_defaults(self) -> None:
        payload = IssueCreate.from_body({"title": "Pothole", "description": "Deep", "address": "1 Main Street"})
        assert payload.category == "Other"
        assert payload.priority == "normal"
        assert payload.ward is None
        assert payload.coordinates is None

    def test_nested_location(self) -> None:
        payload = IssueCreate.from_body(
            {
                "title": "Pothole",
                "description": "Deep",
                "location": {"address": "1 Main Street", "ward": "North", "coordinates": [-0.12, 51.5]},
            }
        )
        assert payload.address == "1 Main Street"
        assert payload.ward == "North"
        assert payload.coordinates == (-0.12, 51.5)

    def test_flat_form_location(self) -> None:
        payload = IssueCreate.from_body(
            {"title": "Pothole", "description": "Deep", "address": "1 Main Street", "lng": "-0.12", "lat": "51.5"}
        )
        assert payload.coordinates == (-0.12, 51.5)

    def test_priority_case_insensitive(self) -> None:
        payload = IssueCreate.from_body({"title": "T", "description": "D", "address": "A", "priority": "HIGH"})
        assert payload.priority == "high"

    def test_collects_every_field_error(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IssueCreate.from_body({"category": "Parks", "priority": "urgent", "location": {"coordinates": [500, 0]}})
        assert set(exc_info.value.details) == {"title", "description", "address", "category", "priority", "coordinates"}

    @pytest.mark.parametrize("coords", [[1], "1,2", [1, "north"]])
    def test_malformed_coordinates(self, coords: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IssueCreate.from_body({"title": "T", "description": "D", "address": "A", "location": {"address": "A", "coordinates": coords}})
        assert "coordinates" in exc_info.value.details


class TestProfileUpdate:
    def test_absent_fields_are_none(self) -> None:
        assert ProfileUpdate.from_body({}) == ProfileUpdate()

    def test_errors_collected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            ProfileUpdate.from_body({"name": "", "email": "nope", "password": "abc"})
        assert set(exc_info.value.details) == {"name", "email", "password"}


class TestValidateNote:
    def test_blank_is_empty(self) -> None:
        assert validate_note(None) == ""
        assert validate_note("   ") == ""

    def test_multiline_kept(self) -> None:
        assert validate_note(" Crew on site.\nETA 2h ") == "Crew on site.\nETA 2h"

    def test_non_string(self) -> None:
        with pytest.raises(ValidationError):
            validate_note(123)
