"""Shared validation functions for all entry points.

Pure functions: no FastAPI, Click, or SQLite dependencies. Request bodies are
parsed into the typed ``IssueCreate`` / ``ProfileUpdate`` records here so the
store never sees an untyped dict.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any

from civictrack.errors import ValidationError
from civictrack.workflow import CATEGORIES, DEFAULT_CATEGORY, DEFAULT_PRIORITY, PRIORITIES

_MAX_TITLE_LENGTH = 200
_MAX_TEXT_LENGTH = 5000
_MAX_SHORT_LENGTH = 128
_MIN_PASSWORD_LENGTH = 6
_MAX_PASSWORD_BYTES = 72
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_text(value: Any, name: str, *, max_length: int = _MAX_SHORT_LENGTH, multiline: bool = False) -> tuple[str, str | None]:
    """Validate and clean a free-text value.

    Returns (cleaned, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars
    (newlines and tabs are allowed when *multiline* is set).
    """
    if not isinstance(value, str):
        return ("", f"{name} must be a string")
    for ch in value:
        if multiline and ch in "\n\r\t":
            continue
        if unicodedata.category(ch).startswith("C"):
            return ("", f"{name} must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", f"{name} must not be empty")
    if len(cleaned) > max_length:
        return ("", f"{name} must be at most {max_length} characters")
    return (cleaned, None)


def _optional_text(value: Any, name: str, errors: dict[str, str]) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    cleaned, err = sanitize_text(value, name)
    if err:
        errors[name] = err
        return None
    return cleaned


def _required_text(value: Any, name: str, errors: dict[str, str], **kwargs: Any) -> str:
    cleaned, err = sanitize_text(value, name, **kwargs)
    if err:
        errors[name] = err
    return cleaned


def _raise_if(errors: dict[str, str]) -> None:
    if errors:
        summary = "; ".join(f"{k}: {v}" for k, v in errors.items())
        raise ValidationError(f"Invalid input: {summary}", details=dict(errors))


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError.for_field("email", "must be a string")
    email = value.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError.for_field("email", "must be a valid email address")
    return email


def validate_password(value: Any) -> str:
    if not isinstance(value, str) or len(value) < _MIN_PASSWORD_LENGTH:
        raise ValidationError.for_field("password", f"must be at least {_MIN_PASSWORD_LENGTH} characters")
    # bcrypt only looks at the first 72 bytes
    if len(value.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError.for_field("password", f"must be at most {_MAX_PASSWORD_BYTES} bytes")
    return value


def _parse_coordinates(raw: Any, errors: dict[str, str]) -> tuple[float, float] | None:
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        errors["coordinates"] = "coordinates must be a [lng, lat] pair"
        return None
    try:
        lng, lat = float(raw[0]), float(raw[1])
    except (TypeError, ValueError):
        errors["coordinates"] = "coordinates must be numbers"
        return None
    if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
        errors["coordinates"] = "coordinates are out of range"
        return None
    return (lng, lat)


@dataclass(frozen=True)
class IssueCreate:
    """Validated payload for creating an issue."""

    title: str
    description: str
    address: str
    category: str = DEFAULT_CATEGORY
    priority: str = DEFAULT_PRIORITY
    ward: str | None = None
    coordinates: tuple[float, float] | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> IssueCreate:
        """Parse a JSON or form body.

        Location may be given nested (``location: {address, ward, coordinates}``)
        or flat (``address``, ``ward``, ``lng``, ``lat``) as the mobile form sends it.
        """
        errors: dict[str, str] = {}
        location = body.get("location")
        if isinstance(location, dict):
            address_raw = location.get("address")
            ward_raw = location.get("ward")
            coords_raw = location.get("coordinates")
        else:
            address_raw = location if isinstance(location, str) else body.get("address")
            ward_raw = body.get("ward")
            lng, lat = body.get("lng"), body.get("lat")
            coords_raw = [lng, lat] if lng not in (None, "") and lat not in (None, "") else None

        title = _required_text(body.get("title"), "title", errors, max_length=_MAX_TITLE_LENGTH)
        description = _required_text(body.get("description"), "description", errors, max_length=_MAX_TEXT_LENGTH, multiline=True)
        address = _required_text(address_raw, "address", errors, max_length=_MAX_TITLE_LENGTH)
        ward = _optional_text(ward_raw, "ward", errors)
        coordinates = _parse_coordinates(coords_raw, errors)

        category = body.get("category") or DEFAULT_CATEGORY
        if category not in CATEGORIES:
            errors["category"] = f"category must be one of: {', '.join(CATEGORIES)}"
        priority = body.get("priority") or DEFAULT_PRIORITY
        if isinstance(priority, str):
            priority = priority.strip().lower()
        if priority not in PRIORITIES:
            errors["priority"] = f"priority must be one of: {', '.join(PRIORITIES)}"

        _raise_if(errors)
        return cls(
            title=title,
            description=description,
            address=address,
            category=category,
            priority=priority,
            ward=ward,
            coordinates=coordinates,
        )


def clean_contact_fields(phone: Any, ward: Any, department: Any) -> tuple[str | None, str | None, str | None]:
    """Validate the optional contact fields shared by signup and profile edits."""
    errors: dict[str, str] = {}
    cleaned = (
        _optional_text(phone, "phone", errors),
        _optional_text(ward, "ward", errors),
        _optional_text(department, "department", errors),
    )
    _raise_if(errors)
    return cleaned


@dataclass(frozen=True)
class ProfileUpdate:
    """Validated profile edit. ``None`` means leave unchanged."""

    name: str | None = None
    email: str | None = None
    password: str | None = None
    phone: str | None = None
    ward: str | None = None
    department: str | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> ProfileUpdate:
        errors: dict[str, str] = {}
        name = None
        if body.get("name") is not None:
            name = _required_text(body["name"], "name", errors)
        email = None
        if body.get("email") is not None:
            try:
                email = normalize_email(body["email"])
            except ValidationError as exc:
                errors.update(exc.details)
        password = None
        if body.get("password") is not None:
            try:
                password = validate_password(body["password"])
            except ValidationError as exc:
                errors.update(exc.details)
        try:
            phone, ward, department = clean_contact_fields(body.get("phone"), body.get("ward"), body.get("department"))
        except ValidationError as exc:
            errors.update(exc.details)
            phone = ward = department = None
        _raise_if(errors)
        return cls(name=name, email=email, password=password, phone=phone, ward=ward, department=department)


def validate_note(value: Any) -> str:
    """Notes are optional; return "" for absent, raise on malformed."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""
    cleaned, err = sanitize_text(value, "note", max_length=_MAX_TEXT_LENGTH, multiline=True)
    if err:
        raise ValidationError.for_field("note", err)
    return cleaned
