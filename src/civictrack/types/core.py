"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, Literal, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)

Role = Literal["citizen", "staff", "admin"]


class ProjectConfig(TypedDict, total=False):
    """Shape of .civictrack/config.json."""

    prefix: str
    version: int
    secret_key: str
    token_ttl_days: int
    base_url: str
    bcrypt_rounds: int


class UserDict(TypedDict):
    id: str
    name: str
    email: str
    role: str
    phone: str | None
    ward: str | None
    department: str | None
    is_active: bool
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class LocationDict(TypedDict):
    address: str
    ward: str | None
    coordinates: list[float] | None


class TimelineEntryDict(TypedDict):
    id: int
    status: str
    actor_id: str
    note: str
    created_at: ISOTimestamp


class IssueDict(TypedDict):
    id: str
    title: str
    description: str
    category: str
    priority: str
    status: str
    location: LocationDict
    photos: list[str]
    created_by: str
    assigned_to: str | None
    timeline: list[TimelineEntryDict]
    resolved_at: ISOTimestamp | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    version: int


class PublicIssueDict(TypedDict):
    """Reduced issue shape for callers who are neither owner nor staff."""

    id: str
    title: str
    description: str
    category: str
    priority: str
    status: str
    location: dict[str, Any]
    photos: list[str]
    resolved_at: ISOTimestamp | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
