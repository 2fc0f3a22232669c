# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin to avoid circular imports.
"""Typed return-value contracts for civictrack core and API layers."""

from __future__ import annotations

from civictrack.types.api import AuthResponse, ErrorResponse, PageResult, StatsResult
from civictrack.types.core import (
    IssueDict,
    ISOTimestamp,
    LocationDict,
    ProjectConfig,
    PublicIssueDict,
    Role,
    TimelineEntryDict,
    UserDict,
)

__all__ = [
    "AuthResponse",
    "ErrorResponse",
    "ISOTimestamp",
    "IssueDict",
    "LocationDict",
    "PageResult",
    "ProjectConfig",
    "PublicIssueDict",
    "Role",
    "StatsResult",
    "TimelineEntryDict",
    "UserDict",
]
