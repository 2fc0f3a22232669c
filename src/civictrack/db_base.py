"""Shared utilities and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from civictrack.core import Issue, User


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_issue(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by CivicDB at composition time.
    """

    db_path: Path
    prefix: str
    bcrypt_rounds: int
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_issue(self, issue_id: str) -> Issue: ...

    def get_user(self, user_id: str) -> User: ...

    def _generate_unique_id(self, table: str, prefix: str) -> str: ...


def generate_unique_id(conn: sqlite3.Connection, table: str, prefix: str) -> str:
    """Generate a unique ID using O(1) EXISTS checks against the PK index.

    *table* is always a hardcoded literal at the call site (never user input).
    """
    for _ in range(10):
        candidate = f"{prefix}-{uuid.uuid4().hex[:10]}"
        if conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
            return candidate
    return f"{prefix}-{uuid.uuid4().hex[:16]}"
