"""Core database operations for civic issue reporting.

Single source of truth for all SQLite operations. Both the CLI and the HTTP
API import from this module. Direct SQLite with WAL mode; no in-process
shared state beyond the connection.

Covers users, issues, the per-issue timeline, and deletion tombstones.

Convention-based discovery: each deployment has a `.civictrack/` directory
containing `civictrack.db` (SQLite) and `config.json` (prefix, secret, token TTL).
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from civictrack.db_base import generate_unique_id
from civictrack.db_issues import IssuesMixin
from civictrack.db_query import QueryMixin
from civictrack.db_users import UsersMixin
from civictrack.tokens import TokenCodec
from civictrack.types.core import IssueDict, ProjectConfig, PublicIssueDict, TimelineEntryDict, UserDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

CIVIC_DIR_NAME = ".civictrack"
DB_FILENAME = "civictrack.db"
CONFIG_FILENAME = "config.json"
UPLOADS_DIRNAME = "uploads"

DEFAULT_PREFIX = "civic"
DEFAULT_TOKEN_TTL_DAYS = 7
DEFAULT_BASE_URL = "http://localhost:8390"
DEFAULT_BCRYPT_ROUNDS = 12


def find_civic_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .civictrack/ directory.

    Returns the .civictrack/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / CIVIC_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {CIVIC_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(civic_dir: Path) -> ProjectConfig:
    """Read .civictrack/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix=DEFAULT_PREFIX, version=1)
    config_path = civic_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
        return result
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults


def write_config(civic_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .civictrack/config.json."""
    config_path = civic_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def new_config(prefix: str = DEFAULT_PREFIX) -> ProjectConfig:
    """Config for a fresh deployment, with a newly generated signing secret."""
    return ProjectConfig(
        prefix=prefix,
        version=1,
        secret_key=secrets.token_hex(32),
        token_ttl_days=DEFAULT_TOKEN_TTL_DAYS,
        base_url=DEFAULT_BASE_URL,
        bcrypt_rounds=DEFAULT_BCRYPT_ROUNDS,
    )


def _env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return fallback
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Unparseable %s=%r, falling back to %d", name, raw, fallback)
        return fallback
    if value <= 0:
        logger.warning("Non-positive %s=%r, falling back to %d", name, raw, fallback)
        return fallback
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from config.json plus environment overrides."""

    civic_dir: Path
    prefix: str
    secret_key: str
    token_ttl_days: int
    base_url: str
    bcrypt_rounds: int

    @property
    def db_path(self) -> Path:
        return self.civic_dir / DB_FILENAME

    @property
    def uploads_dir(self) -> Path:
        return self.civic_dir / UPLOADS_DIRNAME

    def token_codec(self) -> TokenCodec:
        return TokenCodec(self.secret_key, ttl_seconds=self.token_ttl_days * 24 * 60 * 60)


def load_settings(civic_dir: Path) -> Settings:
    """Resolve settings: CIVICTRACK_* environment variables win over config.json."""
    config = read_config(civic_dir)
    secret = os.getenv("CIVICTRACK_SECRET_KEY") or config.get("secret_key", "")
    if not secret:
        msg = f"No secret_key in {civic_dir / CONFIG_FILENAME} and CIVICTRACK_SECRET_KEY is unset"
        raise ValueError(msg)
    base_url = os.getenv("CIVICTRACK_BASE_URL") or config.get("base_url", DEFAULT_BASE_URL)
    return Settings(
        civic_dir=civic_dir,
        prefix=config.get("prefix", DEFAULT_PREFIX),
        secret_key=secret,
        token_ttl_days=_env_int("CIVICTRACK_TOKEN_TTL_DAYS", int(config.get("token_ttl_days", DEFAULT_TOKEN_TTL_DAYS))),
        base_url=base_url.rstrip("/"),
        bcrypt_rounds=int(config.get("bcrypt_rounds", DEFAULT_BCRYPT_ROUNDS)),
    )


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    email          TEXT NOT NULL UNIQUE,
    password_hash  TEXT NOT NULL,
    role           TEXT NOT NULL DEFAULT 'citizen',
    phone          TEXT,
    ward           TEXT,
    department     TEXT,
    is_active      INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,

    CHECK (role IN ('citizen', 'staff', 'admin'))
);

CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);

CREATE TABLE IF NOT EXISTS issues (
    id                 TEXT PRIMARY KEY,
    title              TEXT NOT NULL,
    description        TEXT NOT NULL,
    category           TEXT NOT NULL DEFAULT 'Other',
    priority           TEXT NOT NULL DEFAULT 'normal',
    status             TEXT NOT NULL DEFAULT 'Pending',
    address            TEXT NOT NULL,
    ward               TEXT,
    lng                REAL,
    lat                REAL,
    photos             TEXT NOT NULL DEFAULT '[]',
    created_by         TEXT NOT NULL REFERENCES users(id),
    assigned_to        TEXT REFERENCES users(id),
    resolved_at        TEXT,
    first_resolved_at  TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL,
    version            INTEGER NOT NULL DEFAULT 1,

    CHECK (category IN ('Roads', 'Lighting', 'Sanitation', 'Traffic', 'Water', 'Other')),
    CHECK (priority IN ('low', 'normal', 'high', 'critical')),
    CHECK (status IN ('Pending', 'In Progress', 'Resolved')),
    CHECK (json_array_length(photos) <= 5),
    CHECK ((status = 'Resolved') = (resolved_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status);
CREATE INDEX IF NOT EXISTS idx_issues_created_by ON issues(created_by, created_at);
CREATE INDEX IF NOT EXISTS idx_issues_ward ON issues(ward);
CREATE INDEX IF NOT EXISTS idx_issues_category ON issues(category);
CREATE INDEX IF NOT EXISTS idx_issues_created ON issues(created_at);

CREATE TABLE IF NOT EXISTS timeline (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id    TEXT NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    status      TEXT NOT NULL,
    actor_id    TEXT NOT NULL REFERENCES users(id),
    note        TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_timeline_issue ON timeline(issue_id, id);

CREATE TRIGGER IF NOT EXISTS timeline_append_only BEFORE UPDATE ON timeline BEGIN
    SELECT RAISE(ABORT, 'timeline entries are append-only');
END;

CREATE TABLE IF NOT EXISTS issue_tombstones (
    issue_id    TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    deleted_by  TEXT NOT NULL REFERENCES users(id),
    deleted_at  TEXT NOT NULL,
    snapshot    TEXT NOT NULL
);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class User:
    id: str
    name: str
    email: str
    role: str = "citizen"
    phone: str | None = None
    ward: str | None = None
    department: str | None = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> UserDict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "ward": self.ward,
            "department": self.department,
            "is_active": self.is_active,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
        }


@dataclass(frozen=True)
class TimelineEntry:
    id: int
    status: str
    actor_id: str
    note: str
    created_at: str

    def to_dict(self) -> TimelineEntryDict:
        return {
            "id": self.id,
            "status": self.status,
            "actor_id": self.actor_id,
            "note": self.note,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
        }


@dataclass
class Issue:
    id: str
    title: str
    description: str
    address: str
    created_by: str
    category: str = "Other"
    priority: str = "normal"
    status: str = "Pending"
    ward: str | None = None
    coordinates: list[float] | None = None
    photos: list[str] = field(default_factory=list)
    assigned_to: str | None = None
    resolved_at: str | None = None
    created_at: str = ""
    updated_at: str = ""
    version: int = 1
    # Computed (stored in the timeline table)
    timeline: list[TimelineEntry] = field(default_factory=list)

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "location": {"address": self.address, "ward": self.ward, "coordinates": self.coordinates},
            "photos": list(self.photos),
            "created_by": self.created_by,
            "assigned_to": self.assigned_to,
            "timeline": [e.to_dict() for e in self.timeline],
            "resolved_at": self.resolved_at,  # type: ignore[typeddict-item]
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
            "version": self.version,
        }

    def to_public_dict(self) -> PublicIssueDict:
        """Projection for anonymous callers and citizens who do not own the issue."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "location": {"address": self.address, "ward": self.ward},
            "photos": list(self.photos),
            "resolved_at": self.resolved_at,  # type: ignore[typeddict-item]
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
        }


# ---------------------------------------------------------------------------
# CivicDB
# ---------------------------------------------------------------------------


def _sql_casefold(value: str | None) -> str | None:
    """SQL ``casefold(x)``: Unicode-aware lower-casing for text search."""
    return value.casefold() if isinstance(value, str) else value


class CivicDB(UsersMixin, IssuesMixin, QueryMixin):
    """Direct SQLite operations. Importable by the CLI and the HTTP API."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = DEFAULT_PREFIX,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self.bcrypt_rounds = bcrypt_rounds
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_settings(cls, settings: Settings, *, check_same_thread: bool = True) -> CivicDB:
        db = cls(
            settings.db_path,
            prefix=settings.prefix,
            bcrypt_rounds=settings.bcrypt_rounds,
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> CivicDB:
        """Create a CivicDB by discovering .civictrack/ from project_path (or cwd)."""
        civic_dir = find_civic_root(project_path)
        config = read_config(civic_dir)
        db = cls(
            civic_dir / DB_FILENAME,
            prefix=config.get("prefix", DEFAULT_PREFIX),
            bcrypt_rounds=int(config.get("bcrypt_rounds", DEFAULT_BCRYPT_ROUNDS)),
        )
        db.initialize()
        return db

    def __enter__(self) -> CivicDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.create_function("casefold", 1, _sql_casefold, deterministic=True)
        return self._conn

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than this civictrack (v{CURRENT_SCHEMA_VERSION})"
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self, table: str, prefix: str) -> str:
        return generate_unique_id(self.conn, table, prefix)
