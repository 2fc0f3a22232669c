"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import civictrack.api as api_module
from civictrack.api import create_app
from civictrack.auth import AuthGate
from civictrack.storage import LocalBlobStore
from civictrack.tokens import TokenCodec
from tests.conftest import TEST_SECRET, PopulatedDB

UPLOAD_BASE_URL = "http://test"


@dataclass
class Tokens:
    """Bearer headers for each seeded account."""

    citizen: dict[str, str]
    neighbour: dict[str, str]
    staff: dict[str, str]
    admin: dict[str, str]


@pytest.fixture
def gate(populated_db: PopulatedDB) -> AuthGate:
    return AuthGate(TokenCodec(TEST_SECRET), db=populated_db.db)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "uploads", UPLOAD_BASE_URL)


@pytest.fixture
def tokens(populated_db: PopulatedDB, gate: AuthGate) -> Tokens:
    people = populated_db.people

    def header(who: str) -> dict[str, str]:
        user = getattr(people, who)
        return {"Authorization": f"Bearer {gate.issue_token(user.id, user.role)}"}

    return Tokens(citizen=header("citizen"), neighbour=header("neighbour"), staff=header("staff"), admin=header("admin"))


@pytest.fixture
async def client(populated_db: PopulatedDB, gate: AuthGate, blob_store: LocalBlobStore) -> AsyncIterator[AsyncClient]:
    """Test client backed by the populated database."""
    api_module._db = populated_db.db
    api_module._gate = gate
    api_module._blob_store = blob_store
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None
    api_module._gate = None
    api_module._blob_store = None
