"""Shared pytest fixtures for civictrack tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from click.testing import CliRunner

from civictrack.auth import Actor
from civictrack.core import CivicDB, User
from civictrack.tokens import TokenCodec
from civictrack.validation import IssueCreate

TEST_SECRET = "test-secret-key"
PASSWORD = "secret123"


@dataclass
class People:
    """Registered accounts for each role, plus their actors."""

    citizen: User
    neighbour: User
    staff: User
    admin: User

    def actor(self, who: str) -> Actor:
        user: User = getattr(self, who)
        return Actor(user_id=user.id, role=user.role)


@dataclass
class PopulatedDB:
    db: CivicDB
    people: People
    ids: dict[str, str] = field(default_factory=dict)


def make_payload(title: str, **kwargs: object) -> IssueCreate:
    body: dict[str, object] = {"title": title, "description": f"{title} needs attention", "address": "1 Main Street"}
    body.update(kwargs)
    return IssueCreate.from_body(body)


@pytest.fixture
def db(tmp_path: Path) -> Generator[CivicDB, None, None]:
    """Fresh CivicDB for each test. Cheap bcrypt rounds keep tests fast."""
    d = CivicDB(tmp_path / "civictrack.db", prefix="test", bcrypt_rounds=4, check_same_thread=False)
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def people(db: CivicDB) -> People:
    return People(
        citizen=db.register("Ana Citizen", "ana@example.com", PASSWORD, ward="North"),
        neighbour=db.register("Ben Citizen", "ben@example.com", PASSWORD, ward="South"),
        staff=db.register("Sam Staff", "sam@city.gov", PASSWORD, role="staff", department="Roads"),
        admin=db.register("Ada Admin", "ada@city.gov", PASSWORD, role="admin"),
    )


@pytest.fixture
def populated_db(db: CivicDB, people: People) -> PopulatedDB:
    """CivicDB with three issues.

    - pothole: Roads/high in North by citizen, Resolved
    - light: Lighting/normal in South by citizen, Pending
    - school: Roads/critical in North by neighbour, In Progress
    """
    admin = people.actor("admin")
    pothole = db.create_issue(
        make_payload("Pothole on Main Street", category="Roads", priority="high", ward="North"),
        actor=people.actor("citizen"),
    )
    light = db.create_issue(
        make_payload("Broken streetlight", category="Lighting", ward="South", address="9 Elm Road"),
        actor=people.actor("citizen"),
    )
    school = db.create_issue(
        make_payload("Pothole near school", category="Roads", priority="critical", ward="North"),
        actor=people.actor("neighbour"),
    )
    db.transition_issue(pothole.id, "Resolved", actor=admin)
    db.transition_issue(school.id, "In Progress", actor=admin, note="Crew assigned")
    return PopulatedDB(db=db, people=people, ids={"pothole": pothole.id, "light": light.id, "school": school.id})


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
