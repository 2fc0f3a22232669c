"""Issue status state machine.

Statuses form a strict order ``Pending < In Progress < Resolved``. Staff and
admins may only move an issue forward; the single backward move is an admin
reopening a resolved issue, which must carry a note. The extended status
vocabulary (``open``, ``acknowledged``, ``in_progress``, ``resolved``,
``closed``) is accepted on input and normalized to the canonical names.
"""

from __future__ import annotations

from dataclasses import dataclass

from civictrack.errors import InvalidTransitionError, ValidationError
from civictrack.types.core import Role

PENDING = "Pending"
IN_PROGRESS = "In Progress"
RESOLVED = "Resolved"

STATUSES: tuple[str, ...] = (PENDING, IN_PROGRESS, RESOLVED)
INITIAL_STATUS = PENDING
TERMINAL_STATUS = RESOLVED

_STATUS_RANK: dict[str, int] = {s: i for i, s in enumerate(STATUSES)}

# Extended vocabulary -> canonical status
STATUS_ALIASES: dict[str, str] = {
    "open": PENDING,
    "pending": PENDING,
    "acknowledged": IN_PROGRESS,
    "in_progress": IN_PROGRESS,
    "in progress": IN_PROGRESS,
    "resolved": RESOLVED,
    "closed": RESOLVED,
}

PRIORITIES: tuple[str, ...] = ("low", "normal", "high", "critical")
PRIORITY_RANK: dict[str, int] = {"critical": 4, "high": 3, "normal": 2, "low": 1}
HIGH_PRIORITIES: frozenset[str] = frozenset({"high", "critical"})
DEFAULT_PRIORITY = "normal"

CATEGORIES: tuple[str, ...] = ("Roads", "Lighting", "Sanitation", "Traffic", "Water", "Other")
DEFAULT_CATEGORY = "Other"

ROLES: tuple[str, ...] = ("citizen", "staff", "admin")
STAFF_ROLES: frozenset[str] = frozenset({"staff", "admin"})
ADMIN_ROLES: frozenset[str] = frozenset({"admin"})

MAX_PHOTOS = 5


def normalize_status(value: str) -> str:
    """Return the canonical status for *value*, accepting extended aliases."""
    if not isinstance(value, str):
        raise ValidationError.for_field("status", "must be a string")
    if value in _STATUS_RANK:
        return value
    canonical = STATUS_ALIASES.get(value.strip().lower())
    if canonical is None:
        raise ValidationError.for_field("status", f"must be one of: {', '.join(STATUSES)}")
    return canonical


@dataclass(frozen=True)
class TransitionOption:
    """A possible next status from the current one."""

    to: str
    reopen: bool = False
    requires_note: bool = False


def get_valid_transitions(current: str, role: Role | str) -> list[TransitionOption]:
    """List the statuses *role* may move an issue to from *current*."""
    if role not in STAFF_ROLES:
        return []
    rank = _STATUS_RANK[current]
    options = [TransitionOption(to=s) for s in STATUSES if _STATUS_RANK[s] > rank]
    if current == TERMINAL_STATUS and role in ADMIN_ROLES:
        options.extend(TransitionOption(to=s, reopen=True, requires_note=True) for s in STATUSES if s != TERMINAL_STATUS)
    return options


def validate_transition(current: str, target: str, role: Role | str, *, note: str = "") -> TransitionOption:
    """Check that *role* may move an issue from *current* to *target*.

    Returns the matching TransitionOption, raises InvalidTransitionError otherwise.
    Role sufficiency itself is checked by the authorization gate before this runs.
    """
    if target == current:
        raise InvalidTransitionError(current, target, "issue is already in that status")
    if _STATUS_RANK[target] > _STATUS_RANK[current]:
        return TransitionOption(to=target)
    if current != TERMINAL_STATUS:
        raise InvalidTransitionError(current, target, "status can only move forward")
    if role not in ADMIN_ROLES:
        raise InvalidTransitionError(current, target, "only an admin can reopen a resolved issue")
    if not note.strip():
        raise InvalidTransitionError(current, target, "reopening requires a note")
    return TransitionOption(to=target, reopen=True, requires_note=True)
