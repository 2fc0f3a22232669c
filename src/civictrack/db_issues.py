"""IssuesMixin: issue creation, lifecycle transitions, assignment, notes, and deletion.

All methods access ``self.conn``, ``self.get_user()``, etc. via Python's MRO
when composed into ``CivicDB``.

Every mutation is a single transaction: a version-guarded ``UPDATE`` on the
issue row plus exactly one ``timeline`` insert. A guard that matches no row
means another writer got there first and surfaces as ``ConflictError``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from civictrack.auth import require_admin, require_role, require_staff
from civictrack.db_base import DBMixinProtocol, _now_iso
from civictrack.errors import ConflictError, NotFoundError, ValidationError
from civictrack.validation import validate_note
from civictrack.workflow import INITIAL_STATUS, MAX_PHOTOS, RESOLVED, ROLES, STAFF_ROLES, normalize_status, validate_transition

if TYPE_CHECKING:
    from civictrack.auth import Actor
    from civictrack.core import Issue, TimelineEntry, User
    from civictrack.validation import IssueCreate

logger = logging.getLogger(__name__)


def _validate_photos(photos: Sequence[str]) -> list[str]:
    if isinstance(photos, str) or not all(isinstance(p, str) and p.strip() for p in photos):
        raise ValidationError.for_field("photos", "must be a list of non-empty URLs")
    result = [p.strip() for p in photos]
    if len(result) > MAX_PHOTOS:
        raise ValidationError.for_field("photos", f"at most {MAX_PHOTOS} photos are allowed")
    return result


class IssuesMixin(DBMixinProtocol):
    """Lifecycle engine over the ``issues`` and ``timeline`` tables.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    # -- Reads ---------------------------------------------------------------

    def get_issue(self, issue_id: str) -> Issue:
        issues = self._build_issues_batch([issue_id])
        if not issues:
            raise NotFoundError(f"Issue not found: {issue_id}")
        return issues[0]

    def get_timeline(self, issue_id: str) -> list[TimelineEntry]:
        return self.get_issue(issue_id).timeline

    def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]:
        """Build multiple Issues with two queries (rows, then all timeline entries)."""
        from civictrack.core import Issue, TimelineEntry

        if not issue_ids:
            return []

        placeholders = ",".join("?" * len(issue_ids))

        rows_by_id: dict[str, sqlite3.Row] = {}
        for r in self.conn.execute(f"SELECT * FROM issues WHERE id IN ({placeholders})", issue_ids).fetchall():
            rows_by_id[r["id"]] = r

        timeline_by_id: dict[str, list[TimelineEntry]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT * FROM timeline WHERE issue_id IN ({placeholders}) ORDER BY id",
            issue_ids,
        ).fetchall():
            timeline_by_id[r["issue_id"]].append(
                TimelineEntry(id=r["id"], status=r["status"], actor_id=r["actor_id"], note=r["note"], created_at=r["created_at"])
            )

        # Preserve input order
        result: list[Issue] = []
        for iid in issue_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            coordinates = [row["lng"], row["lat"]] if row["lng"] is not None and row["lat"] is not None else None
            result.append(
                Issue(
                    id=row["id"],
                    title=row["title"],
                    description=row["description"],
                    address=row["address"],
                    created_by=row["created_by"],
                    category=row["category"],
                    priority=row["priority"],
                    status=row["status"],
                    ward=row["ward"],
                    coordinates=coordinates,
                    photos=json.loads(row["photos"]) if row["photos"] else [],
                    assigned_to=row["assigned_to"],
                    resolved_at=row["resolved_at"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    version=row["version"],
                    timeline=timeline_by_id.get(iid, []),
                )
            )
        return result

    # -- Writes --------------------------------------------------------------

    def _append_timeline(self, issue_id: str, status: str, *, actor_id: str, note: str = "", now: str) -> None:
        self.conn.execute(
            "INSERT INTO timeline (issue_id, status, actor_id, note, created_at) VALUES (?, ?, ?, ?, ?)",
            (issue_id, status, actor_id, note, now),
        )

    def _load_for_update(self, issue_id: str, expected_version: int | None) -> Issue:
        current = self.get_issue(issue_id)
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"Issue {issue_id} was modified concurrently (expected version {expected_version}, found {current.version})",
                details={"expected_version": expected_version, "current_version": current.version},
            )
        return current

    def _guarded_update(self, current: Issue, assignments: list[str], params: list[Any], now: str) -> None:
        """UPDATE the issue row only if its version still matches *current*."""
        sql = f"UPDATE issues SET {', '.join([*assignments, 'updated_at = ?', 'version = version + 1'])} WHERE id = ? AND version = ?"
        cursor = self.conn.execute(sql, [*params, now, current.id, current.version])
        if cursor.rowcount == 0:
            raise ConflictError(
                f"Issue {current.id} was modified concurrently",
                details={"expected_version": current.version},
            )

    def create_issue(self, payload: IssueCreate, *, actor: Actor, photos: Sequence[str] = ()) -> Issue:
        """Create an issue in the initial status with its first timeline entry."""
        require_role(actor, ROLES)
        photo_urls = _validate_photos(photos)
        issue_id = self._generate_unique_id("issues", self.prefix)
        now = _now_iso()
        lng, lat = payload.coordinates if payload.coordinates is not None else (None, None)

        try:
            self.conn.execute(
                "INSERT INTO issues (id, title, description, category, priority, status, address, ward, "
                "lng, lat, photos, created_by, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    issue_id,
                    payload.title,
                    payload.description,
                    payload.category,
                    payload.priority,
                    INITIAL_STATUS,
                    payload.address,
                    payload.ward,
                    lng,
                    lat,
                    json.dumps(photo_urls),
                    actor.user_id,
                    now,
                    now,
                ),
            )
            self._append_timeline(issue_id, INITIAL_STATUS, actor_id=actor.user_id, now=now)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info("Issue %s created by %s", issue_id, actor.user_id, extra={"issue_id": issue_id, "actor": actor.user_id})
        return self.get_issue(issue_id)

    def _resolve_assignee(self, assignee_id: Any) -> User:
        if not isinstance(assignee_id, str) or not assignee_id.strip():
            raise ValidationError.for_field("assigned_to", "must be a user id")
        try:
            assignee = self.get_user(assignee_id.strip())
        except NotFoundError:
            raise ValidationError.for_field("assigned_to", f"unknown user {assignee_id!r}") from None
        if assignee.role not in STAFF_ROLES or not assignee.is_active:
            raise ValidationError.for_field("assigned_to", "assignee must be an active staff or admin user")
        return assignee

    def update_issue(
        self,
        issue_id: str,
        *,
        actor: Actor,
        status: str | None = None,
        assigned_to: str | None = None,
        note: Any = "",
        expected_version: int | None = None,
    ) -> Issue:
        """Change status, assignee, or both, as one write with one timeline entry.

        The target status and the assignee are both checked before anything is
        written, so a rejected half leaves the issue untouched.

        ``resolved_at`` is set from the first resolution and kept through later
        re-resolutions; an admin reopen clears it until the issue is resolved again.
        """
        require_staff(actor)
        if status is None and assigned_to is None:
            raise ValidationError("Nothing to update: send status or assigned_to")
        clean_note = validate_note(note)
        target = normalize_status(status) if status is not None else None
        assignee = self._resolve_assignee(assigned_to) if assigned_to is not None else None
        current = self._load_for_update(issue_id, expected_version)
        option = validate_transition(current.status, target, actor.role, note=clean_note) if target is not None else None
        now = _now_iso()

        assignments: list[str] = []
        params: list[Any] = []
        if target == RESOLVED:
            assignments += [
                "status = ?",
                "resolved_at = COALESCE(first_resolved_at, ?)",
                "first_resolved_at = COALESCE(first_resolved_at, ?)",
            ]
            params += [target, now, now]
        elif target is not None:
            assignments += ["status = ?", "resolved_at = NULL"]
            params.append(target)
        if assignee is not None:
            assignments.append("assigned_to = ?")
            params.append(assignee.id)
            clean_note = clean_note or f"Assigned to {assignee.name}"

        try:
            self._guarded_update(current, assignments, params, now)
            self._append_timeline(issue_id, target or current.status, actor_id=actor.user_id, note=clean_note, now=now)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        extra = {"issue_id": issue_id, "actor": actor.user_id}
        if option is not None and option.reopen:
            logger.warning("Issue %s reopened %s -> %s", issue_id, current.status, target, extra=extra)
        elif target is not None:
            logger.info("Issue %s moved %s -> %s", issue_id, current.status, target, extra=extra)
        if assignee is not None:
            logger.info("Issue %s assigned to %s", issue_id, assignee.id, extra=extra)
        return self.get_issue(issue_id)

    def transition_issue(
        self,
        issue_id: str,
        status: str,
        *,
        actor: Actor,
        note: Any = "",
        expected_version: int | None = None,
    ) -> Issue:
        """Move an issue to *status*, recording the change in its timeline."""
        if status is None:
            raise ValidationError.for_field("status", "is required")
        return self.update_issue(issue_id, actor=actor, status=status, note=note, expected_version=expected_version)

    def assign_issue(
        self,
        issue_id: str,
        assignee_id: str,
        *,
        actor: Actor,
        note: Any = "",
        expected_version: int | None = None,
    ) -> Issue:
        """Assign an issue to an active staff or admin user. Status is unchanged."""
        if assignee_id is None:
            raise ValidationError.for_field("assigned_to", "must be a user id")
        return self.update_issue(issue_id, actor=actor, assigned_to=assignee_id, note=note, expected_version=expected_version)

    def add_note(self, issue_id: str, note: Any, *, actor: Actor, expected_version: int | None = None) -> Issue:
        """Annotate an issue at its current status."""
        require_staff(actor)
        clean_note = validate_note(note)
        if not clean_note:
            raise ValidationError.for_field("note", "note must not be empty")
        current = self._load_for_update(issue_id, expected_version)
        now = _now_iso()
        try:
            self._guarded_update(current, [], [], now)
            self._append_timeline(issue_id, current.status, actor_id=actor.user_id, note=clean_note, now=now)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Issue %s annotated", issue_id, extra={"issue_id": issue_id, "actor": actor.user_id})
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: str, *, actor: Actor, expected_version: int | None = None) -> None:
        """Hard-delete an issue, leaving a tombstone snapshot behind."""
        require_admin(actor)
        current = self._load_for_update(issue_id, expected_version)
        try:
            self.conn.execute(
                "INSERT INTO issue_tombstones (issue_id, title, deleted_by, deleted_at, snapshot) VALUES (?, ?, ?, ?, ?)",
                (current.id, current.title, actor.user_id, _now_iso(), json.dumps(current.to_dict())),
            )
            cursor = self.conn.execute("DELETE FROM issues WHERE id = ? AND version = ?", (current.id, current.version))
            if cursor.rowcount == 0:
                raise ConflictError(f"Issue {current.id} was modified concurrently", details={"expected_version": current.version})
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.warning("Issue %s deleted by %s", issue_id, actor.user_id, extra={"issue_id": issue_id, "actor": actor.user_id})

    def get_tombstone(self, issue_id: str) -> dict[str, Any]:
        row = self.conn.execute("SELECT * FROM issue_tombstones WHERE issue_id = ?", (issue_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"No tombstone for issue: {issue_id}")
        return {
            "issue_id": row["issue_id"],
            "title": row["title"],
            "deleted_by": row["deleted_by"],
            "deleted_at": row["deleted_at"],
            "snapshot": json.loads(row["snapshot"]),
        }
