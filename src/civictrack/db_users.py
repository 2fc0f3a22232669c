"""UsersMixin: registration, credential checks, and profile administration.

All methods access ``self.conn`` via Python's MRO when composed into
``CivicDB``. Users are never hard-deleted; admins deactivate them instead.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

import bcrypt

from civictrack.auth import require_admin
from civictrack.db_base import DBMixinProtocol, _now_iso
from civictrack.errors import DuplicateEmailError, InvalidCredentialsError, NotFoundError, ValidationError
from civictrack.validation import ProfileUpdate, clean_contact_fields, normalize_email, sanitize_text, validate_password
from civictrack.workflow import ROLES

if TYPE_CHECKING:
    from civictrack.auth import Actor
    from civictrack.core import User
    from civictrack.tokens import TokenCodec

logger = logging.getLogger(__name__)


def _user_from_row(row: sqlite3.Row) -> User:
    from civictrack.core import User

    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=row["role"],
        phone=row["phone"],
        ward=row["ward"],
        department=row["department"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UsersMixin(DBMixinProtocol):
    """Identity store backed by the ``users`` table.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    """

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")

    def register(
        self,
        name: str,
        email: str,
        password: str,
        *,
        role: str = "citizen",
        phone: str | None = None,
        ward: str | None = None,
        department: str | None = None,
    ) -> User:
        """Create a user account. The password is stored only as a bcrypt hash."""
        clean_name, err = sanitize_text(name, "name")
        if err:
            raise ValidationError.for_field("name", err)
        email = normalize_email(email)
        validate_password(password)
        if role not in ROLES:
            raise ValidationError.for_field("role", f"must be one of: {', '.join(ROLES)}")
        phone, ward, department = clean_contact_fields(phone, ward, department)

        if self.conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone() is not None:
            raise DuplicateEmailError(f"Email already registered: {email}")

        user_id = self._generate_unique_id("users", "usr")
        now = _now_iso()
        password_hash = self._hash_password(password)
        try:
            self.conn.execute(
                "INSERT INTO users (id, name, email, password_hash, role, phone, ward, department, "
                "is_active, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)",
                (user_id, clean_name, email, password_hash, role, phone, ward, department, now, now),
            )
            self.conn.commit()
        except sqlite3.IntegrityError:
            self.conn.rollback()
            # Lost a race with a concurrent signup for the same address
            raise DuplicateEmailError(f"Email already registered: {email}") from None
        except Exception:
            self.conn.rollback()
            raise

        logger.info("Registered user %s with role %s", user_id, role, extra={"user_id": user_id, "role": role})
        return self.get_user(user_id)

    def authenticate(self, email: str, password: str, *, codec: TokenCodec) -> tuple[str, User]:
        """Check credentials and issue a session token.

        Unknown email, wrong password and deactivated account all raise the
        same InvalidCredentialsError.
        """
        if not isinstance(email, str) or not isinstance(password, str):
            raise InvalidCredentialsError()
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),)).fetchone()
        if row is None or not row["is_active"]:
            raise InvalidCredentialsError()
        raw = password.encode("utf-8")
        if len(raw) > 72 or not bcrypt.checkpw(raw, row["password_hash"].encode("utf-8")):
            raise InvalidCredentialsError()
        user = _user_from_row(row)
        return codec.encode(user.id, user.role), user

    def get_user(self, user_id: str) -> User:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"User not found: {user_id}")
        return _user_from_row(row)

    def get_user_by_email(self, email: str) -> User:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),)).fetchone()
        if row is None:
            raise NotFoundError(f"User not found: {email}")
        return _user_from_row(row)

    def list_users(self, *, role: str | None = None) -> list[User]:
        if role is not None:
            rows = self.conn.execute("SELECT * FROM users WHERE role = ? ORDER BY created_at, rowid", (role,)).fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM users ORDER BY created_at, rowid").fetchall()
        return [_user_from_row(r) for r in rows]

    def update_user(self, user_id: str, update: ProfileUpdate) -> User:
        """Apply a profile edit. Fields left as ``None`` are unchanged."""
        current = self.get_user(user_id)
        sets: list[str] = []
        params: list[object] = []
        if update.name is not None and update.name != current.name:
            sets.append("name = ?")
            params.append(update.name)
        if update.email is not None and update.email != current.email:
            taken = self.conn.execute("SELECT 1 FROM users WHERE email = ? AND id != ?", (update.email, user_id)).fetchone()
            if taken is not None:
                raise DuplicateEmailError(f"Email already registered: {update.email}")
            sets.append("email = ?")
            params.append(update.email)
        if update.password is not None:
            sets.append("password_hash = ?")
            params.append(self._hash_password(update.password))
        for column in ("phone", "ward", "department"):
            value = getattr(update, column)
            if value is not None and value != getattr(current, column):
                sets.append(f"{column} = ?")
                params.append(value)
        if not sets:
            return current

        sets.append("updated_at = ?")
        params.extend([_now_iso(), user_id])
        try:
            self.conn.execute(f"UPDATE users SET {', '.join(sets)} WHERE id = ?", params)
            self.conn.commit()
        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise DuplicateEmailError(f"Email already registered: {update.email}") from None
        except Exception:
            self.conn.rollback()
            raise
        return self.get_user(user_id)

    def set_user_active(self, user_id: str, active: bool, *, actor: Actor) -> User:
        """Deactivate or reactivate an account. Admins cannot deactivate themselves."""
        require_admin(actor)
        current = self.get_user(user_id)
        if not active and user_id == actor.user_id:
            raise ValidationError.for_field("active", "admins cannot deactivate their own account")
        if current.is_active == active:
            return current
        try:
            self.conn.execute(
                "UPDATE users SET is_active = ?, updated_at = ? WHERE id = ?",
                (1 if active else 0, _now_iso(), user_id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        state = "reactivated" if active else "deactivated"
        logger.info("User %s %s by %s", user_id, state, actor.user_id, extra={"user_id": user_id, "actor": actor.user_id})
        return self.get_user(user_id)
