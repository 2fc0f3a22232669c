"""Authorization gate: token verification and role checks."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from civictrack.errors import ForbiddenError, InvalidTokenError, MissingTokenError, NotFoundError
from civictrack.workflow import ADMIN_ROLES, ROLES, STAFF_ROLES

if TYPE_CHECKING:
    from civictrack.core import CivicDB, Issue
    from civictrack.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """A verified caller identity, derived from a session token."""

    user_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class AuthGate:
    """Maps session tokens to actors.

    When constructed with a ``db``, tokens belonging to deactivated or
    unknown users are rejected even if their signature is still valid.
    """

    def __init__(self, codec: TokenCodec, db: CivicDB | None = None) -> None:
        self.codec = codec
        self._db = db

    def issue_token(self, user_id: str, role: str) -> str:
        return self.codec.encode(user_id, role)

    def verify(self, token: str | None) -> Actor:
        if not token or not token.strip():
            raise MissingTokenError()
        claims = self.codec.decode(token.strip())
        if claims.role not in ROLES:
            raise InvalidTokenError(f"Unknown role in token: {claims.role!r}")
        if self._db is not None:
            try:
                user = self._db.get_user(claims.user_id)
            except NotFoundError:
                raise InvalidTokenError("Token refers to an unknown user") from None
            if not user.is_active:
                raise InvalidTokenError("Account is deactivated")
        return Actor(user_id=claims.user_id, role=claims.role)

    def verify_header(self, authorization: str | None) -> Actor:
        """Verify an ``Authorization: Bearer <token>`` header value."""
        if not authorization or not authorization.strip():
            raise MissingTokenError()
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise InvalidTokenError("Authorization header must use the Bearer scheme")
        return self.verify(token)

    def verify_optional(self, authorization: str | None) -> Actor | None:
        """Like verify_header, but an absent header yields an anonymous caller."""
        if not authorization or not authorization.strip():
            return None
        return self.verify_header(authorization)


def require_role(actor: Actor | None, allowed_roles: Iterable[str]) -> Actor:
    """Raise unless *actor* is authenticated and holds one of *allowed_roles*."""
    if actor is None:
        raise MissingTokenError()
    allowed = frozenset(allowed_roles)
    if actor.role not in allowed:
        logger.warning(
            "Forbidden: user %s with role %s needs one of %s", actor.user_id, actor.role, sorted(allowed), extra={"actor": actor.user_id, "role": actor.role}
        )
        raise ForbiddenError(f"This action requires one of the roles: {', '.join(sorted(allowed))}")
    return actor


def require_staff(actor: Actor | None) -> Actor:
    return require_role(actor, STAFF_ROLES)


def require_admin(actor: Actor | None) -> Actor:
    return require_role(actor, ADMIN_ROLES)


def can_view_full(actor: Actor | None, issue: Issue) -> bool:
    """Owner, staff and admins see full detail; everyone else the public projection."""
    if actor is None:
        return False
    return actor.is_staff or actor.user_id == issue.created_by
