"""Signed session tokens.

Tokens are HS256 JWTs carrying ``{"sub", "role", "iat", "exp"}``, signed with
the project secret. They are never stored server-side; expiry is the only
state they have.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from jose import ExpiredSignatureError, JWTError, jwt

from civictrack.errors import ExpiredTokenError, InvalidTokenError

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60
ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str
    issued_at: int
    expires_at: int


class TokenCodec:
    """Signs and verifies session tokens. The authorization gate is its only consumer."""

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            msg = "Token secret cannot be empty"
            raise ValueError(msg)
        if ttl_seconds <= 0:
            msg = f"Token TTL must be positive, got {ttl_seconds}"
            raise ValueError(msg)
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def encode(self, user_id: str, role: str) -> str:
        now = int(self._clock())
        claims = {"sub": user_id, "role": role, "iat": now, "exp": now + self.ttl_seconds}
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> TokenClaims:
        """Verify signature and expiry, returning the claims.

        Raises InvalidTokenError for malformed or tampered tokens and
        ExpiredTokenError once ``exp`` has passed.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise ExpiredTokenError("Token has expired") from None
        except JWTError as exc:
            raise InvalidTokenError(f"Invalid token: {exc}") from None
        sub, role, iat, exp = payload.get("sub"), payload.get("role"), payload.get("iat"), payload.get("exp")
        if not isinstance(sub, str) or not isinstance(role, str) or not isinstance(iat, int) or not isinstance(exp, int):
            raise InvalidTokenError("Token is missing required claims")
        return TokenClaims(user_id=sub, role=role, issued_at=iat, expires_at=exp)
