"""Typed error taxonomy shared by the store, the HTTP layer, and the client.

Every failure a caller can act on is a ``CivicError`` subclass carrying a
stable ``code`` and the HTTP status it maps to. The API layer turns these into
``{"success": false, "message", "code", "details"}`` bodies and the client
turns those bodies back into the same exception types.
"""

from __future__ import annotations

from typing import Any


class CivicError(Exception):
    """Base class for all civictrack errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(CivicError, ValueError):
    """Missing or malformed input. ``details`` maps field name to problem."""

    code = "VALIDATION_ERROR"
    status_code = 400

    @classmethod
    def for_field(cls, field: str, problem: str) -> ValidationError:
        return cls(f"{field}: {problem}", details={field: problem})


class DuplicateEmailError(CivicError, ValueError):
    code = "DUPLICATE_EMAIL"
    status_code = 400


class InvalidCredentialsError(CivicError):
    code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self) -> None:
        # One message for unknown email, wrong password and deactivated account.
        super().__init__("Invalid email or password")


class InvalidTokenError(CivicError):
    code = "INVALID_TOKEN"
    status_code = 401


class ExpiredTokenError(InvalidTokenError):
    code = "TOKEN_EXPIRED"


class MissingTokenError(CivicError):
    code = "TOKEN_MISSING"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(CivicError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(CivicError, KeyError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidTransitionError(CivicError, ValueError):
    """Raised when current -> target is not a legal status move."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, from_status: str, to_status: str, reason: str = "") -> None:
        self.from_status = from_status
        self.to_status = to_status
        msg = f"Transition '{from_status}' -> '{to_status}' is not allowed"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, details={"from": from_status, "to": to_status})


class ConflictError(CivicError):
    """Another writer changed the issue first; re-read and retry."""

    code = "CONFLICT"
    status_code = 409


class InternalError(CivicError):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


class RequestTimeoutError(CivicError):
    """Client-side: the server did not answer within the configured timeout."""

    code = "TIMEOUT"
    status_code = 504


_BY_CODE: dict[str, type[CivicError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        DuplicateEmailError,
        InvalidTokenError,
        ExpiredTokenError,
        MissingTokenError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        RequestTimeoutError,
    )
}


def error_from_payload(payload: dict[str, Any], status_code: int) -> CivicError:
    """Rebuild a typed error from an API error body."""
    code = str(payload.get("code", ""))
    message = str(payload.get("message", "")) or f"HTTP {status_code}"
    details = payload.get("details") if isinstance(payload.get("details"), dict) else {}
    if code == "INVALID_CREDENTIALS":
        return InvalidCredentialsError()
    if code == "INVALID_TRANSITION":
        err = InvalidTransitionError(str(details.get("from", "")), str(details.get("to", "")))
        err.message = message
        err.args = (message,)
        return err
    if code == "INTERNAL_ERROR" or code not in _BY_CODE:
        return InternalError(message)
    cls = _BY_CODE[code]
    if cls is MissingTokenError:
        return MissingTokenError(message)
    return cls(message, details=details)
