"""Signup, login, and profile route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

from civictrack.api_routes.common import _parse_json_body
from civictrack.auth import Actor, AuthGate
from civictrack.core import CivicDB
from civictrack.types.api import AuthResponse
from civictrack.validation import ProfileUpdate

if TYPE_CHECKING:
    from fastapi import APIRouter

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for ``/api/auth``.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    serializes DB access on the event loop thread, so the single shared
    connection is never touched from two threads at once.
    """
    from fastapi import APIRouter, Depends

    from civictrack.api import _current_actor, _get_db, _get_gate

    router = APIRouter()

    @router.post("/signup")
    async def api_signup(request: Request, db: CivicDB = Depends(_get_db), gate: AuthGate = Depends(_get_gate)) -> JSONResponse:
        """Public self-registration. Always creates a citizen account."""
        body = await _parse_json_body(request)
        user = db.register(
            body.get("name"),  # type: ignore[arg-type]
            body.get("email"),  # type: ignore[arg-type]
            body.get("password"),  # type: ignore[arg-type]
            phone=body.get("phone") or None,
            ward=body.get("ward") or None,
        )
        token = gate.issue_token(user.id, user.role)
        return JSONResponse(AuthResponse(token=token, user=user.to_dict()), status_code=201)

    @router.post("/login")
    async def api_login(request: Request, db: CivicDB = Depends(_get_db), gate: AuthGate = Depends(_get_gate)) -> JSONResponse:
        body = await _parse_json_body(request)
        token, user = db.authenticate(body.get("email"), body.get("password"), codec=gate.codec)  # type: ignore[arg-type]
        logger.info("User %s logged in", user.id, extra={"actor": user.id})
        return JSONResponse(AuthResponse(token=token, user=user.to_dict()))

    @router.get("/me")
    async def api_me(actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse(db.get_user(actor.user_id).to_dict())

    @router.put("/me")
    async def api_update_me(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        user = db.update_user(actor.user_id, ProfileUpdate.from_body(body))
        return JSONResponse(user.to_dict())

    return router
