"""Staff and administrator route handlers: triage, stats, and user administration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

from civictrack.api_routes.common import _expected_version, _page_response, _parse_json_body, _parse_listing
from civictrack.auth import Actor, require_admin, require_staff
from civictrack.core import CivicDB
from civictrack.errors import ValidationError

if TYPE_CHECKING:
    from fastapi import APIRouter

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for ``/api/admin``.

    Issue triage and stats are open to staff and admins; user administration
    is admin-only.
    """
    from fastapi import APIRouter, Depends

    from civictrack.api import _current_actor, _get_db

    router = APIRouter()

    @router.get("/issues")
    async def api_admin_issues(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        require_staff(actor)
        filters, options = _parse_listing(request.query_params, owner_id=request.query_params.get("owner_id"))
        return _page_response(db.list_issues(filters, **options), actor)

    @router.put("/issues/{issue_id}/assign")
    async def api_admin_assign(
        issue_id: str,
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        require_staff(actor)
        body = await _parse_json_body(request)
        issue = db.assign_issue(
            issue_id,
            body.get("assigned_to"),  # type: ignore[arg-type]
            actor=actor,
            note=body.get("note"),
            expected_version=_expected_version(body.get("version")),
        )
        return JSONResponse(issue.to_dict())

    @router.put("/issues/{issue_id}/status")
    async def api_admin_status(
        issue_id: str,
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        require_staff(actor)
        body = await _parse_json_body(request)
        status = body.get("status")
        if not status:
            raise ValidationError.for_field("status", "is required")
        issue = db.transition_issue(
            issue_id,
            status,
            actor=actor,
            note=body.get("note"),
            expected_version=_expected_version(body.get("version")),
        )
        return JSONResponse(issue.to_dict())

    @router.get("/stats")
    async def api_admin_stats(actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        require_staff(actor)
        return JSONResponse(db.get_stats())

    @router.get("/users")
    async def api_admin_users(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        require_admin(actor)
        role = request.query_params.get("role") or None
        return JSONResponse([u.to_dict() for u in db.list_users(role=role)])

    @router.post("/users")
    async def api_admin_create_user(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        """Create an account with any role (staff onboarding)."""
        require_admin(actor)
        body = await _parse_json_body(request)
        user = db.register(
            body.get("name"),  # type: ignore[arg-type]
            body.get("email"),  # type: ignore[arg-type]
            body.get("password"),  # type: ignore[arg-type]
            role=body.get("role") or "citizen",
            phone=body.get("phone") or None,
            ward=body.get("ward") or None,
            department=body.get("department") or None,
        )
        logger.info("Admin %s created user %s (%s)", actor.user_id, user.id, user.role, extra={"actor": actor.user_id})
        return JSONResponse(user.to_dict(), status_code=201)

    @router.put("/users/{user_id}/active")
    async def api_admin_set_active(
        user_id: str,
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        require_admin(actor)
        body = await _parse_json_body(request)
        active = body.get("active")
        if not isinstance(active, bool):
            raise ValidationError.for_field("active", "must be true or false")
        user = db.set_user_active(user_id, active, actor=actor)
        return JSONResponse(user.to_dict())

    return router
