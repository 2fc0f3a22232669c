"""Issue listing, reporting, and lifecycle route handlers."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.requests import Request

from civictrack.api_routes.common import _expected_version, _issue_view, _page_response, _parse_json_body, _parse_listing
from civictrack.auth import Actor, require_staff
from civictrack.core import CivicDB
from civictrack.errors import ValidationError
from civictrack.storage import BlobStore
from civictrack.validation import IssueCreate
from civictrack.workflow import MAX_PHOTOS, get_valid_transitions

if TYPE_CHECKING:
    from fastapi import APIRouter

    from civictrack.core import Issue

logger = logging.getLogger(__name__)


def _form_location(value: Any) -> Any:
    """Multipart forms carry a nested location as a JSON string."""
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            raise ValidationError.for_field("location", "is not valid JSON") from None
    return value


def apply_issue_update(db: CivicDB, issue_id: str, body: dict[str, Any], actor: Actor) -> Issue:
    """Apply a staff update body: any of ``status``, ``assigned_to``, ``note``.

    Status and assignment land together as one timeline entry, or not at all.
    A note alone is recorded as an annotation. ``version`` guards the write.
    """
    status = body.get("status")
    assignee = body.get("assigned_to")
    note = body.get("note")
    expected = _expected_version(body.get("version"))
    if status in (None, "") and assignee in (None, "") and note in (None, ""):
        raise ValidationError("Nothing to update: send status, assigned_to, or note")

    if status in (None, "") and assignee in (None, ""):
        return db.add_note(issue_id, note, actor=actor, expected_version=expected)
    return db.update_issue(
        issue_id,
        actor=actor,
        status=None if status in (None, "") else status,
        assigned_to=None if assignee in (None, "") else assignee,
        note=note,
        expected_version=expected,
    )


def create_router() -> APIRouter:
    """Build the APIRouter for ``/api/issues``.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    serializes DB access on the event loop thread, so the single shared
    connection is never touched from two threads at once.
    """
    from fastapi import APIRouter, Depends

    from civictrack.api import _current_actor, _get_blob_store, _get_db, _optional_actor

    router = APIRouter()

    @router.get("")
    async def api_list_issues(
        request: Request,
        actor: Actor | None = Depends(_optional_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        """Public listing. Non-owners see the public projection of each issue."""
        filters, options = _parse_listing(request.query_params)
        return _page_response(db.list_issues(filters, **options), actor)

    @router.get("/me")
    async def api_my_issues(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        filters, options = _parse_listing(request.query_params, owner_id=actor.user_id)
        return _page_response(db.list_issues(filters, **options), actor)

    @router.get("/search/filter")
    async def api_filter_issues(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        """Staff listing over every issue, optionally narrowed to one reporter."""
        require_staff(actor)
        filters, options = _parse_listing(request.query_params, owner_id=request.query_params.get("owner_id"))
        return _page_response(db.list_issues(filters, **options), actor)

    @router.get("/stats/user")
    async def api_my_stats(actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse(db.get_stats(owner_id=actor.user_id))

    @router.post("")
    async def api_create_issue(request: Request, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        """Create from a JSON body. Photos, if any, are already-hosted URLs."""
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("multipart/"):
            raise ValidationError("Multipart submissions go to /api/issues/upload")
        body = await _parse_json_body(request)
        payload = IssueCreate.from_body(body)
        photos = body.get("photos") or []
        if not isinstance(photos, list):
            raise ValidationError.for_field("photos", "must be a list of URLs")
        issue = db.create_issue(payload, actor=actor, photos=photos)
        return JSONResponse(issue.to_dict(), status_code=201)

    @router.post("/upload")
    async def api_upload_issue(
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
        blobs: BlobStore = Depends(_get_blob_store),
    ) -> JSONResponse:
        """Create from a multipart form with up to five ``photos`` image parts."""
        content_type = request.headers.get("content-type", "")
        if not content_type.startswith("multipart/form-data"):
            raise ValidationError("Uploads must be multipart/form-data; use /api/issues for JSON")
        form = await request.form()
        fields: dict[str, Any] = {k: v for k, v in form.multi_items() if not isinstance(v, UploadFile)}
        if "location" in fields:
            fields["location"] = _form_location(fields["location"])
        payload = IssueCreate.from_body(fields)

        files = [f for f in form.getlist("photos") if isinstance(f, UploadFile)]
        if len(files) > MAX_PHOTOS:
            raise ValidationError.for_field("photos", f"at most {MAX_PHOTOS} photos are allowed")
        urls: list[str] = []
        try:
            for upload in files:
                content = await upload.read()
                urls.append(blobs.put(upload.filename or "photo", content, upload.content_type or ""))
            issue = db.create_issue(payload, actor=actor, photos=urls)
        except Exception:
            # Stored blobs would otherwise be orphaned
            for url in urls:
                blobs.delete(url)
            raise
        return JSONResponse(issue.to_dict(), status_code=201)

    @router.get("/{issue_id}")
    async def api_issue_detail(
        issue_id: str,
        actor: Actor | None = Depends(_optional_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        return JSONResponse(_issue_view(db.get_issue(issue_id), actor))

    @router.get("/{issue_id}/transitions")
    async def api_issue_transitions(issue_id: str, actor: Actor = Depends(_current_actor), db: CivicDB = Depends(_get_db)) -> JSONResponse:
        """Statuses the caller may move this issue to next."""
        require_staff(actor)
        issue = db.get_issue(issue_id)
        return JSONResponse(
            [
                {"to": t.to, "reopen": t.reopen, "requires_note": t.requires_note}
                for t in get_valid_transitions(issue.status, actor.role)
            ]
        )

    @router.put("/{issue_id}")
    async def api_update_issue(
        issue_id: str,
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        require_staff(actor)
        body = await _parse_json_body(request)
        issue = apply_issue_update(db, issue_id, body, actor)
        return JSONResponse(issue.to_dict())

    @router.delete("/{issue_id}")
    async def api_delete_issue(
        issue_id: str,
        request: Request,
        actor: Actor = Depends(_current_actor),
        db: CivicDB = Depends(_get_db),
    ) -> JSONResponse:
        expected = _expected_version(request.query_params.get("version"))
        db.delete_issue(issue_id, actor=actor, expected_version=expected)
        return JSONResponse({"success": True, "id": issue_id})

    return router
