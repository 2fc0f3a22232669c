"""HTTP API for civictrack.

A module-level ``_db`` / ``_gate`` / ``_blob_store`` triple is set at
startup (or by test fixtures) and injected into handlers via ``Depends``.
Every failure a handler raises as a ``CivicError`` is rendered as
``{"success": false, "message", "code", "details"}``; anything else is
logged with its traceback and answered with an opaque 500.

Usage:
    civictrack serve                  # http://127.0.0.1:8390/api
    civictrack serve --port 9000
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

from civictrack.auth import Actor, AuthGate
from civictrack.core import CivicDB, find_civic_root, load_settings
from civictrack.errors import CivicError, InternalError, MissingTokenError
from civictrack.storage import BlobStore, LocalBlobStore

DEFAULT_PORT = 8390
DEFAULT_HOST = "127.0.0.1"

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: CivicDB | None = None
_gate: AuthGate | None = None
_blob_store: BlobStore | None = None


def _get_db() -> CivicDB:
    if _db is None:
        raise InternalError("Database not initialized")
    return _db


def _get_gate() -> AuthGate:
    if _gate is None:
        raise InternalError("Authorization gate not initialized")
    return _gate


def _get_blob_store() -> BlobStore:
    if _blob_store is None:
        raise InternalError("Blob storage not configured")
    return _blob_store


async def _optional_actor(request: Request) -> Actor | None:
    """Actor for the request's bearer token, or None when no token was sent."""
    return _get_gate().verify_optional(request.headers.get("authorization"))


async def _current_actor(request: Request) -> Actor:
    actor = await _optional_actor(request)
    if actor is None:
        raise MissingTokenError()
    return actor


def create_app() -> Any:
    """Create the FastAPI application with all ``/api`` endpoints."""
    from fastapi import FastAPI
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.staticfiles import StaticFiles

    from civictrack.api_routes import admin, auth, issues
    from civictrack.api_routes.common import _error_response

    app = FastAPI(title="civictrack", docs_url=None, redoc_url=None)

    app.include_router(auth.create_router(), prefix="/api/auth")
    app.include_router(issues.create_router(), prefix="/api/issues")
    app.include_router(admin.create_router(), prefix="/api/admin")

    @app.exception_handler(CivicError)
    async def _civic_error_handler(request: Request, exc: CivicError) -> JSONResponse:
        return _error_response(exc.message, exc.code, exc.status_code, exc.details)

    class RequestLogMiddleware(BaseHTTPMiddleware):
        """Log each request and turn unexpected exceptions into opaque 500s."""

        async def dispatch(self, request: Request, call_next: Any) -> Any:
            start = perf_counter()
            route = f"{request.method} {request.url.path}"
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = round((perf_counter() - start) * 1000, 1)
                logger.error(
                    "Unhandled error on %s",
                    route,
                    exc_info=True,
                    extra={"route": route, "duration_ms": duration_ms, "error": type(exc).__name__},
                )
                return JSONResponse(
                    {"success": False, "message": "Internal server error", "code": "INTERNAL_ERROR", "details": {}},
                    status_code=500,
                )
            duration_ms = round((perf_counter() - start) * 1000, 1)
            logger.info(
                "%s -> %d",
                route,
                response.status_code,
                extra={"route": route, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            return response

    app.add_middleware(RequestLogMiddleware)

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        db = _get_db()
        return JSONResponse({"status": "ok", "schema_version": db.get_schema_version()})

    if isinstance(_blob_store, LocalBlobStore):
        app.mount("/uploads", StaticFiles(directory=str(_blob_store.root), check_dir=False), name="uploads")

    return app


def main(port: int = DEFAULT_PORT, *, host: str = DEFAULT_HOST) -> None:
    """Start the API server for the .civictrack/ project found from cwd."""
    import uvicorn

    from civictrack.logging import setup_logging

    global _db, _gate, _blob_store

    civic_dir = find_civic_root()
    setup_logging(civic_dir)
    settings = load_settings(civic_dir)
    _db = CivicDB.from_settings(settings, check_same_thread=False)
    _gate = AuthGate(settings.token_codec(), db=_db)
    _blob_store = LocalBlobStore(settings.uploads_dir, settings.base_url)

    app = create_app()
    print(f"civictrack API: http://{host}:{port}/api")
    uvicorn.run(app, host=host, port=port, log_level="warning")
