"""Async HTTP client for the civictrack API.

One client per base URL. Credentials are passed per call via ``token=`` and
never stored on the client, so a single instance can serve several users.
Error bodies are mapped back to the typed exceptions in ``civictrack.errors``.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from civictrack.errors import CivicError, InternalError, RequestTimeoutError, error_from_payload

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8390/api"
DEFAULT_TIMEOUT = 10.0


def default_api_url() -> str:
    return os.getenv("CIVICTRACK_API_URL") or DEFAULT_API_URL


class CivicClient:
    """Thin async wrapper over the ``/api`` endpoints.

    Use as an async context manager, or call :meth:`aclose` when done::

        async with CivicClient() as client:
            auth = await client.login("ana@example.com", "secret1")
            page = await client.my_issues(token=auth["token"])
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or default_api_url()).rstrip("/")
        self.timeout = timeout
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> CivicClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._http.request(method, path, headers=headers, json=json, params=params, data=data, files=files)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"Request timed out after {self.timeout}s: {method} {path}") from exc
        except httpx.RequestError as exc:
            raise CivicError(f"Request failed: {method} {path}: {exc}") from exc

        if response.is_success:
            return response.json()
        try:
            payload = response.json()
        except ValueError:
            raise InternalError(f"HTTP {response.status_code}: {response.text[:200]}") from None
        if not isinstance(payload, dict):
            raise InternalError(f"HTTP {response.status_code}")
        err = error_from_payload(payload, response.status_code)
        logger.debug("API %s %s failed: %s %s", method, path, err.code, err.message)
        raise err

    # -- auth ----------------------------------------------------------------

    async def signup(self, name: str, email: str, password: str, **profile: Any) -> dict[str, Any]:
        return await self._request("POST", "/auth/signup", json={"name": name, "email": email, "password": password, **profile})

    async def login(self, email: str, password: str) -> dict[str, Any]:
        return await self._request("POST", "/auth/login", json={"email": email, "password": password})

    async def me(self, *, token: str) -> dict[str, Any]:
        return await self._request("GET", "/auth/me", token=token)

    async def update_profile(self, *, token: str, **changes: Any) -> dict[str, Any]:
        return await self._request("PUT", "/auth/me", token=token, json=changes)

    # -- issues --------------------------------------------------------------

    async def list_issues(self, *, token: str | None = None, **query: Any) -> dict[str, Any]:
        return await self._request("GET", "/issues", token=token, params=query)

    async def my_issues(self, *, token: str, **query: Any) -> dict[str, Any]:
        return await self._request("GET", "/issues/me", token=token, params=query)

    async def filter_issues(self, *, token: str, **query: Any) -> dict[str, Any]:
        return await self._request("GET", "/issues/search/filter", token=token, params=query)

    async def my_stats(self, *, token: str) -> dict[str, Any]:
        return await self._request("GET", "/issues/stats/user", token=token)

    async def get_issue(self, issue_id: str, *, token: str | None = None) -> dict[str, Any]:
        return await self._request("GET", f"/issues/{issue_id}", token=token)

    async def transitions(self, issue_id: str, *, token: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/issues/{issue_id}/transitions", token=token)

    async def create_issue(self, payload: dict[str, Any], *, token: str) -> dict[str, Any]:
        return await self._request("POST", "/issues", token=token, json=payload)

    async def upload_issue(
        self,
        fields: dict[str, Any],
        photos: list[tuple[str, bytes, str]],
        *,
        token: str,
    ) -> dict[str, Any]:
        """Create an issue with image attachments given as (filename, content, content_type)."""
        files = [("photos", photo) for photo in photos]
        return await self._request("POST", "/issues/upload", token=token, data=fields, files=files)

    async def update_issue(self, issue_id: str, *, token: str, **changes: Any) -> dict[str, Any]:
        """Send any of status, assigned_to, note, version."""
        return await self._request("PUT", f"/issues/{issue_id}", token=token, json=changes)

    async def delete_issue(self, issue_id: str, *, token: str, version: int | None = None) -> dict[str, Any]:
        return await self._request("DELETE", f"/issues/{issue_id}", token=token, params={"version": version})

    # -- admin ---------------------------------------------------------------

    async def admin_issues(self, *, token: str, **query: Any) -> dict[str, Any]:
        return await self._request("GET", "/admin/issues", token=token, params=query)

    async def assign_issue(self, issue_id: str, assignee_id: str, *, token: str, note: str | None = None) -> dict[str, Any]:
        return await self._request("PUT", f"/admin/issues/{issue_id}/assign", token=token, json={"assigned_to": assignee_id, "note": note})

    async def set_status(
        self,
        issue_id: str,
        status: str,
        *,
        token: str,
        note: str | None = None,
        version: int | None = None,
    ) -> dict[str, Any]:
        body = {"status": status, "note": note, "version": version}
        return await self._request("PUT", f"/admin/issues/{issue_id}/status", token=token, json=body)

    async def admin_stats(self, *, token: str) -> dict[str, Any]:
        return await self._request("GET", "/admin/stats", token=token)

    async def list_users(self, *, token: str, role: str | None = None) -> list[dict[str, Any]]:
        return await self._request("GET", "/admin/users", token=token, params={"role": role})

    async def create_user(self, *, token: str, **user: Any) -> dict[str, Any]:
        return await self._request("POST", "/admin/users", token=token, json=user)

    async def set_user_active(self, user_id: str, active: bool, *, token: str) -> dict[str, Any]:
        return await self._request("PUT", f"/admin/users/{user_id}/active", token=token, json={"active": active})

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")
