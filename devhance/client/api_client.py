"""DevhanceClient — async HTTP client for the DevHance API.

Used by the client data layer (GateController, page loaders). Every call
attaches the current session token when one is available and maps error
statuses back onto the server's exception taxonomy so callers can branch on
type (inline form errors vs. sign-in redirect) instead of status codes.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import structlog

from devhance.core.config import get_settings
from devhance.core.exceptions import (
    Conflict,
    DevhanceError,
    Forbidden,
    NotFound,
    Unauthorized,
    UpstreamError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True)
class UploadFile:
    """An image to send in a multipart form."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def _form_value(value: object) -> str:
    """Multipart encoding: lists as JSON arrays, booleans as true/false."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return str(value)


def encode_form(fields: dict) -> dict[str, str]:
    return {key: _form_value(value) for key, value in fields.items() if value is not None}


def raise_for_status(response: httpx.Response) -> None:
    """Translate an error response into the matching DevhanceError subclass."""
    if response.is_success:
        return

    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail") or response.reason_phrase or "Request failed"
    if not isinstance(detail, str):
        detail = str(detail)
    errors = body.get("errors") or []

    status = response.status_code
    if status == 400:
        raise ValidationError(detail, errors=errors)
    if status == 401:
        raise Unauthorized(detail)
    if status == 403:
        raise Forbidden(detail)
    if status == 404:
        raise NotFound(detail)
    if status == 409:
        field = errors[0].get("field") if errors else None
        raise Conflict(detail, field=field)
    if status >= 500:
        raise UpstreamError(detail)

    error = DevhanceError(detail)
    error.status_code = status
    raise error


class DevhanceClient:
    """Client for the DevHance REST API.

    Args:
        base_url: API origin, defaults to ``settings.backend_url``
        token_provider: async callable returning the current session token (or None)
        transport: optional httpx transport (``httpx.ASGITransport`` in tests)
        timeout: per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
    ):
        self.base_url = (base_url or get_settings().backend_url).rstrip("/")
        self.token_provider = token_provider
        self.transport = transport
        self.timeout = timeout

    async def _headers(self, authenticated: bool) -> dict[str, str]:
        if not authenticated or self.token_provider is None:
            return {}
        token = await self.token_provider()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        authenticated: bool = True,
        **kwargs,
    ) -> httpx.Response:
        headers = await self._headers(authenticated)
        async with httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            timeout=self.timeout,
        ) as client:
            response = await client.request(method, f"/api{path}", headers=headers, **kwargs)

        if not response.is_success:
            logger.info(
                "api_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                request_id=response.headers.get("X-Request-ID"),
            )
        raise_for_status(response)
        return response

    async def _json(self, method: str, path: str, authenticated: bool = True, **kwargs):
        response = await self._request(method, path, authenticated=authenticated, **kwargs)
        if response.status_code == 204:
            return None
        return response.json()

    @staticmethod
    def _files(field: str, uploads: list[UploadFile] | None) -> list[tuple]:
        return [(field, (u.filename, u.content, u.content_type)) for u in uploads or []]

    # ── Projects ────────────────────────────────────────────────────

    async def discover(self) -> list[dict]:
        return await self._json("GET", "/projects/discover", authenticated=False)

    async def my_projects(self) -> list[dict]:
        return await self._json("GET", "/projects/my-projects")

    async def get_project(self, project_id: str) -> dict:
        return await self._json("GET", f"/projects/{project_id}")

    async def create_project(self, fields: dict, images: list[UploadFile] | None = None) -> dict:
        """``fields`` use the form names (title, techStack, isPublic, ...)."""
        return await self._json(
            "POST",
            "/projects",
            data=encode_form(fields),
            files=self._files("images", images) or None,
        )

    async def update_project(
        self,
        project_id: str,
        fields: dict,
        images: list[UploadFile] | None = None,
    ) -> dict:
        return await self._json(
            "PUT",
            f"/projects/{project_id}",
            data=encode_form(fields),
            files=self._files("images", images) or None,
        )

    async def delete_project(self, project_id: str) -> dict:
        return await self._json("DELETE", f"/projects/{project_id}")

    async def like(self, project_id: str) -> dict:
        return await self._json("POST", f"/projects/{project_id}/like")

    async def unlike(self, project_id: str) -> dict:
        return await self._json("DELETE", f"/projects/{project_id}/like")

    # ── Comments ────────────────────────────────────────────────────

    async def list_comments(self, project_id: str) -> list[dict]:
        return await self._json("GET", f"/projects/{project_id}/comments")

    async def add_comment(self, project_id: str, text: str) -> dict:
        return await self._json("POST", f"/projects/{project_id}/comments", json={"text": text})

    async def update_comment(self, project_id: str, comment_id: str, text: str) -> dict:
        return await self._json(
            "PUT", f"/projects/{project_id}/comments/{comment_id}", json={"text": text}
        )

    async def delete_comment(self, project_id: str, comment_id: str) -> None:
        await self._json("DELETE", f"/projects/{project_id}/comments/{comment_id}")

    # ── Users ───────────────────────────────────────────────────────

    async def get_profile(self) -> dict:
        return await self._json("GET", "/users/profile")

    async def save_profile(self, fields: dict, image: UploadFile | None = None) -> dict:
        """``fields`` use the form names (displayName, username, githubUrl, ...)."""
        return await self._json(
            "POST",
            "/users/profile",
            data=encode_form(fields),
            files=self._files("image", [image] if image else None) or None,
        )

    async def sync_user(self, user_data: dict) -> dict:
        return await self._json("POST", "/users/sync", json={"userData": user_data})

    async def get_user(self, username: str) -> dict:
        return await self._json("GET", f"/users/{username}", authenticated=False)

    async def get_user_projects(self, username: str) -> list[dict]:
        return await self._json("GET", f"/users/{username}/projects", authenticated=False)
