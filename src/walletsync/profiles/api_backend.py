"""Profile backend that talks to the web app's ``/api/users`` endpoint.

This is the authoritative tier: the endpoint runs the app's own
authorization and creation logic. It never carries privileged fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from walletsync.errors import ConflictError, TransientBackendError
from walletsync.profiles.backend import ProfileBackend
from walletsync.profiles.schemas import UserProfile, writable_fields

logger = structlog.get_logger()


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value.isoformat() if isinstance(value, datetime) else value for key, value in fields.items()}


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        msg = f"profile API returned a non-JSON body ({response.status_code})"
        raise TransientBackendError(msg) from exc


def _parse_profile(payload: Any) -> UserProfile:
    if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
        payload = payload["user"]
    try:
        return UserProfile.model_validate(payload)
    except PydanticValidationError as exc:
        msg = "profile API returned an unexpected payload"
        raise TransientBackendError(msg) from exc


class HttpProfileBackend(ProfileBackend):
    """``ProfileBackend`` over HTTP using httpx."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        name: str = "api",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self.name = name

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientBackendError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 409:
            raise ConflictError(response.text)
        if response.status_code >= 400 and response.status_code != 404:
            msg = f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            raise TransientBackendError(msg)
        return response

    async def read(self, wallet_address: str) -> UserProfile | None:
        response = await self._request("GET", f"/api/users/{wallet_address}")
        if response.status_code == 404:
            return None
        return _parse_profile(_json(response))

    async def upsert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        body = {"wallet_address": wallet_address, **_jsonable(writable_fields(fields, privileged=False))}
        response = await self._request("POST", "/api/users", json=body)
        if response.status_code == 404:
            msg = "profile API endpoint not found"
            raise TransientBackendError(msg)
        return _parse_profile(_json(response))

    async def list_profiles(self, limit: int = 1000) -> list[UserProfile]:
        response = await self._request("GET", "/api/users", params={"limit": limit})
        if response.status_code == 404:
            return []
        payload = _json(response)
        rows = payload.get("users", []) if isinstance(payload, dict) else payload
        return [_parse_profile(row) for row in rows]
