"""Authenticated JSON client for the REST collaborator."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_client.application.exceptions import (
    AuthenticationError,
    CollaboratorError,
    MalformedResponseError,
)
from chat_client.application.ports.auth import CredentialProvider
from chat_client.services.auth_guard import AuthGuard

logger = logging.getLogger(__name__)


class CollaboratorClient:
    """Thin ``httpx.AsyncClient`` wrapper.

    - Sends ``Authorization: Bearer <credential>``.
    - A 401 triggers one credential refresh and one retry; a second 401 is
      counted by the ``AuthGuard``.
    - Unwraps the ``{"success": ..., "data": ...}`` envelope.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        guard: AuthGuard,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._guard = guard
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", path, json=json)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        self._guard.check()
        credential = self._credentials.current()
        if not credential:
            raise AuthenticationError("No credential available")

        response = await self._send(method, path, credential, **kwargs)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            try:
                credential = await self._credentials.refresh()
            except AuthenticationError as exc:
                await self._guard.trip(exc.detail or "Credential refresh failed")
                raise
            response = await self._send(method, path, credential, **kwargs)
            if response.status_code == httpx.codes.UNAUTHORIZED:
                await self._guard.record_failure(f"{method} {path} rejected after refresh")
                raise AuthenticationError(f"{method} {path} rejected after refresh")

        if response.is_error:
            raise CollaboratorError(
                _error_detail(response) or f"{method} {path} failed",
                status_code=response.status_code,
            )
        self._guard.record_success()

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"{method} {path} returned non-JSON body",
                status_code=response.status_code,
            ) from exc
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def _send(
        self,
        method: str,
        path: str,
        credential: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {credential}"}
        try:
            return await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise CollaboratorError(f"{method} {path}: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or "")
    return ""
