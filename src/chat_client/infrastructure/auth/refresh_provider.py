"""Bearer credential holder that renews itself through ``/auth/refresh``."""
from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from chat_client.application.exceptions import AuthenticationError
from chat_client.infrastructure.http.schemas import RefreshTokenRequest, TokenPairSchema

logger = logging.getLogger(__name__)


class RefreshingCredentialProvider:
    def __init__(
        self,
        base_url: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._access_token: str | None = access_token or None
        self._refresh_token = refresh_token
        self._lock = asyncio.Lock()
        # A plain client: refreshing must not recurse through the 401 retry.
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def current(self) -> str | None:
        return self._access_token

    def replace(self, access_token: str, refresh_token: str | None = None) -> None:
        self._access_token = access_token
        if refresh_token is not None:
            self._refresh_token = refresh_token

    async def refresh(self) -> str:
        stale = self._access_token
        async with self._lock:
            # Another caller refreshed while we waited.
            if self._access_token and self._access_token != stale:
                return self._access_token
            if not self._refresh_token:
                raise AuthenticationError("No refresh token available")

            body = RefreshTokenRequest(refresh_token=self._refresh_token)
            try:
                response = await self._http.post(
                    "/auth/refresh", json=body.model_dump(by_alias=True),
                )
            except httpx.HTTPError as exc:
                raise AuthenticationError(f"Credential refresh failed: {exc}") from exc
            if response.is_error:
                raise AuthenticationError(
                    f"Credential refresh rejected ({response.status_code})"
                )

            try:
                payload = response.json()
                data = payload.get("data", payload) if isinstance(payload, dict) else payload
                pair = TokenPairSchema.model_validate(data)
            except (ValueError, ValidationError) as exc:
                raise AuthenticationError("Credential refresh returned no token") from exc

            self.replace(pair.access_token, pair.refresh_token)
            logger.info("Bearer credential refreshed")
            return pair.access_token

    async def aclose(self) -> None:
        await self._http.aclose()
