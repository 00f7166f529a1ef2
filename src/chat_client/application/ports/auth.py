from __future__ import annotations

from typing import Protocol

from chat_client.domain.entities.identity import Identity


class CredentialProvider(Protocol):
    def current(self) -> str | None: ...

    def replace(self, access_token: str) -> None: ...

    async def refresh(self) -> str:
        """Return a fresh bearer credential or raise ``AuthenticationError``."""
        ...


class IdentityDecoder(Protocol):
    def decode(self, credential: str) -> Identity: ...
