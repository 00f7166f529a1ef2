"""Keeps the joined tenant rooms in line with identity scope and directory."""
from __future__ import annotations

import logging
from typing import Callable, Iterable

from chat_client.application.exceptions import ChatClientError
from chat_client.domain.entities.identity import Identity
from chat_client.domain.events.connection import ConnectionStateChanged
from chat_client.domain.events.directory import DirectoryChanged
from chat_client.domain.value_objects.enums import ConnectionState
from chat_client.infrastructure.bus.local_bus import LocalEventBus
from chat_client.infrastructure.socket.protocol import JOIN_TENANT_EVENT
from chat_client.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class RoomMembership:
    """Issues idempotent ``join-tenant`` commands.

    Membership does not survive a reconnect, so the joined set is forgotten on
    every disconnect and the full desired set is re-joined on CONNECTED.
    Directory changes only join rooms that are new.
    """

    def __init__(
        self,
        identity: Identity,
        connection: ConnectionManager,
        bus: LocalEventBus,
        tenant_slugs: Callable[[], Iterable[str]],
    ) -> None:
        self._identity = identity
        self._connection = connection
        self._tenant_slugs = tenant_slugs
        self._joined: set[str] = set()
        self._unsubscribers = [
            bus.subscribe(ConnectionStateChanged, self._on_state_changed),
            bus.subscribe(DirectoryChanged, self._on_directory_changed),
        ]

    @property
    def joined(self) -> frozenset[str]:
        return frozenset(self._joined)

    def desired_rooms(self) -> set[str]:
        if not self._identity.is_elevated:
            slug = self._identity.tenant_slug
            return {slug} if slug else set()
        return {slug for slug in self._tenant_slugs() if slug}

    async def rejoin_all(self) -> None:
        self._joined.clear()
        await self._join(sorted(self.desired_rooms()))

    async def sync(self) -> None:
        """Join rooms implied by the directory that are not joined yet."""
        missing = self.desired_rooms() - self._joined
        await self._join(sorted(missing))

    async def ensure_joined(self, slug: str | None) -> None:
        if not slug or not self._identity.is_elevated or slug in self._joined:
            return
        await self._join([slug])

    async def _join(self, slugs: list[str]) -> None:
        if not slugs or not self._connection.is_connected:
            return
        for slug in slugs:
            try:
                await self._connection.emit(JOIN_TENANT_EVENT, slug)
            except ChatClientError as exc:
                logger.warning("Could not join tenant room %s: %s", slug, exc.detail)
                continue
            self._joined.add(slug)
            logger.debug("Joined tenant room %s", slug)

    async def _on_state_changed(self, event: ConnectionStateChanged) -> None:
        if event.current == ConnectionState.CONNECTED:
            await self.rejoin_all()
        elif event.previous == ConnectionState.CONNECTED:
            self._joined.clear()

    async def _on_directory_changed(self, _event: DirectoryChanged) -> None:
        if self._identity.is_elevated:
            await self.sync()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
