from __future__ import annotations

import logging

from chat_client.application.exceptions import ChatClientError
from chat_client.application.ports.api import ConversationApi
from chat_client.application.ports.clock import Scheduler, Timer
from chat_client.config import Settings
from chat_client.services.directory import ConversationDirectory

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Coalesces mark-as-read calls per counterparty.

    While a counterparty is in flight further requests are dropped. It leaves
    the in-flight set ``IN_FLIGHT_CLEAR_DELAY`` after the call settles,
    whatever the outcome.
    """

    def __init__(
        self,
        api: ConversationApi,
        directory: ConversationDirectory,
        scheduler: Scheduler,
        settings: Settings,
    ) -> None:
        self._api = api
        self._directory = directory
        self._scheduler = scheduler
        self._settings = settings
        self._in_flight: set[str] = set()
        self._timers: list[Timer] = []

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    async def mark_read(self, counterparty_id: str) -> bool:
        if counterparty_id in self._in_flight:
            logger.debug("Mark-read for %s already in flight", counterparty_id)
            return False
        conversation = self._directory.get(counterparty_id)
        if conversation is None:
            logger.debug("Mark-read for unknown counterparty %s ignored", counterparty_id)
            return False

        self._in_flight.add(counterparty_id)
        try:
            await self._api.mark_read(conversation)
        except ChatClientError as exc:
            logger.warning("Mark-read for %s failed: %s", counterparty_id, exc.detail)
            return False
        finally:
            self._release_later(counterparty_id)
        await self._directory.apply_read_acknowledgement(counterparty_id)
        return True

    def _release_later(self, counterparty_id: str) -> None:
        async def _release() -> None:
            self._in_flight.discard(counterparty_id)

        self._track(self._scheduler.call_later(
            self._settings.IN_FLIGHT_CLEAR_DELAY, _release, name="read-receipt-release",
        ))

    def schedule_mark_read(self, counterparty_id: str) -> None:
        async def _mark_if_still_selected() -> None:
            if self._directory.selected_id != counterparty_id:
                logger.debug("Selection moved away from %s, skipping mark-read", counterparty_id)
                return
            await self.mark_read(counterparty_id)

        self._track(self._scheduler.call_later(
            self._settings.MARK_READ_ON_SELECT_DELAY,
            _mark_if_still_selected,
            name="read-receipt-on-select",
        ))

    async def mark_all_read(self) -> bool:
        try:
            await self._api.mark_all_read()
        except ChatClientError as exc:
            logger.warning("Mark-all-read failed: %s", exc.detail)
            return False
        await self._directory.apply_all_read()
        return True

    def _track(self, timer: Timer) -> None:
        self._timers = [t for t in self._timers if not t.done()]
        self._timers.append(timer)

    def close(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._in_flight.clear()
