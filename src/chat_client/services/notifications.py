"""Decides whether an inbound message deserves an out-of-band alert."""
from __future__ import annotations

import logging

from chat_client.application.ports.bus import EventPublisher
from chat_client.application.ports.clock import Scheduler, Timer
from chat_client.config import Settings
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message
from chat_client.domain.events.alerts import AlertRaised
from chat_client.domain.value_objects.channel import ChannelProfile
from chat_client.domain.value_objects.enums import ChannelKind
from chat_client.services.directory import ConversationDirectory

logger = logging.getLogger(__name__)

ELLIPSIS = "..."


def truncate_preview(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


class NotificationSurface:
    def __init__(
        self,
        profile: ChannelProfile,
        identity: Identity,
        directory: ConversationDirectory,
        publisher: EventPublisher,
        scheduler: Scheduler,
        settings: Settings,
    ) -> None:
        self._profile = profile
        self._identity = identity
        self._directory = directory
        self._publisher = publisher
        self._scheduler = scheduler
        self._settings = settings
        self._current_view: str | None = None
        self._pending: list[Timer] = []

    @property
    def current_view(self) -> str | None:
        return self._current_view

    def set_current_view(self, path: str | None) -> None:
        self._current_view = path

    def is_viewing_live_surface(self) -> bool:
        view = self._current_view or ""
        return view == self._profile.live_view or view.startswith(self._profile.live_view + "/")

    def build_alert(self, message: Message) -> AlertRaised | None:
        """Return the alert for ``message``, or None when it is suppressed."""
        if message.sender_id == self._identity.user_id:
            return None
        if self.is_viewing_live_surface():
            return None
        if self._profile.alert_only_from_customers and not message.is_from_customer:
            return None

        text = message.body
        if self._profile.kind == ChannelKind.INTERNAL_MAIL and message.subject:
            text = message.subject
        return AlertRaised(
            title=self._title_for(message),
            preview=truncate_preview(text, self._settings.PREVIEW_MAX_LENGTH),
            action_path=self._profile.live_view,
            counterparty_id=message.conversation_key,
        )

    def _title_for(self, message: Message) -> str:
        conversation = self._directory.get(message.conversation_key)
        if conversation is not None and conversation.display_name:
            return conversation.display_name
        if message.sender is not None and message.sender.display_name:
            return message.sender.display_name
        return self._profile.default_alert_title

    async def consider(self, message: Message) -> bool:
        """Schedule the alert for ``message``; True when one was scheduled."""
        alert = self.build_alert(message)
        if alert is None:
            return False

        async def _emit() -> None:
            # The user may have opened the live view in the meantime.
            if self.is_viewing_live_surface():
                return
            logger.debug("Raising alert for message %s", message.id)
            await self._publisher.publish(alert)

        self._pending = [t for t in self._pending if not t.done()]
        self._pending.append(
            self._scheduler.call_later(self._settings.ALERT_DELAY, _emit, name="alert")
        )
        return True

    def close(self) -> None:
        for timer in self._pending:
            timer.cancel()
        self._pending.clear()
