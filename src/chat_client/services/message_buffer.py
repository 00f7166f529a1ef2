"""Ordered, deduplicated history of the active conversation."""
from __future__ import annotations

import logging

from chat_client.application.exceptions import ChatClientError
from chat_client.application.ports.api import ConversationApi
from chat_client.config import Settings
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message, sort_messages
from chat_client.domain.entities.outgoing import OutgoingMessage
from chat_client.domain.value_objects.enums import SendStatus

logger = logging.getLogger(__name__)


class MessageBuffer:
    """Messages of exactly one conversation, ascending by ``(created_at, id)``.

    Every mutation goes through ``sort_messages`` so ordering and id
    uniqueness hold no matter in which order pushes arrive. Optimistic sends
    sit in a separate outbox until the authoritative copy shows up.
    """

    def __init__(self, api: ConversationApi, identity: Identity, settings: Settings) -> None:
        self._api = api
        self._identity = identity
        self._settings = settings
        self._conversation: Conversation | None = None
        self._messages: list[Message] = []
        self._has_more = False
        self._generation = 0
        self._outbox: dict[str, OutgoingMessage] = {}

    @property
    def active_key(self) -> str | None:
        return self._conversation.counterparty_id if self._conversation else None

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def has_more(self) -> bool:
        return self._has_more

    def contains(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self._messages)

    # ---- history -----------------------------------------------------------

    async def load(self, conversation: Conversation) -> bool:
        """Replace the buffer with the conversation's history.

        A response that arrives after another conversation was activated is
        discarded; returns False in that case.
        """
        self._generation += 1
        generation = self._generation
        if self.active_key != conversation.counterparty_id:
            self._messages = []
            self._has_more = False
        self._conversation = conversation

        try:
            page = await self._api.fetch_history(
                conversation, limit=self._settings.HISTORY_PAGE_SIZE,
            )
        except ChatClientError as exc:
            if generation == self._generation:
                logger.warning(
                    "Could not load history for %s: %s", conversation.counterparty_id, exc.detail,
                )
            return False

        if generation != self._generation:
            logger.debug("Discarding stale history for %s", conversation.counterparty_id)
            return False
        self._messages = sort_messages(page.messages)
        self._has_more = page.has_more
        return True

    async def load_older(self) -> int:
        """Prepend the page before the oldest loaded message; returns how many were new."""
        conversation = self._conversation
        if conversation is None or not self._has_more or not self._messages:
            return 0
        generation = self._generation
        try:
            page = await self._api.fetch_history(
                conversation,
                before=self._messages[0].id,
                limit=self._settings.HISTORY_PAGE_SIZE,
            )
        except ChatClientError as exc:
            logger.warning("Could not load older messages: %s", exc.detail)
            return 0
        if generation != self._generation:
            return 0

        before = len(self._messages)
        self._messages = sort_messages(self._messages + page.messages)
        self._has_more = page.has_more
        return len(self._messages) - before

    def append_if_relevant(self, message: Message) -> bool:
        self.reconcile(message)
        if message.conversation_key != self.active_key:
            return False
        if self.contains(message.id):
            logger.debug("Ignoring duplicate message %s", message.id)
            return False
        self._messages = sort_messages(self._messages + [message])
        return True

    def clear(self) -> None:
        self._generation += 1
        self._conversation = None
        self._messages = []
        self._has_more = False

    # ---- outbox ------------------------------------------------------------

    def outbox(self, conversation_key: str | None = None) -> list[OutgoingMessage]:
        key = conversation_key if conversation_key is not None else self.active_key
        return sorted(
            (o for o in self._outbox.values() if o.conversation_key == key),
            key=lambda o: o.created_at,
        )

    def get_outgoing(self, client_msg_id: str) -> OutgoingMessage | None:
        return self._outbox.get(client_msg_id)

    def track_outgoing(self, outgoing: OutgoingMessage) -> None:
        self._outbox[outgoing.client_msg_id] = outgoing

    def drop_outgoing(self, client_msg_id: str) -> None:
        self._outbox.pop(client_msg_id, None)

    def reconcile(self, message: Message) -> OutgoingMessage | None:
        """Remove the outbox entry this authoritative message confirms."""
        if message.client_msg_id and message.client_msg_id in self._outbox:
            return self._outbox.pop(message.client_msg_id)
        if message.sender_id != self._identity.user_id:
            return None
        # Echoes without a client id: oldest unconfirmed send with the same body.
        for outgoing in self.outbox(message.conversation_key):
            if outgoing.body == message.body and outgoing.status != SendStatus.FAILED:
                return self._outbox.pop(outgoing.client_msg_id)
        return None
