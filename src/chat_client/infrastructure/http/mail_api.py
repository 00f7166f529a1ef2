"""REST adapter for internal staff mail."""
from __future__ import annotations

import logging
from urllib.parse import quote

from chat_client.application.dto.history import DirectorySnapshot, HistoryPage
from chat_client.application.exceptions import MalformedResponseError
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message, sort_messages
from chat_client.infrastructure.http.client import CollaboratorClient
from chat_client.infrastructure.http.mappers import (
    mail_conversation_to_domain,
    mail_message_to_domain,
    parse_items,
    parse_one,
    read_count,
)
from chat_client.infrastructure.http.schemas import (
    MailConversationSchema,
    MailMessageSchema,
    SendMailRequest,
)

logger = logging.getLogger(__name__)


class MailApi:
    """Mail threads keyed by partner id. Also the mail ``MessageSender``."""

    def __init__(self, client: CollaboratorClient, identity: Identity) -> None:
        self._client = client
        self._identity = identity

    async def fetch_directory(self) -> DirectorySnapshot:
        raw = await self._client.get("/mail/conversations")
        conversations = [
            mail_conversation_to_domain(item, self._identity)
            for item in parse_items(raw, MailConversationSchema)
        ]
        server_total: int | None = None
        if not self._identity.is_elevated:
            data = await self._client.get("/mail/unread-count")
            server_total = read_count(data, "unreadCount")
        return DirectorySnapshot(conversations=conversations, server_unread_total=server_total)

    async def fetch_history(
        self,
        conversation: Conversation,
        *,
        before: str | None = None,
        limit: int = 50,
    ) -> HistoryPage:
        # The mail collaborator returns the whole thread; paging is a no-op.
        if before:
            return HistoryPage()
        raw = await self._client.get(f"/mail/messages/{_segment(conversation.counterparty_id)}")
        messages = [
            mail_message_to_domain(item, self._identity)
            for item in parse_items(raw, MailMessageSchema)
        ]
        return HistoryPage(messages=sort_messages(messages), has_more=False)

    async def mark_read(self, conversation: Conversation) -> None:
        await self._client.post(f"/mail/mark-read/{_segment(conversation.counterparty_id)}")

    async def mark_all_read(self) -> None:
        await self._client.post("/mail/mark-all-read")

    async def send(
        self,
        conversation: Conversation,
        body: str,
        *,
        subject: str | None = None,
        client_msg_id: str,
    ) -> Message:
        request = SendMailRequest(
            recipient_id=conversation.counterparty_id,
            subject=subject or "(no subject)",
            body=body,
        )
        raw = await self._client.post("/mail/send", json=request.model_dump(by_alias=True))
        created = parse_one(raw, MailMessageSchema)
        if created is None:
            raise MalformedResponseError("Mail send returned an unreadable message")
        logger.debug("Mail %s sent to %s", created.id, conversation.counterparty_id)
        return mail_message_to_domain(created, self._identity)


def _segment(value: str) -> str:
    return quote(value, safe="")
