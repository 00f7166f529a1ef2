"""REST adapter for the customer-support chat channel."""
from __future__ import annotations

from typing import Any

from chat_client.application.dto.history import DirectorySnapshot, HistoryPage
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import sort_messages
from chat_client.infrastructure.http.client import CollaboratorClient
from chat_client.infrastructure.http.mappers import (
    chat_conversation_to_domain,
    chat_message_to_domain,
    parse_items,
    parse_one,
    read_count,
)
from chat_client.infrastructure.http.schemas import (
    ChatConversationSchema,
    ChatHistorySchema,
    ChatMessageSchema,
    MarkChatReadRequest,
)


class SupportChatApi:
    def __init__(self, client: CollaboratorClient, identity: Identity) -> None:
        self._client = client
        self._identity = identity

    async def fetch_directory(self) -> DirectorySnapshot:
        raw = await self._client.get("/chat/conversations")
        conversations = [
            chat_conversation_to_domain(item)
            for item in parse_items(raw, ChatConversationSchema)
        ]
        server_total: int | None = None
        if not self._identity.is_elevated:
            data = await self._client.get("/chat/unread-count")
            server_total = read_count(data, "count")
        return DirectorySnapshot(conversations=conversations, server_unread_total=server_total)

    async def fetch_history(
        self,
        conversation: Conversation,
        *,
        before: str | None = None,
        limit: int = 50,
    ) -> HistoryPage:
        params: dict[str, Any] = {"customerId": conversation.counterparty_id, "limit": limit}
        if conversation.tenant_id:
            params["tenantId"] = conversation.tenant_id
        if before:
            params["before"] = before
        raw = await self._client.get("/chat/history", params=params)

        # Older collaborators answer with a bare list.
        if isinstance(raw, list):
            raw = {"messages": raw, "hasMore": False}
        page = parse_one(raw, ChatHistorySchema)
        if page is None:
            return HistoryPage()
        messages = [
            chat_message_to_domain(item)
            for item in parse_items(page.messages, ChatMessageSchema)
        ]
        return HistoryPage(messages=sort_messages(messages), has_more=page.has_more)

    async def mark_read(self, conversation: Conversation) -> None:
        body = MarkChatReadRequest(
            customer_id=conversation.counterparty_id,
            tenant_id=conversation.tenant_id,
        )
        await self._client.post(
            "/chat/mark-read",
            json=body.model_dump(by_alias=True, exclude_none=True),
        )

    async def mark_all_read(self) -> None:
        await self._client.post("/chat/mark-read", json={})

