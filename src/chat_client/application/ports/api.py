from __future__ import annotations

from typing import Protocol

from chat_client.application.dto.history import DirectorySnapshot, HistoryPage
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message


class ConversationApi(Protocol):
    """Request/response collaborator for one channel (support chat or mail)."""

    async def fetch_directory(self) -> DirectorySnapshot: ...

    async def fetch_history(
        self,
        conversation: Conversation,
        *,
        before: str | None = None,
        limit: int = 50,
    ) -> HistoryPage: ...

    async def mark_read(self, conversation: Conversation) -> None: ...

    async def mark_all_read(self) -> None: ...


class MessageSender(Protocol):
    async def send(
        self,
        conversation: Conversation,
        body: str,
        *,
        subject: str | None = None,
        client_msg_id: str,
    ) -> Message | None:
        """Send a message.

        Returns the authoritative copy when the collaborator answers with one,
        or ``None`` when it arrives later as a push echo.
        """
        ...
