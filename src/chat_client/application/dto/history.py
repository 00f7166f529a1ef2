from __future__ import annotations

from dataclasses import dataclass, field

from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class HistoryPage:
    messages: list[Message] = field(default_factory=list)
    has_more: bool = False


@dataclass(frozen=True, slots=True)
class DirectorySnapshot:
    conversations: list[Conversation] = field(default_factory=list)
    # None when the collaborator offers no aggregate unread endpoint.
    server_unread_total: int | None = None
