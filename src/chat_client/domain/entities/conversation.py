from __future__ import annotations

from dataclasses import dataclass, replace

from chat_client.domain.entities.counterparty import Counterparty
from chat_client.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class Conversation:
    counterparty_id: str
    counterparty: Counterparty
    unread_count: int = 0
    last_message: Message | None = None
    tenant_id: str | None = None
    tenant_slug: str | None = None

    @property
    def display_name(self) -> str:
        return self.counterparty.display_name

    def with_incoming(self, message: Message, *, count_unread: bool) -> Conversation:
        unread = self.unread_count + 1 if count_unread else self.unread_count
        last = self.last_message
        if last is None or message.sort_key > last.sort_key:
            last = message
        return replace(self, last_message=last, unread_count=unread)

    def with_all_read(self) -> Conversation:
        return replace(self, unread_count=0)
