from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_client.domain.entities.counterparty import Counterparty


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    body: str
    sender_id: str
    sender_role: str
    conversation_key: str
    created_at: datetime
    read_at: datetime | None = None
    subject: str | None = None
    recipient_id: str | None = None
    sender: Counterparty | None = None
    tenant_slug: str | None = None
    client_msg_id: str | None = None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Ascending creation time, ties broken by identifier."""
        return (self.created_at, self.id)

    @property
    def is_from_customer(self) -> bool:
        return self.sender_role == "customer"


def sort_messages(messages: list[Message]) -> list[Message]:
    """Return messages ordered by creation time with duplicate ids collapsed.

    The first occurrence of an id wins.
    """
    unique: dict[str, Message] = {}
    for message in messages:
        unique.setdefault(message.id, message)
    return sorted(unique.values(), key=lambda m: m.sort_key)
