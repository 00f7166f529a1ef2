from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from chat_client.domain.value_objects.enums import SendStatus


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    """Optimistic local copy of a message the user sent."""

    client_msg_id: str
    conversation_key: str
    body: str
    subject: str | None = None
    status: SendStatus = SendStatus.PENDING
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def failed(self, error: str) -> OutgoingMessage:
        return replace(self, status=SendStatus.FAILED, error=error)

    def pending(self) -> OutgoingMessage:
        return replace(self, status=SendStatus.PENDING, error=None)

    def sent(self) -> OutgoingMessage:
        return replace(self, status=SendStatus.SENT, error=None)
