from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.entities.message import Message
from chat_client.domain.entities.outgoing import OutgoingMessage


@dataclass(frozen=True, slots=True)
class MessageReceived:
    message: Message


@dataclass(frozen=True, slots=True)
class SendFailed:
    outgoing: OutgoingMessage


@dataclass(frozen=True, slots=True)
class TypingChanged:
    user_id: str
    is_typing: bool
