"""Push channel event names and payload models."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

JOIN_TENANT_EVENT = "join-tenant"
CHAT_MESSAGE_EVENT = "message"
TYPING_EVENT = "typing"
ERROR_EVENT = "error"

# Handshake rejections carry a message such as "Authentication token required",
# "Invalid token" or "Token expired".
AUTH_ERROR_MARKERS = ("authentication", "token", "unauthorized")


def is_auth_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in AUTH_ERROR_MARKERS)


class _PushModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OutboundChatMessage(_PushModel):
    """Client -> Server ``message``.

    Elevated senders address the tenant by slug, everyone else by the
    ``tenantId`` field (which also carries the slug).
    """

    text: str
    customer_id: str | None = None
    tenant_id: str | None = None
    tenant_slug: str | None = None
    client_msg_id: str | None = None


class TypingPayload(_PushModel):
    """Both directions of ``typing``."""

    is_typing: bool
    user_id: str | None = None
    tenant_id: str | None = None


class ErrorPayload(_PushModel):
    """Server -> Client ``error``."""

    message: str | None = None
