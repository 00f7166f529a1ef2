"""Collaborator response models (camelCase on the wire)."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ProfileSchema(_WireModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str = ""
    avatar: str | None = None
    role: str | None = None


class ChatMessageSchema(_WireModel):
    id: str
    text: str = ""
    sender_id: str
    sender_type: str
    customer_id: str | None = None
    created_at: datetime
    read_at: datetime | None = None
    sender: ProfileSchema | None = None
    tenant_slug: str | None = None
    client_msg_id: str | None = None


class ChatConversationSchema(_WireModel):
    customer_id: str
    tenant_id: str | None = None
    tenant_slug: str | None = None
    customer: ProfileSchema
    unread_count: int = 0
    last_message: ChatMessageSchema | None = None


class ChatHistorySchema(_WireModel):
    messages: list[dict] = []
    has_more: bool = False


class MailMessageSchema(_WireModel):
    id: str
    subject: str = ""
    body: str = ""
    sender_id: str
    recipient_id: str
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime
    sender: ProfileSchema | None = None
    recipient: ProfileSchema | None = None


class MailConversationSchema(_WireModel):
    partner_id: str
    partner: ProfileSchema
    last_message: MailMessageSchema | None = None
    unread_count: int = 0


class SendMailRequest(_WireModel):
    recipient_id: str
    subject: str
    body: str


class MarkChatReadRequest(_WireModel):
    customer_id: str | None = None
    tenant_id: str | None = None


class RefreshTokenRequest(_WireModel):
    refresh_token: str


class TokenPairSchema(_WireModel):
    access_token: str
    refresh_token: str | None = None
