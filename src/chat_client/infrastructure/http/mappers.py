"""Wire schema -> domain entity mapping.

Items that fail validation are skipped with a warning so one bad record does
not blank the whole list.
"""
from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.counterparty import Counterparty
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message
from chat_client.infrastructure.http.schemas import (
    ChatConversationSchema,
    ChatMessageSchema,
    MailConversationSchema,
    MailMessageSchema,
    ProfileSchema,
)

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseModel)


def parse_items(raw: Any, schema: type[S]) -> list[S]:
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("Expected a list of %s, got %s", schema.__name__, type(raw).__name__)
        return []
    items: list[S] = []
    for entry in raw:
        try:
            items.append(schema.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s: %s", schema.__name__, exc.errors()[:1])
    return items


def parse_one(raw: Any, schema: type[S]) -> S | None:
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Malformed %s: %s", schema.__name__, exc.errors()[:1])
        return None


def profile_to_domain(schema: ProfileSchema) -> Counterparty:
    return Counterparty(
        id=schema.id,
        first_name=schema.first_name,
        last_name=schema.last_name,
        email=schema.email,
        avatar=schema.avatar,
    )


def chat_message_to_domain(schema: ChatMessageSchema) -> Message:
    return Message(
        id=schema.id,
        body=schema.text,
        sender_id=schema.sender_id,
        sender_role=schema.sender_type,
        conversation_key=schema.customer_id or "",
        created_at=schema.created_at,
        read_at=schema.read_at,
        sender=profile_to_domain(schema.sender) if schema.sender else None,
        tenant_slug=schema.tenant_slug,
        client_msg_id=schema.client_msg_id,
    )


def chat_conversation_to_domain(schema: ChatConversationSchema) -> Conversation:
    last = chat_message_to_domain(schema.last_message) if schema.last_message else None
    return Conversation(
        counterparty_id=schema.customer_id,
        counterparty=profile_to_domain(schema.customer),
        unread_count=max(0, schema.unread_count),
        last_message=last,
        tenant_id=schema.tenant_id,
        tenant_slug=schema.tenant_slug,
    )


def mail_partner_id(schema: MailMessageSchema, identity: Identity) -> str:
    """The other side of a mail thread; self-sent mail keys on the user."""
    if schema.sender_id == identity.user_id:
        return schema.recipient_id
    return schema.sender_id


def mail_message_to_domain(schema: MailMessageSchema, identity: Identity) -> Message:
    sender_role = schema.sender.role if schema.sender and schema.sender.role else ""
    return Message(
        id=schema.id,
        body=schema.body,
        sender_id=schema.sender_id,
        sender_role=sender_role.lower(),
        conversation_key=mail_partner_id(schema, identity),
        created_at=schema.created_at,
        read_at=schema.read_at,
        subject=schema.subject or None,
        recipient_id=schema.recipient_id,
        sender=profile_to_domain(schema.sender) if schema.sender else None,
    )


def mail_conversation_to_domain(
    schema: MailConversationSchema,
    identity: Identity,
) -> Conversation:
    last = mail_message_to_domain(schema.last_message, identity) if schema.last_message else None
    return Conversation(
        counterparty_id=schema.partner_id,
        counterparty=profile_to_domain(schema.partner),
        unread_count=max(0, schema.unread_count),
        last_message=last,
    )


def read_count(data: Any, key: str) -> int:
    """Unread counter from ``{key: n}``; malformed answers count as zero."""
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return max(0, value)
    logger.warning("Malformed unread-count response, assuming 0")
    return 0
