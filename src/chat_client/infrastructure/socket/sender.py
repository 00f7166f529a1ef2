"""Support-chat sends travel over the push connection."""
from __future__ import annotations

import logging

from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.identity import Identity
from chat_client.infrastructure.socket.protocol import CHAT_MESSAGE_EVENT, OutboundChatMessage
from chat_client.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class PushMessageSender:
    """Emits ``message``; the stored copy comes back as a push echo."""

    def __init__(self, connection: ConnectionManager, identity: Identity) -> None:
        self._connection = connection
        self._identity = identity

    def build_payload(
        self,
        conversation: Conversation,
        body: str,
        client_msg_id: str,
    ) -> OutboundChatMessage:
        payload = OutboundChatMessage(
            text=body,
            customer_id=conversation.counterparty_id,
            client_msg_id=client_msg_id,
        )
        if self._identity.is_elevated:
            payload.tenant_slug = conversation.tenant_slug
        else:
            payload.tenant_id = self._identity.tenant_slug
        return payload

    async def send(
        self,
        conversation: Conversation,
        body: str,
        *,
        subject: str | None = None,
        client_msg_id: str,
    ) -> None:
        payload = self.build_payload(conversation, body, client_msg_id)
        await self._connection.emit(
            CHAT_MESSAGE_EVENT,
            payload.model_dump(by_alias=True, exclude_none=True),
        )
        logger.debug("Emitted chat message %s to %s", client_msg_id, conversation.counterparty_id)
