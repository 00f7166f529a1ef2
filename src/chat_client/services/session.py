"""One signed-in user's messaging session for a single channel profile."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from chat_client.application.exceptions import (
    ChatClientError,
    CircuitOpenError,
    SendFailedError,
)
from chat_client.application.ports.api import ConversationApi, MessageSender
from chat_client.application.ports.auth import CredentialProvider
from chat_client.application.ports.clock import Scheduler
from chat_client.application.ports.transport import TransportFactory
from chat_client.config import Settings
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.outgoing import OutgoingMessage
from chat_client.domain.events.connection import ConnectionStateChanged
from chat_client.domain.events.directory import ConversationSelected
from chat_client.domain.events.messages import MessageReceived, SendFailed, TypingChanged
from chat_client.domain.value_objects.channel import ChannelProfile
from chat_client.domain.value_objects.enums import ChannelKind, ConnectionState, SendStatus
from chat_client.infrastructure.bus.local_bus import LocalEventBus
from chat_client.infrastructure.http.mappers import (
    chat_message_to_domain,
    mail_message_to_domain,
    parse_one,
)
from chat_client.infrastructure.http.schemas import ChatMessageSchema, MailMessageSchema
from chat_client.infrastructure.socket.protocol import TYPING_EVENT, TypingPayload
from chat_client.infrastructure.socket.sender import PushMessageSender
from chat_client.services.auth_guard import AuthGuard
from chat_client.services.connection_manager import ConnectionManager
from chat_client.services.directory import ConversationDirectory
from chat_client.services.message_buffer import MessageBuffer
from chat_client.services.notifications import NotificationSurface
from chat_client.services.read_receipts import ReadReceiptTracker
from chat_client.services.room_membership import RoomMembership

logger = logging.getLogger(__name__)


class MessagingSession:
    """Wires the messaging components around one event bus.

    Flow of an inbound push: parse -> directory patch -> buffer append (when
    relevant) -> ``MessageReceived`` -> notification decision.
    """

    def __init__(
        self,
        *,
        profile: ChannelProfile,
        identity: Identity,
        api: ConversationApi,
        transport_factory: TransportFactory,
        credentials: CredentialProvider,
        scheduler: Scheduler,
        settings: Settings,
        bus: LocalEventBus | None = None,
        guard: AuthGuard | None = None,
        sender: MessageSender | None = None,
        push_url: str | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.profile = profile
        self.identity = identity
        self.bus = bus or LocalEventBus()
        self.guard = guard or AuthGuard(self.bus, settings.AUTH_FAILURE_THRESHOLD)
        self._settings = settings
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

        self.connection = ConnectionManager(
            transport_factory, self.bus, self.guard, settings,
            credentials=credentials, url=push_url,
        )
        self.directory = ConversationDirectory(
            api, identity, self.bus, scheduler, settings,
            count_only_customers=profile.unread_only_from_customers,
        )
        self.rooms = RoomMembership(identity, self.connection, self.bus, self.directory.tenant_slugs)
        self.buffer = MessageBuffer(api, identity, settings)
        self.receipts = ReadReceiptTracker(api, self.directory, scheduler, settings)
        self.notifications = NotificationSurface(
            profile, identity, self.directory, self.bus, scheduler, settings,
        )
        if sender is None:
            if profile.sends_over_push:
                sender = PushMessageSender(self.connection, identity)
            else:
                sender = api  # type: ignore[assignment]
        self._sender: MessageSender = sender  # type: ignore[assignment]

        self.connection.on(profile.inbound_event, self._on_push_message)
        self.connection.on(TYPING_EVENT, self._on_push_typing)
        self._unsubscribers = [
            self.bus.subscribe(ConversationSelected, self._on_conversation_selected),
            self.bus.subscribe(ConnectionStateChanged, self._on_connection_state),
        ]
        self._started = False

    # ---- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Connect the push channel and load the directory.

        Raises ``CircuitOpenError`` when the session is blocked.
        """
        self.guard.check()
        self._started = True
        await self.connection.connect()
        await self.directory.refresh()

    async def stop(self) -> None:
        self._started = False
        self.directory.close()
        self.receipts.close()
        self.notifications.close()
        self.rooms.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.connection.close()

    async def relogin(self, credential: str) -> None:
        """Accept a fresh credential after ``ReauthenticationRequired``."""
        await self.connection.reset_credential(credential)
        await self.connection.connect(credential)
        await self.directory.refresh()

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    async def _on_connection_state(self, event: ConnectionStateChanged) -> None:
        # Pushes missed while disconnected are picked up by a refresh.
        if (
            event.current == ConnectionState.CONNECTED
            and event.previous == ConnectionState.CONNECTING
            and self._started
            and self.directory.conversations
        ):
            await self.directory.refresh()

    # ---- inbound push ------------------------------------------------------

    def parse_message(self, payload: Any) -> Message | None:
        if self.profile.kind == ChannelKind.INTERNAL_MAIL:
            mail = parse_one(payload, MailMessageSchema)
            return mail_message_to_domain(mail, self.identity) if mail else None
        chat = parse_one(payload, ChatMessageSchema)
        return chat_message_to_domain(chat) if chat else None

    async def _on_push_message(self, payload: Any) -> None:
        message = self.parse_message(payload)
        if message is None:
            return
        await self.receive(message)

    async def receive(self, message: Message) -> None:
        logger.debug("Inbound message %s for %s", message.id, message.conversation_key)
        is_new = not (self.directory.has_applied(message) or self.buffer.contains(message.id))
        if is_new:
            await self.directory.apply_incoming_message(message)
        appended = self.buffer.append_if_relevant(message)
        if not is_new:
            logger.debug("Message %s already delivered", message.id)
            return
        await self.bus.publish(MessageReceived(message=message))
        await self.notifications.consider(message)

        if (
            appended
            and message.sender_id != self.identity.user_id
            and self.directory.selected_id == message.conversation_key
            and self.notifications.is_viewing_live_surface()
        ):
            self.receipts.schedule_mark_read(message.conversation_key)

    async def _on_push_typing(self, payload: Any) -> None:
        typing = parse_one(payload, TypingPayload)
        if typing is None or not typing.user_id or typing.user_id == self.identity.user_id:
            return
        await self.bus.publish(TypingChanged(user_id=typing.user_id, is_typing=typing.is_typing))

    # ---- selection & reading -----------------------------------------------

    async def select_conversation(self, counterparty_id: str) -> None:
        await self.directory.select(counterparty_id)

    async def _on_conversation_selected(self, event: ConversationSelected) -> None:
        conversation = self.directory.get(event.counterparty_id)
        if conversation is None:
            logger.debug("Selected unknown conversation %s", event.counterparty_id)
            self.buffer.clear()
            return
        await self.rooms.ensure_joined(conversation.tenant_slug)
        loaded = await self.buffer.load(conversation)
        if loaded and self.directory.selected_id == event.counterparty_id:
            self.receipts.schedule_mark_read(event.counterparty_id)

    async def load_older(self) -> int:
        return await self.buffer.load_older()

    async def mark_read(self, counterparty_id: str) -> bool:
        return await self.receipts.mark_read(counterparty_id)

    async def mark_all_read(self) -> bool:
        return await self.receipts.mark_all_read()

    def set_current_view(self, path: str | None) -> None:
        self.notifications.set_current_view(path)

    # ---- outbound ----------------------------------------------------------

    async def send_message(self, body: str, *, subject: str | None = None) -> OutgoingMessage:
        """Send into the selected conversation.

        Never raises for delivery problems: the returned ``OutgoingMessage``
        carries ``FAILED`` status and can be passed to ``retry_send``.
        """
        key = self.directory.selected_id
        if key is None:
            raise SendFailedError("No conversation selected")
        body = body.strip()
        if not body:
            raise SendFailedError("Message body is empty")
        outgoing = OutgoingMessage(
            client_msg_id=self._new_id(), conversation_key=key, body=body, subject=subject,
        )
        return await self._deliver(outgoing)

    async def retry_send(self, client_msg_id: str) -> OutgoingMessage:
        outgoing = self.buffer.get_outgoing(client_msg_id)
        if outgoing is None:
            raise SendFailedError(f"No outgoing message {client_msg_id}")
        if outgoing.status != SendStatus.FAILED:
            return outgoing
        return await self._deliver(outgoing.pending())

    async def _deliver(self, outgoing: OutgoingMessage) -> OutgoingMessage:
        self.buffer.track_outgoing(outgoing)
        conversation = self.directory.get(outgoing.conversation_key)
        if conversation is None:
            return await self._fail(outgoing, "Conversation is not in the directory")
        try:
            created = await self._sender.send(
                conversation,
                outgoing.body,
                subject=outgoing.subject,
                client_msg_id=outgoing.client_msg_id,
            )
        except CircuitOpenError:
            return await self._fail(outgoing, "Re-authentication required")
        except ChatClientError as exc:
            return await self._fail(outgoing, exc.detail or "Send failed")

        if created is None:
            # Awaiting the push echo.
            sent = outgoing.sent()
            if self.buffer.get_outgoing(outgoing.client_msg_id) is not None:
                self.buffer.track_outgoing(sent)
            return sent
        self.buffer.drop_outgoing(outgoing.client_msg_id)
        await self.directory.apply_incoming_message(created)
        self.buffer.append_if_relevant(created)
        return outgoing.sent()

    async def _fail(self, outgoing: OutgoingMessage, error: str) -> OutgoingMessage:
        logger.warning("Send %s failed: %s", outgoing.client_msg_id, error)
        failed = outgoing.failed(error)
        self.buffer.track_outgoing(failed)
        await self.bus.publish(SendFailed(outgoing=failed))
        return failed

    async def set_typing(self, is_typing: bool) -> None:
        payload = TypingPayload(is_typing=is_typing)
        if self.identity.is_elevated:
            conversation = self.directory.get(self.directory.selected_id or "")
            payload.tenant_id = conversation.tenant_slug if conversation else None
        try:
            await self.connection.emit(
                TYPING_EVENT, payload.model_dump(by_alias=True, exclude_none=True),
            )
        except ChatClientError as exc:
            logger.debug("Typing indicator not sent: %s", exc.detail)
