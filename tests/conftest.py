"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from chat_client.application.dto.history import DirectorySnapshot, HistoryPage
from chat_client.application.exceptions import AuthenticationError, CollaboratorError
from chat_client.config import Settings
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.counterparty import Counterparty
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.enums import ConnectionState, Role
from chat_client.infrastructure.bus.local_bus import LocalEventBus

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        API_URL="http://collaborator.test/api",
        RECONNECT_DELAY=0.0,
        CONNECT_TIMEOUT=1.0,
        MAX_RECONNECT_ATTEMPTS=3,
        AUTH_FAILURE_THRESHOLD=3,
    )


@pytest.fixture
def staff_identity() -> Identity:
    return Identity(user_id="u-staff", role=Role.STAFF, tenant_id="t-1", tenant_slug="acme")


@pytest.fixture
def elevated_identity() -> Identity:
    return Identity(user_id="u-root", role=Role.SUPER_ADMIN)


@pytest.fixture
def bus() -> LocalEventBus:
    return LocalEventBus()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


def make_message(
    message_id: str,
    *,
    key: str = "c1",
    at: int = 0,
    sender_id: str | None = None,
    sender_role: str = "customer",
    body: str = "hello",
    client_msg_id: str | None = None,
    subject: str | None = None,
) -> Message:
    return Message(
        id=message_id,
        body=body,
        sender_id=sender_id or key,
        sender_role=sender_role,
        conversation_key=key,
        created_at=T0 + timedelta(seconds=at),
        client_msg_id=client_msg_id,
        subject=subject,
    )


def make_conversation(
    counterparty_id: str,
    *,
    unread: int = 0,
    tenant_slug: str | None = None,
    first_name: str | None = "Ada",
    last_name: str | None = "Lovelace",
    last_message: Message | None = None,
) -> Conversation:
    return Conversation(
        counterparty_id=counterparty_id,
        counterparty=Counterparty(
            id=counterparty_id,
            first_name=first_name,
            last_name=last_name,
            email=f"{counterparty_id}@example.com",
        ),
        unread_count=unread,
        last_message=last_message,
        tenant_id=f"id-{tenant_slug}" if tenant_slug else None,
        tenant_slug=tenant_slug,
    )


def collect(bus: LocalEventBus, event_type: type) -> list[Any]:
    """Subscribe a recorder for ``event_type`` and return its list."""
    events: list[Any] = []

    async def _record(event: Any) -> None:
        events.append(event)

    bus.subscribe(event_type, _record)
    return events


async def wait_for_state(manager: Any, state: ConnectionState, *, rounds: int = 200) -> None:
    for _ in range(rounds):
        if manager.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"state is {manager.state}, expected {state}")


# ---- scheduler -------------------------------------------------------------


@dataclass
class ManualTimer:
    due: float
    callback: Any
    name: str = ""
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def done(self) -> bool:
        return self.cancelled or self.fired


@dataclass
class ManualScheduler:
    """Deterministic scheduler: time only moves in ``advance``."""

    now: float = 0.0
    timers: list[ManualTimer] = field(default_factory=list)

    def call_later(self, delay: float, callback: Any, *, name: str = "") -> ManualTimer:
        timer = ManualTimer(due=self.now + delay, callback=callback, name=name)
        self.timers.append(timer)
        return timer

    def pending(self, name: str | None = None) -> list[ManualTimer]:
        return [
            t for t in self.timers
            if not t.done() and (name is None or t.name == name)
        ]

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = max(self.now, timer.due)
            timer.fired = True
            await timer.callback()
        self.now = target


# ---- push transport ----------------------------------------------------------


@dataclass
class FakeTransport:
    outcome: Exception | None = None
    connected: bool = False
    handlers: dict[str, list[Any]] = field(default_factory=dict)
    emitted: list[tuple[str, Any]] = field(default_factory=list)
    connect_calls: list[tuple[str, str]] = field(default_factory=list)
    disconnect_calls: int = 0
    disconnect_error: Exception | None = None

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def clear_handlers(self) -> None:
        self.handlers.clear()

    async def connect(self, url: str, credential: str, *, timeout: float) -> None:
        self.connect_calls.append((url, credential))
        if self.outcome is not None:
            raise self.outcome
        self.connected = True

    async def emit(self, event: str, data: Any) -> None:
        self.emitted.append((event, data))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        if self.disconnect_error is not None:
            raise self.disconnect_error

    async def fire(self, event: str, payload: Any = None) -> None:
        for handler in list(self.handlers.get(event, ())):
            await handler(payload)

    async def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.connected = False
        await self.fire("disconnect", "transport close")


@dataclass
class FakeTransportFactory:
    """Hands out one ``FakeTransport`` per connect attempt.

    ``outcomes`` scripts the attempts in order; once exhausted every attempt
    succeeds.
    """

    outcomes: list[Exception | None] = field(default_factory=list)
    created: list[FakeTransport] = field(default_factory=list)

    def __call__(self) -> FakeTransport:
        outcome = self.outcomes.pop(0) if self.outcomes else None
        transport = FakeTransport(outcome=outcome)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]

    def emitted(self, event: str) -> list[Any]:
        return [data for t in self.created for name, data in t.emitted if name == event]


# ---- collaborators ----------------------------------------------------------


@dataclass
class FakeCredentialProvider:
    token: str | None = "token-1"
    refresh_error: Exception | None = None
    refresh_calls: int = 0

    def current(self) -> str | None:
        return self.token

    def replace(self, access_token: str) -> None:
        self.token = access_token

    async def refresh(self) -> str:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        self.token = f"token-{self.refresh_calls + 1}"
        return self.token


@dataclass
class FakeConversationApi:
    conversations: list[Conversation] = field(default_factory=list)
    server_unread_total: int | None = None
    histories: dict[str, list[Message]] = field(default_factory=dict)
    older: dict[str, list[Message]] = field(default_factory=dict)
    has_more: bool = False
    directory_error: Exception | None = None
    mark_read_error: Exception | None = None
    send_error: Exception | None = None
    send_result: Message | None = None
    directory_gate: asyncio.Event | None = None
    history_gates: dict[str, asyncio.Event] = field(default_factory=dict)
    directory_calls: int = 0
    history_calls: list[tuple[str, str | None]] = field(default_factory=list)
    mark_read_calls: list[str] = field(default_factory=list)
    mark_all_calls: int = 0
    sent: list[tuple[str, str, str | None, str]] = field(default_factory=list)

    async def fetch_directory(self) -> DirectorySnapshot:
        self.directory_calls += 1
        if self.directory_gate is not None:
            await self.directory_gate.wait()
        if self.directory_error is not None:
            raise self.directory_error
        return DirectorySnapshot(
            conversations=list(self.conversations),
            server_unread_total=self.server_unread_total,
        )

    async def fetch_history(
        self,
        conversation: Conversation,
        *,
        before: str | None = None,
        limit: int = 50,
    ) -> HistoryPage:
        key = conversation.counterparty_id
        self.history_calls.append((key, before))
        gate = self.history_gates.get(key)
        if gate is not None:
            await gate.wait()
        if before is not None:
            return HistoryPage(messages=list(self.older.get(key, [])), has_more=False)
        return HistoryPage(messages=list(self.histories.get(key, [])), has_more=self.has_more)

    async def mark_read(self, conversation: Conversation) -> None:
        self.mark_read_calls.append(conversation.counterparty_id)
        if self.mark_read_error is not None:
            raise self.mark_read_error

    async def mark_all_read(self) -> None:
        self.mark_all_calls += 1

    async def send(
        self,
        conversation: Conversation,
        body: str,
        *,
        subject: str | None = None,
        client_msg_id: str,
    ) -> Message | None:
        self.sent.append((conversation.counterparty_id, body, subject, client_msg_id))
        if self.send_error is not None:
            raise self.send_error
        return self.send_result


AUTH_REJECTED = AuthenticationError("Invalid token")
SERVER_DOWN = CollaboratorError("Service unavailable", status_code=503)
