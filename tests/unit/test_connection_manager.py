from __future__ import annotations

import pytest

from chat_client.application.exceptions import (
    AuthenticationError,
    CircuitOpenError,
    NotConnectedError,
    TransportError,
)
from chat_client.domain.events.connection import (
    ConnectionStateChanged,
    ReauthenticationRequired,
    ReconnectExhausted,
    TransportErrorReceived,
)
from chat_client.domain.value_objects.enums import ConnectionState
from chat_client.services.auth_guard import AuthGuard
from chat_client.services.connection_manager import ConnectionManager, can_transition
from tests.conftest import (
    AUTH_REJECTED,
    FakeCredentialProvider,
    FakeTransportFactory,
    collect,
    wait_for_state,
)


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def credentials() -> FakeCredentialProvider:
    return FakeCredentialProvider()


@pytest.fixture
def guard(bus, settings) -> AuthGuard:
    return AuthGuard(bus, settings.AUTH_FAILURE_THRESHOLD)


@pytest.fixture
def manager(factory, bus, guard, settings, credentials) -> ConnectionManager:
    return ConnectionManager(factory, bus, guard, settings, credentials=credentials)


def test_transition_table():
    assert can_transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING)
    assert can_transition(ConnectionState.CONNECTED, ConnectionState.BLOCKED)
    assert not can_transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTED)
    assert not can_transition(ConnectionState.BLOCKED, ConnectionState.CONNECTING)


@pytest.mark.asyncio
async def test_connect_presents_credential(manager, factory, bus, settings):
    states = collect(bus, ConnectionStateChanged)

    await manager.connect()

    assert manager.state == ConnectionState.CONNECTED
    assert manager.is_connected
    assert factory.latest.connect_calls == [(settings.push_url, "token-1")]
    assert [e.current for e in states] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]


@pytest.mark.asyncio
async def test_connect_is_noop_while_live(manager, factory):
    await manager.connect()
    await manager.connect()

    assert len(factory.created) == 1


@pytest.mark.asyncio
async def test_connect_without_credential_raises(manager, credentials, factory):
    credentials.token = None

    with pytest.raises(AuthenticationError):
        await manager.connect()

    assert factory.created == []


@pytest.mark.asyncio
async def test_transient_failure_is_retried(manager, factory):
    factory.outcomes = [TransportError("refused"), None]

    await manager.connect()

    assert manager.state == ConnectionState.CONNECTED
    assert len(factory.created) == 2
    assert factory.created[0].disconnect_calls == 1


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_max_attempts(manager, factory, bus, settings):
    exhausted = collect(bus, ReconnectExhausted)
    factory.outcomes = [TransportError("refused")] * (settings.MAX_RECONNECT_ATTEMPTS + 1)

    await manager.connect()

    assert manager.state == ConnectionState.DISCONNECTED
    assert len(factory.created) == settings.MAX_RECONNECT_ATTEMPTS + 1
    assert exhausted[0].attempts == settings.MAX_RECONNECT_ATTEMPTS + 1
    assert exhausted[0].last_error == "refused"


@pytest.mark.asyncio
async def test_auth_failures_trip_circuit_and_block(manager, factory, bus, credentials, settings):
    reauth = collect(bus, ReauthenticationRequired)
    factory.outcomes = [AUTH_REJECTED] * 5

    await manager.connect()

    assert manager.state == ConnectionState.BLOCKED
    assert len(factory.created) == settings.AUTH_FAILURE_THRESHOLD
    # A fresh credential is tried after each failure below the threshold.
    assert credentials.refresh_calls == settings.AUTH_FAILURE_THRESHOLD - 1
    assert len(reauth) == 1

    with pytest.raises(CircuitOpenError):
        await manager.connect()
    assert len(factory.created) == settings.AUTH_FAILURE_THRESHOLD


@pytest.mark.asyncio
async def test_failed_refresh_blocks_immediately(manager, factory, credentials):
    factory.outcomes = [AUTH_REJECTED]
    credentials.refresh_error = AuthenticationError("refresh token expired")

    await manager.connect()

    assert manager.state == ConnectionState.BLOCKED
    assert len(factory.created) == 1


@pytest.mark.asyncio
async def test_reset_credential_unblocks(manager, factory, credentials):
    factory.outcomes = [AUTH_REJECTED]
    credentials.refresh_error = AuthenticationError("expired")
    await manager.connect()

    await manager.reset_credential("fresh")
    assert manager.state == ConnectionState.DISCONNECTED

    await manager.connect("fresh")
    assert manager.state == ConnectionState.CONNECTED
    assert factory.latest.connect_calls[0][1] == "fresh"


@pytest.mark.asyncio
async def test_disconnect_releases_handle_even_when_close_fails(manager, factory):
    await manager.connect()
    transport = factory.latest
    transport.disconnect_error = RuntimeError("socket already gone")

    await manager.disconnect()

    assert manager.state == ConnectionState.DISCONNECTED
    assert transport.disconnect_calls == 1
    assert transport.handlers == {}
    assert not manager.is_connected


@pytest.mark.asyncio
async def test_server_drop_reconnects_and_rebinds_subscriptions(manager, factory):
    received = []

    async def _on_message(payload):
        received.append(payload)

    manager.on("message", _on_message)
    await manager.connect()
    first = factory.latest

    await first.drop()
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert len(factory.created) == 2
    assert first.handlers == {}
    await factory.latest.fire("message", {"id": "m1"})
    assert received == [{"id": "m1"}]


@pytest.mark.asyncio
async def test_emit_rejected_locally(manager, guard):
    with pytest.raises(NotConnectedError):
        await manager.emit("join-tenant", "acme")

    await guard.trip("expired")
    with pytest.raises(CircuitOpenError):
        await manager.emit("join-tenant", "acme")


@pytest.mark.asyncio
async def test_server_error_event_is_published(manager, factory, bus):
    errors = collect(bus, TransportErrorReceived)
    await manager.connect()

    await factory.latest.fire("error", {"message": "Failed to send message"})

    assert errors == [TransportErrorReceived(message="Failed to send message")]


@pytest.mark.asyncio
async def test_handler_failure_does_not_break_dispatch(manager, factory):
    seen = []

    async def _broken(_payload):
        raise ValueError("boom")

    async def _ok(payload):
        seen.append(payload)

    manager.on("message", _broken)
    manager.on("message", _ok)
    await manager.connect()

    await factory.latest.fire("message", "x")

    assert seen == ["x"]


@pytest.mark.asyncio
async def test_reconnect_uses_token_refreshed_elsewhere(manager, factory, credentials, settings):
    await manager.connect()
    assert factory.latest.connect_calls == [(settings.push_url, "token-1")]

    # The REST client refreshed the shared credential in the meantime.
    credentials.token = "token-rest"
    await factory.latest.drop()
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert factory.latest.connect_calls[0][1] == "token-rest"
    assert credentials.refresh_calls == 0


@pytest.mark.asyncio
async def test_reset_credential_updates_shared_provider(manager, credentials):
    await manager.reset_credential("fresh")

    assert credentials.current() == "fresh"
