from __future__ import annotations

import pytest

from chat_client.domain.events.directory import DirectoryChanged
from chat_client.domain.value_objects.enums import ConnectionState
from chat_client.services.auth_guard import AuthGuard
from chat_client.services.connection_manager import ConnectionManager
from chat_client.services.directory import ConversationDirectory
from chat_client.services.room_membership import RoomMembership
from tests.conftest import (
    FakeConversationApi,
    FakeCredentialProvider,
    FakeTransportFactory,
    make_conversation,
    wait_for_state,
)


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def manager(factory, bus, settings) -> ConnectionManager:
    guard = AuthGuard(bus, settings.AUTH_FAILURE_THRESHOLD)
    return ConnectionManager(
        factory, bus, guard, settings, credentials=FakeCredentialProvider(),
    )


@pytest.mark.asyncio
async def test_normal_scope_joins_own_tenant(staff_identity, manager, factory, bus):
    rooms = RoomMembership(staff_identity, manager, bus, lambda: {"other"})

    await manager.connect()

    assert factory.emitted("join-tenant") == ["acme"]
    assert rooms.joined == {"acme"}


@pytest.mark.asyncio
async def test_rooms_rejoined_after_reconnect(staff_identity, manager, factory, bus):
    rooms = RoomMembership(staff_identity, manager, bus, lambda: ())
    await manager.connect()

    await factory.latest.drop()
    assert rooms.joined == frozenset()
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert factory.latest.emitted == [("join-tenant", "acme")]
    assert factory.emitted("join-tenant") == ["acme", "acme"]


@pytest.mark.asyncio
async def test_elevated_scope_joins_directory_tenants(elevated_identity, manager, factory, bus):
    slugs = {"beta", "alpha"}
    rooms = RoomMembership(elevated_identity, manager, bus, lambda: slugs)
    await manager.connect()
    assert factory.emitted("join-tenant") == ["alpha", "beta"]

    slugs.add("gamma")
    await bus.publish(DirectoryChanged(counterparty_ids=(), unread_total=0))

    assert factory.emitted("join-tenant") == ["alpha", "beta", "gamma"]
    assert rooms.joined == {"alpha", "beta", "gamma"}


@pytest.mark.asyncio
async def test_ensure_joined_only_for_elevated(
    staff_identity, elevated_identity, manager, factory, bus,
):
    normal = RoomMembership(staff_identity, manager, bus, lambda: ())
    await manager.connect()
    await normal.ensure_joined("elsewhere")
    assert "elsewhere" not in factory.emitted("join-tenant")
    normal.close()

    elevated = RoomMembership(elevated_identity, manager, bus, lambda: ())
    await elevated.ensure_joined("delta")
    await elevated.ensure_joined("delta")

    assert factory.emitted("join-tenant").count("delta") == 1


@pytest.mark.asyncio
async def test_no_join_without_connection(elevated_identity, manager, factory, bus):
    rooms = RoomMembership(elevated_identity, manager, bus, lambda: {"alpha"})

    await rooms.sync()

    assert factory.created == []
    assert rooms.joined == frozenset()


@pytest.mark.asyncio
async def test_elevated_rooms_rejoined_after_reconnect_without_refresh(
    elevated_identity, manager, factory, bus, scheduler, settings,
):
    api = FakeConversationApi(
        conversations=[
            make_conversation("c1", tenant_slug="tenantA"),
            make_conversation("c2", tenant_slug="tenantB"),
            make_conversation("c3", tenant_slug="tenantA"),
        ]
    )
    directory = ConversationDirectory(api, elevated_identity, bus, scheduler, settings)
    rooms = RoomMembership(elevated_identity, manager, bus, directory.tenant_slugs)
    await directory.refresh()
    await manager.connect()
    assert rooms.joined == {"tenantA", "tenantB"}

    await factory.latest.drop()
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert factory.latest.emitted == [("join-tenant", "tenantA"), ("join-tenant", "tenantB")]
    assert rooms.joined == {"tenantA", "tenantB"}
    assert api.directory_calls == 1
