from __future__ import annotations

import pytest

from chat_client.application.exceptions import CircuitOpenError
from chat_client.domain.events.connection import ReauthenticationRequired
from chat_client.services.auth_guard import AuthGuard
from tests.conftest import collect


@pytest.mark.asyncio
async def test_guard_opens_at_threshold(bus):
    events = collect(bus, ReauthenticationRequired)
    guard = AuthGuard(bus, threshold=3)

    assert await guard.record_failure("bad token") is False
    assert await guard.record_failure("bad token") is False
    assert await guard.record_failure("bad token") is True

    assert guard.is_open
    assert len(events) == 1
    with pytest.raises(CircuitOpenError):
        guard.check()


@pytest.mark.asyncio
async def test_success_resets_consecutive_count(bus):
    guard = AuthGuard(bus, threshold=3)

    await guard.record_failure("x")
    await guard.record_failure("x")
    guard.record_success()
    await guard.record_failure("x")

    assert guard.failures == 1
    assert not guard.is_open


@pytest.mark.asyncio
async def test_trip_publishes_once_and_reset_closes(bus):
    events = collect(bus, ReauthenticationRequired)
    guard = AuthGuard(bus, threshold=3)

    await guard.trip("refresh token expired")
    await guard.trip("again")
    assert await guard.record_failure("ignored while open") is False

    assert [e.reason for e in events] == ["refresh token expired"]

    guard.reset()
    guard.check()
    assert guard.failures == 0
