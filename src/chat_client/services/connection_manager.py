"""Owns the single push connection of a messaging session."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from chat_client.application.exceptions import (
    AuthenticationError,
    NotConnectedError,
    TransportError,
)
from chat_client.application.ports.auth import CredentialProvider
from chat_client.application.ports.transport import (
    EventHandler,
    PushTransport,
    TransportFactory,
)
from chat_client.config import Settings
from chat_client.domain.events.connection import (
    ConnectionStateChanged,
    ReauthenticationRequired,
    ReconnectExhausted,
    TransportErrorReceived,
)
from chat_client.domain.value_objects.enums import ConnectionState
from chat_client.infrastructure.bus.local_bus import LocalEventBus
from chat_client.infrastructure.socket.protocol import ERROR_EVENT, ErrorPayload
from chat_client.services.auth_guard import AuthGuard

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.BLOCKED}
    ),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.BLOCKED}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.DISCONNECTED, ConnectionState.BLOCKED}
    ),
    # Left only through reset_credential().
    ConnectionState.BLOCKED: frozenset({ConnectionState.DISCONNECTED}),
}


def can_transition(current: ConnectionState, new: ConnectionState) -> bool:
    return new in _TRANSITIONS[current]


class ConnectionManager:
    """Connect / reconnect / block state machine around one ``PushTransport``.

    Other components never hold the transport: they subscribe with ``on`` and
    send with ``emit``. Subscriptions survive reconnects because they are
    re-bound to every new handle.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        bus: LocalEventBus,
        guard: AuthGuard,
        settings: Settings,
        *,
        credentials: CredentialProvider | None = None,
        url: str | None = None,
    ) -> None:
        self._factory = transport_factory
        self._bus = bus
        self._guard = guard
        self._settings = settings
        self._credentials = credentials
        self._url = url or settings.push_url
        self._transport: PushTransport | None = None
        self._credential: str | None = None
        self._state = ConnectionState.DISCONNECTED
        self._subscriptions: dict[str, list[EventHandler]] = {}
        self._cycle: asyncio.Task[None] | None = None
        self._unsubscribe = bus.subscribe(ReauthenticationRequired, self._on_reauth_required)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state == ConnectionState.CONNECTED
            and self._transport is not None
            and self._transport.connected
        )

    # ---- subscriptions -----------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        handlers = self._subscriptions.setdefault(event, [])
        first = not handlers
        handlers.append(handler)
        if first and self._transport is not None:
            self._transport.on(event, self._dispatcher(event))

    def _dispatcher(self, event: str) -> EventHandler:
        async def _dispatch(payload: Any) -> None:
            for handler in list(self._subscriptions.get(event, ())):
                try:
                    await handler(payload)
                except Exception:
                    logger.exception("Error handling push event %s", event)

        return _dispatch

    def _bind(self, transport: PushTransport) -> None:
        async def _on_disconnect(_reason: Any = None) -> None:
            await self._on_transport_disconnect(transport)

        async def _on_error(payload: Any) -> None:
            if isinstance(payload, dict):
                message = ErrorPayload.model_validate(payload).message or ""
            else:
                message = str(payload or "")
            logger.warning("Push server reported an error: %s", message)
            await self._bus.publish(TransportErrorReceived(message=message))

        transport.on("disconnect", _on_disconnect)
        transport.on(ERROR_EVENT, _on_error)
        for event in self._subscriptions:
            transport.on(event, self._dispatcher(event))

    # ---- lifecycle ---------------------------------------------------------

    async def connect(self, credential: str | None = None) -> None:
        """Open the connection unless a live one exists.

        Raises ``CircuitOpenError`` without touching the network while the
        auth circuit is open, and ``AuthenticationError`` when no credential
        is available at all.
        """
        self._guard.check()
        if self._transport is not None and self._transport.connected:
            return
        if self._cycle is not None and not self._cycle.done():
            logger.debug("Connect already in progress")
            return

        if credential is not None:
            self._adopt(credential)
        if not self._current_credential():
            raise AuthenticationError("No credential available")

        await self._close_handle()
        cycle = self._start_cycle(name="push-connect")
        await asyncio.wait({cycle})

    async def disconnect(self) -> None:
        await self._stop_cycle()
        try:
            await self._close_handle()
        finally:
            if self._state != ConnectionState.BLOCKED:
                await self._set_state(ConnectionState.DISCONNECTED)

    async def reset_credential(self, credential: str) -> None:
        """Accept a fresh credential (re-login) and close the circuit."""
        self._guard.reset()
        self._adopt(credential)
        if self._state == ConnectionState.BLOCKED:
            await self._set_state(ConnectionState.DISCONNECTED)

    async def close(self) -> None:
        await self.disconnect()
        self._unsubscribe()
        self._subscriptions.clear()

    async def emit(self, event: str, data: Any) -> None:
        self._guard.check()
        transport = self._transport
        if transport is None or not self.is_connected:
            raise NotConnectedError("Push connection is not established")
        await transport.emit(event, data)

    def _adopt(self, credential: str) -> None:
        self._credential = credential
        if self._credentials is not None:
            self._credentials.replace(credential)

    def _current_credential(self) -> str | None:
        if self._credentials is not None:
            return self._credentials.current() or self._credential
        return self._credential

    # ---- connect cycle -----------------------------------------------------

    def _start_cycle(self, *, initial_delay: float = 0.0, name: str) -> asyncio.Task[None]:
        cycle = asyncio.create_task(self._run_cycle(initial_delay), name=name)
        cycle.add_done_callback(_log_cycle_failure)
        self._cycle = cycle
        return cycle

    async def _run_cycle(self, initial_delay: float = 0.0) -> None:
        if initial_delay:
            await asyncio.sleep(initial_delay)
        failures = 0
        while not self._guard.is_open:
            await self._set_state(ConnectionState.CONNECTING)
            try:
                await self._open_handle()
            except AuthenticationError as exc:
                await self._close_handle()
                await self._set_state(ConnectionState.DISCONNECTED)
                if not await self._handle_auth_failure(exc.detail):
                    return
                continue
            except TransportError as exc:
                await self._close_handle()
                await self._set_state(ConnectionState.DISCONNECTED)
                failures += 1
                if failures > self._settings.MAX_RECONNECT_ATTEMPTS:
                    logger.warning(
                        "Giving up on push connection after %d attempts: %s",
                        failures, exc.detail,
                    )
                    await self._bus.publish(
                        ReconnectExhausted(attempts=failures, last_error=exc.detail)
                    )
                    return
                logger.info(
                    "Push connection failed (%s), retrying in %.1fs (%d/%d)",
                    exc.detail,
                    self._settings.RECONNECT_DELAY,
                    failures,
                    self._settings.MAX_RECONNECT_ATTEMPTS,
                )
                await asyncio.sleep(self._settings.RECONNECT_DELAY)
                continue

            self._guard.record_success()
            await self._set_state(ConnectionState.CONNECTED)
            return

    async def _open_handle(self) -> None:
        transport = self._factory()
        self._transport = transport
        self._bind(transport)
        # Read per attempt: REST calls may have refreshed the token meanwhile.
        credential = self._current_credential()
        if not credential:
            raise AuthenticationError("No credential available")
        try:
            await asyncio.wait_for(
                transport.connect(
                    self._url, credential, timeout=self._settings.CONNECT_TIMEOUT,
                ),
                timeout=self._settings.CONNECT_TIMEOUT,
            )
        except TimeoutError as exc:
            raise TransportError("Connection attempt timed out") from exc

    async def _handle_auth_failure(self, reason: str) -> bool:
        """Count the failure; return True if a refreshed credential is worth a retry."""
        tripped = await self._guard.record_failure(reason or "Authentication failed")
        if tripped or self._credentials is None:
            return False
        try:
            self._credential = await self._credentials.refresh()
        except AuthenticationError as exc:
            await self._guard.trip(exc.detail or "Credential refresh failed")
            return False
        return True

    async def _on_transport_disconnect(self, transport: PushTransport) -> None:
        if transport is not self._transport or self._state != ConnectionState.CONNECTED:
            return
        logger.warning("Push connection lost")
        self._transport = None
        transport.clear_handlers()
        await self._set_state(ConnectionState.DISCONNECTED)
        self._start_cycle(initial_delay=self._settings.RECONNECT_DELAY, name="push-reconnect")

    async def _on_reauth_required(self, _event: ReauthenticationRequired) -> None:
        await self._stop_cycle()
        await self._close_handle()
        await self._set_state(ConnectionState.BLOCKED)

    async def _stop_cycle(self) -> None:
        cycle, self._cycle = self._cycle, None
        if cycle is None or cycle.done() or cycle is asyncio.current_task():
            return
        cycle.cancel()
        await asyncio.wait({cycle})

    async def _close_handle(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception:
            logger.warning("Error while closing push connection", exc_info=True)
        finally:
            transport.clear_handlers()

    async def _set_state(self, new: ConnectionState) -> None:
        previous = self._state
        if new == previous:
            return
        if not can_transition(previous, new):
            logger.warning("Ignoring invalid connection transition %s -> %s", previous, new)
            return
        self._state = new
        logger.info("Push connection %s -> %s", previous, new)
        await self._bus.publish(ConnectionStateChanged(previous=previous, current=new))


def _log_cycle_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Push connect cycle %s crashed", task.get_name(), exc_info=exc)
