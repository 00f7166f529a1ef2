"""Socket.IO implementation of the push transport port."""
from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError
from socketio.exceptions import SocketIOError

from chat_client.application.exceptions import AuthenticationError, TransportError
from chat_client.application.ports.transport import EventHandler
from chat_client.infrastructure.socket.protocol import is_auth_failure

logger = logging.getLogger(__name__)


class SocketIOTransport:
    """One ``socketio.AsyncClient`` handle.

    Built-in reconnection is disabled: retries, backoff and the auth circuit
    belong to ``ConnectionManager``. A new instance is created per connect
    attempt.
    """

    def __init__(self, *, socketio_path: str = "socket.io") -> None:
        self._client = socketio.AsyncClient(
            reconnection=False,
            logger=False,
            engineio_logger=False,
        )
        self._socketio_path = socketio_path.strip().lstrip("/")
        self._handlers: dict[str, list[EventHandler]] = {}
        self._last_connect_error = ""
        self._client.on("connect_error", self._on_connect_error)

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in self._handlers:
            self._handlers[event] = []
            self._client.on(event, self._dispatcher(event))
        self._handlers[event].append(handler)

    def clear_handlers(self) -> None:
        self._handlers.clear()

    def _dispatcher(self, event: str):
        async def _dispatch(*args: Any) -> None:
            payload = args[0] if args else None
            for handler in list(self._handlers.get(event, ())):
                await handler(payload)

        return _dispatch

    async def _on_connect_error(self, data: Any = None) -> None:
        if isinstance(data, dict):
            self._last_connect_error = str(data.get("message", ""))
        else:
            self._last_connect_error = str(data or "")
        logger.debug("Push connect_error: %s", self._last_connect_error)

    async def connect(self, url: str, credential: str, *, timeout: float) -> None:
        self._last_connect_error = ""
        try:
            await self._client.connect(
                url,
                auth={"token": credential},
                transports=["websocket", "polling"],
                socketio_path=self._socketio_path,
                wait_timeout=timeout,
            )
        except SocketIOConnectionError as exc:
            reason = " ".join(part for part in (str(exc), self._last_connect_error) if part)
            if is_auth_failure(reason):
                raise AuthenticationError(reason) from exc
            raise TransportError(reason or "Connection failed") from exc

    async def emit(self, event: str, data: Any) -> None:
        try:
            await self._client.emit(event, data)
        except SocketIOError as exc:
            raise TransportError(str(exc)) from exc

    async def disconnect(self) -> None:
        await self._client.disconnect()
