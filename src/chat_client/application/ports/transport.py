from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

EventHandler = Callable[[Any], Coroutine[Any, Any, None]]


class PushTransport(Protocol):
    """One persistent bidirectional connection.

    ``connect`` raises ``AuthenticationError`` when the handshake rejects the
    credential and ``TransportError`` for anything else.
    """

    @property
    def connected(self) -> bool: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def clear_handlers(self) -> None: ...

    async def connect(self, url: str, credential: str, *, timeout: float) -> None: ...

    async def emit(self, event: str, data: Any) -> None: ...

    async def disconnect(self) -> None: ...


TransportFactory = Callable[[], PushTransport]
