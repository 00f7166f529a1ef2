"""In-process typed event bus."""
from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")
OnEventCallback = Callable[[Any], Coroutine[Any, Any, None]]


class LocalEventBus:
    """Implements application.ports.bus.EventPublisher.

    Handlers run sequentially in subscription order on the publishing task;
    a failing handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[OnEventCallback]] = {}

    def subscribe(
        self,
        event_type: type[E],
        callback: Callable[[E], Coroutine[Any, Any, None]],
    ) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(callback)

        def _unsubscribe() -> None:
            if callback in handlers:
                handlers.remove(callback)

        return _unsubscribe

    async def publish(self, event: Any) -> None:
        for callback in list(self._handlers.get(type(event), ())):
            try:
                await callback(event)
            except Exception:
                logger.exception("Error handling %s", type(event).__name__)

    def clear(self) -> None:
        self._handlers.clear()
