from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Coroutine[Any, Any, None]]


class Timer(Protocol):
    def cancel(self) -> None: ...

    def done(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: TimerCallback, *, name: str = "") -> Timer: ...


class AsyncioScheduler:
    """Runs delayed callbacks as tasks on the running loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimerCallback, *, name: str = "") -> Timer:
        task = asyncio.create_task(self._run(delay, callback, name), name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, delay: float, callback: TimerCallback, name: str) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except Exception:
            logger.exception("Delayed callback %s failed", name or callback)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
