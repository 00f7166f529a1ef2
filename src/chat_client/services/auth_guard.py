"""Circuit breaker around authentication failures."""
from __future__ import annotations

import logging

from chat_client.application.exceptions import CircuitOpenError
from chat_client.application.ports.bus import EventPublisher
from chat_client.domain.events.connection import ReauthenticationRequired

logger = logging.getLogger(__name__)


class AuthGuard:
    """Counts consecutive authentication failures shared by REST and push.

    Once ``threshold`` failures accumulate the circuit opens: every caller
    checking the guard is rejected locally until ``reset`` is called with a
    fresh credential.
    """

    def __init__(self, publisher: EventPublisher, threshold: int = 3) -> None:
        self._publisher = publisher
        self._threshold = threshold
        self._failures = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def failures(self) -> int:
        return self._failures

    def check(self) -> None:
        if self._open:
            raise CircuitOpenError("Re-authentication required")

    def record_success(self) -> None:
        self._failures = 0

    async def record_failure(self, reason: str) -> bool:
        """Count one failure. Return True if this call opened the circuit."""
        if self._open:
            return False
        self._failures += 1
        logger.warning(
            "Authentication failure (%d/%d): %s",
            self._failures, self._threshold, reason,
        )
        if self._failures >= self._threshold:
            await self.trip(reason)
            return True
        return False

    async def trip(self, reason: str) -> None:
        """Open the circuit immediately (unrecoverable credential failure)."""
        if self._open:
            return
        self._open = True
        logger.error("Opening auth circuit breaker: %s", reason)
        await self._publisher.publish(ReauthenticationRequired(reason=reason))

    def reset(self) -> None:
        self._failures = 0
        self._open = False
