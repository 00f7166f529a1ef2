from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.enums import ConnectionState


@dataclass(frozen=True, slots=True)
class ConnectionStateChanged:
    previous: ConnectionState
    current: ConnectionState


@dataclass(frozen=True, slots=True)
class ReauthenticationRequired:
    reason: str


@dataclass(frozen=True, slots=True)
class ReconnectExhausted:
    attempts: int
    last_error: str


@dataclass(frozen=True, slots=True)
class TransportErrorReceived:
    message: str
