from __future__ import annotations


class ChatClientError(Exception):
    """Base client error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class AuthenticationError(ChatClientError):
    """Credential rejected by the collaborator or the push handshake."""


class CircuitOpenError(ChatClientError):
    """Too many authentication failures; a fresh credential is required."""


class TransportError(ChatClientError):
    """Push connection failure unrelated to authentication."""


class NotConnectedError(TransportError):
    pass


class CollaboratorError(ChatClientError):
    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail)
        self.status_code = status_code


class MalformedResponseError(CollaboratorError):
    pass


class SendFailedError(ChatClientError):
    pass
