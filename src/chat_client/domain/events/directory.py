from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class DirectoryChanged:
    """Conversation list or unread counters changed."""

    counterparty_ids: tuple[str, ...]
    unread_total: int
    refreshed: bool = False


@dataclass(frozen=True, slots=True)
class ConversationSelected:
    counterparty_id: str
    automatic: bool = False
