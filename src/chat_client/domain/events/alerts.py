from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AlertRaised:
    title: str
    preview: str
    action_path: str
    counterparty_id: str
