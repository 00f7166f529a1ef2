from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Counterparty:
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str = ""
    avatar: str | None = None

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.email or self.first_name or ""
