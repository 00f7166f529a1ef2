from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.enums import Role


@dataclass(frozen=True, slots=True)
class Identity:
    """Signed-in user, established from the bearer credential."""

    user_id: str
    role: Role
    tenant_id: str | None = None
    tenant_slug: str | None = None
    customer_id: str | None = None

    @property
    def is_elevated(self) -> bool:
        """Elevated identities observe conversations across tenants."""
        return self.role == Role.SUPER_ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER
