from __future__ import annotations

import logging

import jwt

from chat_client.application.exceptions import AuthenticationError
from chat_client.domain.entities.identity import Identity
from chat_client.domain.value_objects.enums import Role

logger = logging.getLogger(__name__)


class JWTIdentityDecoder:
    """Read the signed-in identity from the bearer JWT.

    The signature is verified only when a shared secret is configured; the
    collaborator remains the authority on whether the token is accepted.
    """

    def __init__(self, secret: str = "", algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def decode(self, credential: str) -> Identity:
        try:
            if self._secret:
                payload = jwt.decode(credential, self._secret, algorithms=[self._algorithm])
            else:
                payload = jwt.decode(credential, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise AuthenticationError(f"Invalid credential: {exc}") from exc

        user_id = payload.get("userId", payload.get("sub"))
        if not user_id:
            raise AuthenticationError("Credential carries no user id")

        role_raw = str(payload.get("role", "")).lower()
        if role_raw in Role.__members__.values():
            role = Role(role_raw)
        else:
            logger.warning("Unknown role %r in credential, treating as staff", role_raw)
            role = Role.STAFF
        return Identity(
            user_id=str(user_id),
            role=role,
            tenant_id=_optional_str(payload.get("tenantId")),
            tenant_slug=_optional_str(payload.get("tenantSlug")),
            customer_id=_optional_str(payload.get("customerId")),
        )


def _optional_str(value: object) -> str | None:
    return str(value) if value not in (None, "") else None
