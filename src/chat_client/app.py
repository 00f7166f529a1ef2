from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from chat_client.application.ports.auth import IdentityDecoder
from chat_client.application.ports.clock import AsyncioScheduler
from chat_client.application.ports.transport import TransportFactory
from chat_client.config import Settings, settings as default_settings
from chat_client.domain.value_objects.channel import INTERNAL_MAIL, ChannelProfile
from chat_client.infrastructure.auth.jwt_identity import JWTIdentityDecoder
from chat_client.infrastructure.auth.refresh_provider import RefreshingCredentialProvider
from chat_client.infrastructure.bus.local_bus import LocalEventBus
from chat_client.infrastructure.http.client import CollaboratorClient
from chat_client.infrastructure.http.mail_api import MailApi
from chat_client.infrastructure.http.support_api import SupportChatApi
from chat_client.infrastructure.socket.transport import SocketIOTransport
from chat_client.services.auth_guard import AuthGuard
from chat_client.services.session import MessagingSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_session(
    profile: ChannelProfile,
    access_token: str,
    refresh_token: str | None = None,
    *,
    settings: Settings | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    transport_factory: TransportFactory | None = None,
    decoder: IdentityDecoder | None = None,
) -> AsyncIterator[MessagingSession]:
    """Build a session for ``profile`` and release its resources on exit.

    The session is not started; call ``start()`` inside the block.
    """
    settings = settings or default_settings
    decoder = decoder or JWTIdentityDecoder(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    identity = decoder.decode(access_token)
    logger.info("Opening %s session for user %s (%s)", profile.kind, identity.user_id, identity.role)

    bus = LocalEventBus()
    guard = AuthGuard(bus, settings.AUTH_FAILURE_THRESHOLD)
    scheduler = AsyncioScheduler()
    credentials = RefreshingCredentialProvider(
        settings.API_URL,
        access_token,
        refresh_token,
        timeout=settings.HTTP_TIMEOUT,
        transport=http_transport,
    )
    client = CollaboratorClient(
        settings.API_URL,
        credentials,
        guard,
        timeout=settings.HTTP_TIMEOUT,
        transport=http_transport,
    )
    if profile == INTERNAL_MAIL:
        api: SupportChatApi | MailApi = MailApi(client, identity)
    else:
        api = SupportChatApi(client, identity)

    session = MessagingSession(
        profile=profile,
        identity=identity,
        api=api,
        transport_factory=transport_factory
        or functools.partial(SocketIOTransport, socketio_path=settings.SOCKETIO_PATH),
        credentials=credentials,
        scheduler=scheduler,
        settings=settings,
        bus=bus,
        guard=guard,
    )
    try:
        yield session
    finally:
        await session.stop()
        await scheduler.aclose()
        await client.aclose()
        await credentials.aclose()
        bus.clear()
        logger.info("Session closed")
