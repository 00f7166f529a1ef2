"""Entrypoint: python -m chat_client

Connects one channel with ``CHAT_ACCESS_TOKEN`` and logs what arrives.
"""
from __future__ import annotations

import asyncio
import logging

from chat_client.app import open_session
from chat_client.config import settings
from chat_client.domain.events.alerts import AlertRaised
from chat_client.domain.events.connection import ReauthenticationRequired, ReconnectExhausted
from chat_client.domain.events.messages import MessageReceived
from chat_client.domain.value_objects.channel import INTERNAL_MAIL, SUPPORT_CHAT
from chat_client.domain.value_objects.enums import ChannelKind

logger = logging.getLogger("chat_client")


async def run() -> None:
    if not settings.ACCESS_TOKEN:
        raise SystemExit("CHAT_ACCESS_TOKEN is not set")
    profile = INTERNAL_MAIL if settings.CHANNEL == ChannelKind.INTERNAL_MAIL else SUPPORT_CHAT
    done = asyncio.Event()

    async with open_session(profile, settings.ACCESS_TOKEN, settings.REFRESH_TOKEN or None) as session:
        async def _on_message(event: MessageReceived) -> None:
            logger.info("[%s] %s", event.message.conversation_key, event.message.body)

        async def _on_alert(event: AlertRaised) -> None:
            logger.info("ALERT %s: %s", event.title, event.preview)

        async def _on_stop(event: ReauthenticationRequired | ReconnectExhausted) -> None:
            logger.error("Stopping: %s", event)
            done.set()

        session.bus.subscribe(MessageReceived, _on_message)
        session.bus.subscribe(AlertRaised, _on_alert)
        session.bus.subscribe(ReauthenticationRequired, _on_stop)
        session.bus.subscribe(ReconnectExhausted, _on_stop)

        await session.start()
        logger.info(
            "Connected=%s, %d conversations, %d unread",
            session.connection.is_connected,
            len(session.directory.conversations),
            session.directory.unread_total,
        )
        await done.wait()


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
