"""Client-side list of conversations, one per counterparty."""
from __future__ import annotations

import logging

from chat_client.application.dto.history import DirectorySnapshot
from chat_client.application.exceptions import ChatClientError, CircuitOpenError
from chat_client.application.ports.api import ConversationApi
from chat_client.application.ports.bus import EventPublisher
from chat_client.application.ports.clock import Scheduler, Timer
from chat_client.config import Settings
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.identity import Identity
from chat_client.domain.entities.message import Message
from chat_client.domain.events.directory import ConversationSelected, DirectoryChanged

logger = logging.getLogger(__name__)


class ConversationDirectory:
    """Reconciled from bulk fetches, patched by pushed messages.

    Presentation order is the server order after a refresh; conversations
    with new activity move to the front. The directory also owns the current
    selection because auto-select depends on it.
    """

    def __init__(
        self,
        api: ConversationApi,
        identity: Identity,
        publisher: EventPublisher,
        scheduler: Scheduler,
        settings: Settings,
        *,
        count_only_customers: bool = False,
    ) -> None:
        self._api = api
        self._identity = identity
        self._publisher = publisher
        self._scheduler = scheduler
        self._settings = settings
        self._count_only_customers = count_only_customers
        self._conversations: list[Conversation] = []
        # Message ids already applied, per counterparty.
        self._applied: dict[str, set[str]] = {}
        self._unread_total = 0
        self._selected_id: str | None = None
        self._refreshing = False
        self._pending_refresh: Timer | None = None
        self._pending_auto_select: Timer | None = None

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def unread_total(self) -> int:
        return self._unread_total

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def get(self, counterparty_id: str) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.counterparty_id == counterparty_id:
                return conversation
        return None

    def tenant_slugs(self) -> set[str]:
        return {c.tenant_slug for c in self._conversations if c.tenant_slug}

    # ---- refresh -----------------------------------------------------------

    async def refresh(self) -> bool:
        """Replace the list from the collaborator.

        Returns False when the call was dropped because another refresh is in
        flight, or when it failed.
        """
        if self._refreshing:
            logger.debug("Directory refresh already in flight, dropping")
            return False
        self._refreshing = True
        try:
            snapshot = await self._api.fetch_directory()
        except CircuitOpenError:
            logger.debug("Directory refresh skipped, re-authentication required")
            return False
        except ChatClientError as exc:
            logger.warning("Directory refresh failed: %s", exc.detail)
            return False
        finally:
            self._refreshing = False

        self._conversations = list(snapshot.conversations)
        self._reset_applied()
        self._unread_total = self._compute_unread_total(snapshot)
        logger.debug(
            "Directory refreshed: %d conversations, %d unread",
            len(self._conversations), self._unread_total,
        )
        await self._publish_changed(refreshed=True)
        self._schedule_auto_select()
        return True

    def _reset_applied(self) -> None:
        # The server counters already include everything applied so far, so
        # ids survive a refresh for conversations that are still listed.
        applied: dict[str, set[str]] = {}
        for conversation in self._conversations:
            ids = self._applied.get(conversation.counterparty_id, set())
            if conversation.last_message is not None:
                ids.add(conversation.last_message.id)
            applied[conversation.counterparty_id] = ids
        self._applied = applied

    def _compute_unread_total(self, snapshot: DirectorySnapshot) -> int:
        if self._identity.is_elevated or snapshot.server_unread_total is None:
            return sum(c.unread_count for c in snapshot.conversations)
        # The server total includes messages the user sent to themself.
        own = sum(
            c.unread_count for c in snapshot.conversations
            if c.counterparty_id == self._identity.user_id
        )
        return max(0, snapshot.server_unread_total - own)

    def schedule_refresh(self) -> None:
        """Debounced refresh: at most one pending at a time."""
        if self._pending_refresh is not None and not self._pending_refresh.done():
            return
        self._pending_refresh = self._scheduler.call_later(
            self._settings.REFRESH_DEBOUNCE, self._run_scheduled_refresh, name="directory-refresh",
        )

    async def _run_scheduled_refresh(self) -> None:
        self._pending_refresh = None
        await self.refresh()

    # ---- incremental patches -----------------------------------------------

    async def apply_incoming_message(self, message: Message) -> bool:
        """Patch the directory from a pushed message.

        Returns False when the counterparty is unknown; a debounced refresh
        is scheduled to materialize it. A message id is applied at most once
        per conversation.
        """
        key = message.conversation_key
        current = self.get(key)
        if self.has_applied(message):
            logger.debug("Message %s already applied", message.id)
            return current is not None
        self._applied.setdefault(key, set()).add(message.id)
        if current is None:
            logger.debug("Message %s for unknown counterparty %s, scheduling refresh", message.id, key)
            self.schedule_refresh()
            return False

        count_unread = self.counts_as_unread(message)
        updated = current.with_incoming(message, count_unread=count_unread)
        if updated.last_message is message:
            self._conversations = [updated] + [
                c for c in self._conversations if c.counterparty_id != key
            ]
        else:
            # Late delivery of an older message keeps the position.
            self._conversations = [
                updated if c.counterparty_id == key else c for c in self._conversations
            ]
        if count_unread:
            self._unread_total += 1
        await self._publish_changed()
        return True

    def has_applied(self, message: Message) -> bool:
        return message.id in self._applied.get(message.conversation_key, ())

    def counts_as_unread(self, message: Message) -> bool:
        if message.sender_id == self._identity.user_id:
            return False
        if self._count_only_customers:
            return message.is_from_customer
        return True

    async def apply_read_acknowledgement(self, counterparty_id: str) -> None:
        current = self.get(counterparty_id)
        if current is None:
            return
        if current.unread_count:
            self._unread_total = max(0, self._unread_total - current.unread_count)
        self._conversations = [
            current.with_all_read() if c.counterparty_id == counterparty_id else c
            for c in self._conversations
        ]
        await self._publish_changed()

    async def apply_all_read(self) -> None:
        self._conversations = [c.with_all_read() for c in self._conversations]
        self._unread_total = 0
        await self._publish_changed()

    # ---- selection ---------------------------------------------------------

    async def select(self, counterparty_id: str, *, automatic: bool = False) -> None:
        if self._pending_auto_select is not None and not automatic:
            self._pending_auto_select.cancel()
            self._pending_auto_select = None
        self._selected_id = counterparty_id
        await self._publisher.publish(
            ConversationSelected(counterparty_id=counterparty_id, automatic=automatic)
        )

    def clear_selection(self) -> None:
        self._selected_id = None

    def _schedule_auto_select(self) -> None:
        if self._selected_id is not None or not self._conversations:
            return
        if self._pending_auto_select is not None:
            self._pending_auto_select.cancel()
        first_id = self._conversations[0].counterparty_id

        async def _auto_select() -> None:
            self._pending_auto_select = None
            # The user may have picked something in the meantime.
            if self._selected_id is not None or self.get(first_id) is None:
                return
            logger.debug("Auto-selecting conversation %s", first_id)
            await self.select(first_id, automatic=True)

        self._pending_auto_select = self._scheduler.call_later(
            self._settings.AUTO_SELECT_DELAY, _auto_select, name="directory-auto-select",
        )

    # ---- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        for timer in (self._pending_refresh, self._pending_auto_select):
            if timer is not None:
                timer.cancel()
        self._pending_refresh = None
        self._pending_auto_select = None

    async def _publish_changed(self, *, refreshed: bool = False) -> None:
        await self._publisher.publish(
            DirectoryChanged(
                counterparty_ids=tuple(c.counterparty_id for c in self._conversations),
                unread_total=self._unread_total,
                refreshed=refreshed,
            )
        )
