"""Per-channel behaviour shared by support chat and internal mail."""
from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.enums import ChannelKind


@dataclass(frozen=True, slots=True)
class ChannelProfile:
    kind: ChannelKind
    inbound_event: str
    live_view: str
    # Support chat raises alerts only for customer-authored messages.
    alert_only_from_customers: bool
    # Support chat counts only customer-authored messages as unread.
    unread_only_from_customers: bool
    sends_over_push: bool
    default_alert_title: str


SUPPORT_CHAT = ChannelProfile(
    kind=ChannelKind.SUPPORT_CHAT,
    inbound_event="message",
    live_view="/dashboard/chat",
    alert_only_from_customers=True,
    unread_only_from_customers=True,
    sends_over_push=True,
    default_alert_title="Customer",
)

INTERNAL_MAIL = ChannelProfile(
    kind=ChannelKind.INTERNAL_MAIL,
    inbound_event="mail:new",
    live_view="/dashboard/mail",
    alert_only_from_customers=False,
    unread_only_from_customers=False,
    sends_over_push=False,
    default_alert_title="New mail",
)
