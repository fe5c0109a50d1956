"""Fan a triggered alert out to its enabled notification channels."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from ..alerts.models import Alert, AlertType, ChannelType, NotificationChannel
from .base import AlertChannel, DeliveryResult, NotificationOutcome
from .email_channel import EmailChannel
from .pushover import PushoverChannel
from .slack import SlackChannel

logger = logging.getLogger(__name__)


def default_senders() -> dict[ChannelType, AlertChannel]:
    """One sender per channel type, configured from settings."""
    return {
        ChannelType.EMAIL: EmailChannel(),
        ChannelType.PUSHOVER: PushoverChannel(),
        ChannelType.SLACK: SlackChannel(),
    }


class Dispatcher:
    """Deliver alert notifications, one attempt per enabled channel.

    Every ChannelType must have a sender; a missing one is a construction
    error rather than a silent skip at trigger time.  A failing channel
    never stops its siblings, and the outcome list always covers every
    enabled channel.

    Usage::

        dispatcher = Dispatcher()
        outcomes = dispatcher.send_alert(alert, AlertType.ANY_MATCH, data)
    """

    def __init__(self, senders: Mapping[ChannelType, AlertChannel] | None = None) -> None:
        resolved = dict(senders) if senders is not None else default_senders()
        missing = [t.value for t in ChannelType if t not in resolved]
        if missing:
            raise ValueError(f"no sender registered for channel types: {missing}")
        self._senders = resolved

    def send_alert(
        self,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Attempt delivery on each enabled channel and return the outcomes."""
        outcomes: list[dict[str, Any]] = []
        for channel in alert.channels:
            if not channel.enabled:
                continue
            result = self._deliver(channel, alert, trigger_type, trigger_data)
            outcomes.append(
                NotificationOutcome(
                    channel_id=channel.id,
                    channel_type=ChannelType(channel.channel_type).value,
                    channel_name=channel.name,
                    success=result.success,
                    error=result.error,
                ).to_dict()
            )
        return outcomes

    def _deliver(
        self,
        channel: NotificationChannel,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> DeliveryResult:
        try:
            sender = self._senders[ChannelType(channel.channel_type)]
            return sender.send(channel, alert, trigger_type, trigger_data)
        except Exception as exc:
            logger.warning(
                "Channel %s (%s) failed for alert %s: %s",
                channel.id, channel.channel_type, alert.id, exc,
            )
            return DeliveryResult.failed(repr(exc))
