"""Alert channel base class and delivery result types."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..alerts.models import Alert, AlertType, NotificationChannel


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class NotificationOutcome:
    """Per-channel record stored in ``AlertHistory.notifications_sent``."""

    channel_id: int | None
    channel_type: str
    channel_name: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_type": self.channel_type,
            "channel_name": self.channel_name,
            "success": self.success,
            "error": self.error,
        }


class AlertChannel:
    """Base class for delivery strategies, one subclass per channel type.

    ``send`` reports failures through the returned DeliveryResult; the
    dispatcher still guards against anything that escapes.
    """

    def send(
        self,
        channel: NotificationChannel,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> DeliveryResult:
        raise NotImplementedError
