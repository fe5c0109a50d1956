"""Administrative operations on alerts and notification channels.

This is the user-facing write path.  It validates configuration and
manages the alert baseline; it never writes cursor progress, which is the
evaluator's job.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from ..errors import AlertConfigError
from ..store.logs import LogStore
from .models import Alert, AlertHistory, NotificationChannel, validate_alert, validate_channel
from .store import AlertStore

logger = logging.getLogger(__name__)


class AlertService:
    """CRUD for alerts and channels on top of an AlertStore.

    New alerts, and alerts being re-enabled, start from the log store's
    current highest id so history that predates them never triggers.
    """

    def __init__(self, alerts: AlertStore, logs: LogStore) -> None:
        self._alerts = alerts
        self._logs = logs

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def create_alert(self, alert: Alert, channel_ids: Sequence[int] = ()) -> Alert:
        validate_alert(alert)
        self._check_channels(alert.owner_id, channel_ids)
        baseline = replace(
            alert,
            id=None,
            channels=[],
            last_seen_log_id=self._logs.max_id(),
            last_triggered_at=None,
            last_checked_at=None,
        )
        created = self._alerts.save(baseline, reset_baseline=True)
        if channel_ids:
            self._alerts.set_channels(created.id, channel_ids)  # type: ignore[arg-type]
        logger.info("Created alert %s (%s) baseline=%s", created.id, created.name, created.last_seen_log_id)
        return self._alerts.get(created.id) or created  # type: ignore[arg-type]

    def update_alert(self, alert: Alert, channel_ids: Sequence[int] | None = None) -> Alert:
        """Persist configuration changes; ``channel_ids=None`` keeps the links."""
        if alert.id is None:
            raise AlertConfigError("id", "alert has not been created")
        validate_alert(alert)
        saved = self._alerts.save(alert)
        if channel_ids is not None:
            self._check_channels(alert.owner_id, channel_ids)
            self._alerts.set_channels(saved.id, channel_ids)  # type: ignore[arg-type]
        return self._alerts.get(saved.id) or saved  # type: ignore[arg-type]

    def toggle_alert(self, alert: Alert) -> Alert:
        """Flip ``enabled``.  Re-enabling moves the baseline to the newest log."""
        current = self._alerts.get(alert.id)  # type: ignore[arg-type]
        if current is None:
            raise AlertConfigError("id", f"alert {alert.id} does not exist")
        if current.enabled:
            return self._alerts.save(replace(current, enabled=False))
        rebased = replace(current, enabled=True, last_seen_log_id=self._logs.max_id())
        return self._alerts.save(rebased, reset_baseline=True)

    def delete_alert(self, alert: Alert) -> bool:
        """Delete an alert together with its history and channel links."""
        return self._alerts.delete(alert.id)  # type: ignore[arg-type]

    def list_alerts(self, owner_id: str | None = None) -> list[Alert]:
        return self._alerts.list_alerts(owner_id)

    def list_history(self, alert: Alert, limit: int = 50) -> list[AlertHistory]:
        """Most recent triggers first."""
        return self._alerts.list_history(alert.id, limit=limit)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def create_channel(self, channel: NotificationChannel) -> NotificationChannel:
        validate_channel(channel)
        return self._alerts.save_channel(replace(channel, id=None))

    def update_channel(self, channel: NotificationChannel) -> NotificationChannel:
        if channel.id is None:
            raise AlertConfigError("id", "channel has not been created")
        validate_channel(channel)
        return self._alerts.save_channel(channel)

    def delete_channel(self, channel: NotificationChannel) -> bool:
        return self._alerts.delete_channel(channel.id)  # type: ignore[arg-type]

    def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]:
        return self._alerts.list_channels(owner_id)

    def _check_channels(self, owner_id: str | None, channel_ids: Sequence[int]) -> None:
        for channel_id in channel_ids:
            channel = self._alerts.get_channel(channel_id)
            if channel is None or (owner_id is not None and channel.owner_id not in (None, owner_id)):
                raise AlertConfigError("channel_ids", f"unknown notification channel {channel_id}")
