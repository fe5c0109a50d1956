"""Alert state store contract and an in-memory implementation.

Two write paths touch an alert:

* ``save`` — administrative edits of configuration fields.  Cursor
  fields of an existing alert are left alone unless ``reset_baseline`` is
  given.
* ``update_cursor`` — evaluator progress.  Never touches configuration and
  never moves ``last_seen_log_id`` backwards.
"""
from __future__ import annotations

import copy
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Protocol, Sequence, runtime_checkable

from ..errors import StoreError
from .models import Alert, AlertHistory, AlertType, CursorUpdate, NotificationChannel

logger = logging.getLogger(__name__)

_CURSOR_FIELDS = ("last_seen_log_id", "last_triggered_at", "last_checked_at")


@runtime_checkable
class AlertStore(Protocol):
    def list_enabled(self) -> list[Alert]:
        """Every enabled alert, with its channels loaded."""
        ...

    def list_alerts(self, owner_id: str | None = None) -> list[Alert]: ...

    def get(self, alert_id: int) -> Alert | None: ...

    def save(self, alert: Alert, *, reset_baseline: bool = False) -> Alert:
        """Insert or update configuration; returns the stored alert."""
        ...

    def delete(self, alert_id: int) -> bool: ...

    def set_channels(self, alert_id: int, channel_ids: Sequence[int]) -> None: ...

    def update_cursor(self, alert: Alert, update: CursorUpdate) -> Alert:
        """Apply evaluator progress to the alert read as ``alert``."""
        ...

    def create_history(
        self,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
        notifications: list[dict[str, Any]],
        triggered_at: datetime,
    ) -> AlertHistory: ...

    def list_history(self, alert_id: int, limit: int = 50) -> list[AlertHistory]: ...

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel: ...

    def get_channel(self, channel_id: int) -> NotificationChannel | None: ...

    def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]: ...

    def delete_channel(self, channel_id: int) -> bool: ...


def merge_cursor(current: Alert, update: CursorUpdate) -> dict[str, Any]:
    """Return the cursor field values that ``update`` should write onto ``current``.

    A ``last_seen_log_id`` lower than the stored one is dropped.
    """
    changes: dict[str, Any] = {}
    if update.last_seen_log_id is not None:
        stored = current.last_seen_log_id
        if stored is None or update.last_seen_log_id >= stored:
            changes["last_seen_log_id"] = update.last_seen_log_id
        else:
            logger.warning(
                "Ignoring cursor regression for alert %s: %s < %s",
                current.id, update.last_seen_log_id, stored,
            )
    if update.last_triggered_at is not None:
        changes["last_triggered_at"] = update.last_triggered_at
    if update.last_checked_at is not None:
        changes["last_checked_at"] = update.last_checked_at
    return changes


class InMemoryAlertStore:
    """Dict-backed AlertStore guarded by a single lock.

    Returned alerts are copies; mutate them and call ``save`` to persist.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._alerts: dict[int, Alert] = {}
        self._channels: dict[int, NotificationChannel] = {}
        self._links: dict[int, list[int]] = {}
        self._history: dict[int, list[AlertHistory]] = {}
        self._next_alert_id = 1
        self._next_channel_id = 1
        self._next_history_id = 1

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _load(self, alert: Alert) -> Alert:
        loaded = copy.deepcopy(alert)
        loaded.channels = [
            copy.deepcopy(self._channels[cid])
            for cid in self._links.get(alert.id, [])  # type: ignore[arg-type]
            if cid in self._channels
        ]
        return loaded

    def list_enabled(self) -> list[Alert]:
        with self._lock:
            return [self._load(a) for a in self._alerts.values() if a.enabled]

    def list_alerts(self, owner_id: str | None = None) -> list[Alert]:
        with self._lock:
            return [
                self._load(a)
                for a in self._alerts.values()
                if owner_id is None or a.owner_id == owner_id
            ]

    def get(self, alert_id: int) -> Alert | None:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return self._load(alert) if alert is not None else None

    def save(self, alert: Alert, *, reset_baseline: bool = False) -> Alert:
        with self._lock:
            stored = copy.deepcopy(alert)
            stored.channels = []
            if stored.id is None:
                stored.id = self._next_alert_id
                self._next_alert_id += 1
            elif stored.id in self._alerts and not reset_baseline:
                current = self._alerts[stored.id]
                for name in _CURSOR_FIELDS:
                    setattr(stored, name, getattr(current, name))
            self._alerts[stored.id] = stored
            self._links.setdefault(stored.id, [])
            return self._load(stored)

    def delete(self, alert_id: int) -> bool:
        with self._lock:
            existed = self._alerts.pop(alert_id, None) is not None
            self._links.pop(alert_id, None)
            self._history.pop(alert_id, None)
            return existed

    def set_channels(self, alert_id: int, channel_ids: Sequence[int]) -> None:
        with self._lock:
            if alert_id not in self._alerts:
                raise StoreError(f"alert {alert_id} does not exist")
            self._links[alert_id] = [cid for cid in dict.fromkeys(channel_ids) if cid in self._channels]

    def update_cursor(self, alert: Alert, update: CursorUpdate) -> Alert:
        with self._lock:
            current = self._alerts.get(alert.id)  # type: ignore[arg-type]
            if current is None:
                raise StoreError(f"alert {alert.id} does not exist")
            changes = merge_cursor(current, update)
            self._alerts[current.id] = replace(current, **changes)  # type: ignore[index]
            return self._load(self._alerts[current.id])  # type: ignore[index]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def create_history(
        self,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
        notifications: list[dict[str, Any]],
        triggered_at: datetime,
    ) -> AlertHistory:
        with self._lock:
            if alert.id not in self._alerts:
                raise StoreError(f"alert {alert.id} does not exist")
            entry = AlertHistory(
                id=self._next_history_id,
                alert_id=alert.id,  # type: ignore[arg-type]
                trigger_type=AlertType(trigger_type),
                trigger_data=copy.deepcopy(trigger_data),
                notifications_sent=copy.deepcopy(notifications),
                triggered_at=triggered_at,
            )
            self._next_history_id += 1
            self._history.setdefault(alert.id, []).append(entry)  # type: ignore[arg-type]
            return entry

    def list_history(self, alert_id: int, limit: int = 50) -> list[AlertHistory]:
        with self._lock:
            entries = self._history.get(alert_id, [])
            newest_first = sorted(entries, key=lambda h: (h.triggered_at, h.id or 0), reverse=True)
            return newest_first[:limit]

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel:
        with self._lock:
            stored = copy.deepcopy(channel)
            if stored.id is None:
                stored.id = self._next_channel_id
                self._next_channel_id += 1
            self._channels[stored.id] = stored
            return copy.deepcopy(stored)

    def get_channel(self, channel_id: int) -> NotificationChannel | None:
        with self._lock:
            channel = self._channels.get(channel_id)
            return copy.deepcopy(channel) if channel is not None else None

    def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]:
        with self._lock:
            return [
                copy.deepcopy(c)
                for c in self._channels.values()
                if owner_id is None or c.owner_id == owner_id
            ]

    def delete_channel(self, channel_id: int) -> bool:
        with self._lock:
            existed = self._channels.pop(channel_id, None) is not None
            for ids in self._links.values():
                if channel_id in ids:
                    ids.remove(channel_id)
            return existed
