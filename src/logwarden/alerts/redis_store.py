"""Redis-backed alert state store.

Key schema (``{p}`` is ``settings.redis_prefix``)::

    {p}:alerts                  set of alert ids
    {p}:alert:{id}              JSON configuration
    {p}:alert:{id}:channels     JSON list of linked channel ids
    {p}:cursor:{id}             hash: last_seen_log_id / last_triggered_at / last_checked_at
    {p}:history:{id}            list of JSON history entries, oldest first
    {p}:channels                set of channel ids
    {p}:channel:{id}            JSON channel
    {p}:seq:{kind}              id counters

Configuration and cursor live under different keys so administrative
edits and evaluator progress never overwrite each other.  Cursor writes
WATCH the cursor hash and re-check monotonicity against the value read
inside the transaction.  Cursor and history writes also WATCH the alert
key and refuse to run once the alert is gone.

Usage::

    from logwarden.alerts.redis_store import RedisAlertStore

    store = RedisAlertStore(url="redis://localhost:6379/0")
    for alert in store.list_enabled():
        ...
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any, Sequence

import redis
from redis.exceptions import RedisError, WatchError

from ..errors import StoreError
from .models import Alert, AlertHistory, AlertType, ChannelType, CursorUpdate, NotificationChannel
from .store import merge_cursor

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = (
    "id",
    "owner_id",
    "name",
    "description",
    "enabled",
    "search_query",
    "alert_type",
    "velocity_threshold",
    "velocity_window_seconds",
    "cooldown_seconds",
)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def encode_cursor(changes: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in changes.items():
        out[key] = value.isoformat() if isinstance(value, datetime) else str(value)
    return out


def decode_cursor(raw: dict[str, str]) -> dict[str, Any]:
    seen = raw.get("last_seen_log_id")
    return {
        "last_seen_log_id": int(seen) if seen else None,
        "last_triggered_at": _dt(raw.get("last_triggered_at")),
        "last_checked_at": _dt(raw.get("last_checked_at")),
    }


def encode_alert(alert: Alert) -> str:
    data = {name: getattr(alert, name) for name in _CONFIG_FIELDS}
    data["alert_type"] = AlertType(alert.alert_type).value
    return json.dumps(data)


def encode_channel(channel: NotificationChannel) -> str:
    data = asdict(channel)
    data["channel_type"] = ChannelType(channel.channel_type).value
    return json.dumps(data)


def decode_channel(raw: str) -> NotificationChannel:
    data = json.loads(raw)
    data["channel_type"] = ChannelType(data["channel_type"])
    return NotificationChannel(**data)


class RedisAlertStore:
    """AlertStore persisted in Redis.

    Every failure surfaces as StoreError so the evaluator can log it and
    move on; nothing here swallows errors.

    Args:
        url:          Redis connection URL (redis://host:port/db).
        prefix:       Namespace for every key written.
        max_retries:  Attempts at a cursor or history write before giving up on
                      concurrent modification.
        client:       Pre-built client (tests, shared pools).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "logwarden",
        max_retries: int = 3,
        client: Any = None,
    ) -> None:
        self._url = url
        self._prefix = prefix
        self._max_retries = max_retries
        self._client: Any = client if client is not None else redis.Redis.from_url(url, decode_responses=True)

    def _key(self, *parts: object) -> str:
        return ":".join([self._prefix, *map(str, parts)])

    def ping(self) -> bool:
        """True when the server answers."""
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning("Redis unavailable at %s: %s", self._url, exc)
            return False

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _read_alert(self, alert_id: int) -> Alert | None:
        raw = self._client.get(self._key("alert", alert_id))
        if raw is None:
            return None
        data = json.loads(raw)
        data["alert_type"] = AlertType(data["alert_type"])
        alert = Alert(**data)
        cursor = decode_cursor(self._client.hgetall(self._key("cursor", alert_id)) or {})
        alert = replace(alert, **cursor)
        alert.channels = self._read_channels(alert_id)
        return alert

    def _read_channels(self, alert_id: int) -> list[NotificationChannel]:
        raw = self._client.get(self._key("alert", alert_id, "channels"))
        channels: list[NotificationChannel] = []
        for channel_id in json.loads(raw) if raw else []:
            channel = self.get_channel(channel_id)
            if channel is not None:
                channels.append(channel)
        return channels

    def _alert_ids(self) -> list[int]:
        return sorted(int(i) for i in self._client.smembers(self._key("alerts")))

    def list_alerts(self, owner_id: str | None = None) -> list[Alert]:
        try:
            alerts = [self._read_alert(i) for i in self._alert_ids()]
        except RedisError as exc:
            raise StoreError(f"failed to list alerts: {exc}") from exc
        return [a for a in alerts if a is not None and (owner_id is None or a.owner_id == owner_id)]

    def list_enabled(self) -> list[Alert]:
        return [a for a in self.list_alerts() if a.enabled]

    def get(self, alert_id: int) -> Alert | None:
        try:
            return self._read_alert(alert_id)
        except RedisError as exc:
            raise StoreError(f"failed to read alert {alert_id}: {exc}") from exc

    def save(self, alert: Alert, *, reset_baseline: bool = False) -> Alert:
        try:
            if alert.id is None:
                alert = replace(alert, id=int(self._client.incr(self._key("seq", "alert"))))
                reset_baseline = True
            pipe = self._client.pipeline()
            pipe.set(self._key("alert", alert.id), encode_alert(alert))
            pipe.sadd(self._key("alerts"), alert.id)
            if reset_baseline:
                cursor = {
                    "last_seen_log_id": alert.last_seen_log_id,
                    "last_triggered_at": alert.last_triggered_at,
                    "last_checked_at": alert.last_checked_at,
                }
                pipe.delete(self._key("cursor", alert.id))
                present = {k: v for k, v in cursor.items() if v is not None}
                if present:
                    pipe.hset(self._key("cursor", alert.id), mapping=encode_cursor(present))
            pipe.execute()
        except RedisError as exc:
            raise StoreError(f"failed to save alert {alert.id}: {exc}") from exc
        return self.get(alert.id)  # type: ignore[arg-type,return-value]

    def delete(self, alert_id: int) -> bool:
        try:
            pipe = self._client.pipeline()
            pipe.srem(self._key("alerts"), alert_id)
            pipe.delete(
                self._key("alert", alert_id),
                self._key("alert", alert_id, "channels"),
                self._key("cursor", alert_id),
                self._key("history", alert_id),
            )
            removed, _ = pipe.execute()
        except RedisError as exc:
            raise StoreError(f"failed to delete alert {alert_id}: {exc}") from exc
        return bool(removed)

    def set_channels(self, alert_id: int, channel_ids: Sequence[int]) -> None:
        try:
            self._client.set(
                self._key("alert", alert_id, "channels"),
                json.dumps(list(dict.fromkeys(channel_ids))),
            )
        except RedisError as exc:
            raise StoreError(f"failed to link channels for alert {alert_id}: {exc}") from exc

    def update_cursor(self, alert: Alert, update: CursorUpdate) -> Alert:
        key = self._key("cursor", alert.id)
        alert_key = self._key("alert", alert.id)
        for attempt in range(1, self._max_retries + 1):
            try:
                with self._client.pipeline() as pipe:
                    pipe.watch(key, alert_key)
                    if not pipe.exists(alert_key):
                        raise StoreError(f"alert {alert.id} does not exist")
                    current = replace(alert, **decode_cursor(pipe.hgetall(key) or {}))
                    changes = merge_cursor(current, update)
                    pipe.multi()
                    if changes:
                        pipe.hset(key, mapping=encode_cursor(changes))
                    pipe.execute()
                    return replace(current, **changes)
            except WatchError:
                logger.info(
                    "Cursor for alert %s changed concurrently (attempt %d/%d)",
                    alert.id, attempt, self._max_retries,
                )
            except RedisError as exc:
                raise StoreError(f"failed to update cursor for alert {alert.id}: {exc}") from exc
        raise StoreError(f"cursor update for alert {alert.id} lost {self._max_retries} races")

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
        alert_key = self._key("alert", alert.id)
        for attempt in range(1, self._max_retries + 1):
            try:
                with self._client.pipeline() as pipe:
                    # A delete racing this write aborts the transaction
                    pipe.watch(alert_key)
                    if not pipe.exists(alert_key):
                        raise StoreError(f"alert {alert.id} does not exist")
                    history_id = int(pipe.incr(self._key("seq", "history")))
                    entry = AlertHistory(
                        id=history_id,
                        alert_id=alert.id,  # type: ignore[arg-type]
                        trigger_type=AlertType(trigger_type),
                        trigger_data=trigger_data,
                        notifications_sent=notifications,
                        triggered_at=triggered_at,
                    )
                    payload = {
                        "id": history_id,
                        "alert_id": alert.id,
                        "trigger_type": entry.trigger_type.value,
                        "trigger_data": trigger_data,
                        "notifications_sent": notifications,
                        "triggered_at": triggered_at.isoformat(),
                    }
                    pipe.multi()
                    pipe.rpush(self._key("history", alert.id), json.dumps(payload, default=str))
                    pipe.execute()
                    return entry
            except WatchError:
                logger.info(
                    "Alert %s changed while recording history (attempt %d/%d)",
                    alert.id, attempt, self._max_retries,
                )
            except RedisError as exc:
                raise StoreError(f"failed to record history for alert {alert.id}: {exc}") from exc
        raise StoreError(f"history write for alert {alert.id} lost {self._max_retries} races")

    def list_history(self, alert_id: int, limit: int = 50) -> list[AlertHistory]:
        try:
            raw = self._client.lrange(self._key("history", alert_id), -limit, -1)
        except RedisError as exc:
            raise StoreError(f"failed to read history for alert {alert_id}: {exc}") from exc
        entries = []
        for item in reversed(raw):
            data = json.loads(item)
            entries.append(
                AlertHistory(
                    id=data["id"],
                    alert_id=data["alert_id"],
                    trigger_type=AlertType(data["trigger_type"]),
                    trigger_data=data["trigger_data"],
                    notifications_sent=data["notifications_sent"],
                    triggered_at=datetime.fromisoformat(data["triggered_at"]),
                )
            )
        return entries

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel:
        try:
            if channel.id is None:
                channel = replace(channel, id=int(self._client.incr(self._key("seq", "channel"))))
            pipe = self._client.pipeline()
            pipe.set(self._key("channel", channel.id), encode_channel(channel))
            pipe.sadd(self._key("channels"), channel.id)
            pipe.execute()
        except RedisError as exc:
            raise StoreError(f"failed to save channel {channel.id}: {exc}") from exc
        return channel

    def get_channel(self, channel_id: int) -> NotificationChannel | None:
        try:
            raw = self._client.get(self._key("channel", channel_id))
        except RedisError as exc:
            raise StoreError(f"failed to read channel {channel_id}: {exc}") from exc
        return decode_channel(raw) if raw is not None else None

    def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]:
        try:
            ids = sorted(int(i) for i in self._client.smembers(self._key("channels")))
        except RedisError as exc:
            raise StoreError(f"failed to list channels: {exc}") from exc
        channels = [self.get_channel(i) for i in ids]
        return [c for c in channels if c is not None and (owner_id is None or c.owner_id == owner_id)]

    def delete_channel(self, channel_id: int) -> bool:
        try:
            pipe = self._client.pipeline()
            pipe.srem(self._key("channels"), channel_id)
            pipe.delete(self._key("channel", channel_id))
            removed, _ = pipe.execute()
        except RedisError as exc:
            raise StoreError(f"failed to delete channel {channel_id}: {exc}") from exc
        return bool(removed)
