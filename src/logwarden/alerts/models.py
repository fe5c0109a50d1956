"""Alert, notification channel and history records, plus validation."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import AlertConfigError


class AlertType(str, Enum):
    ANY_MATCH = "any_match"
    VELOCITY = "velocity"


class ChannelType(str, Enum):
    EMAIL = "email"
    PUSHOVER = "pushover"
    SLACK = "slack"


# Windows offered for velocity alerts, in seconds
VELOCITY_WINDOWS: tuple[int, ...] = (60, 300, 900, 3600)

MIN_COOLDOWN = 60
MAX_COOLDOWN = 86400
DEFAULT_COOLDOWN = 300

_EMAIL_RE = re.compile(r"^[^@,;\s]+@[^@,;\s]+$")


@dataclass
class NotificationChannel:
    """A delivery target owned by a user.

    ``config`` is channel-type specific:

        email     {"email": "ops@example.com"}
        pushover  {"user_key": "...", "app_token": "...", "priority": 0}
        slack     {"webhook_url": "https://hooks.slack.com/..."}
    """

    channel_type: ChannelType
    name: str
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    owner_id: str | None = None
    id: int | None = None


@dataclass
class Alert:
    """A saved search that notifies when new logs match it.

    Configuration fields are edited by users; the three cursor fields
    (``last_seen_log_id``, ``last_triggered_at``, ``last_checked_at``) are
    written only by the evaluator through ``AlertStore.update_cursor``.
    """

    name: str
    search_query: str
    alert_type: AlertType = AlertType.ANY_MATCH
    description: str = ""
    enabled: bool = True
    velocity_threshold: int | None = None
    velocity_window_seconds: int | None = None
    cooldown_seconds: int = DEFAULT_COOLDOWN
    owner_id: str | None = None
    id: int | None = None
    channels: list[NotificationChannel] = field(default_factory=list)

    last_seen_log_id: int | None = None
    last_triggered_at: datetime | None = None
    last_checked_at: datetime | None = None


@dataclass(frozen=True)
class CursorUpdate:
    """Cursor fields to write; None leaves the stored value unchanged."""

    last_seen_log_id: int | None = None
    last_triggered_at: datetime | None = None
    last_checked_at: datetime | None = None

    def is_empty(self) -> bool:
        return (
            self.last_seen_log_id is None
            and self.last_triggered_at is None
            and self.last_checked_at is None
        )


@dataclass(frozen=True)
class AlertHistory:
    """One confirmed trigger.  Never edited after creation."""

    alert_id: int
    trigger_type: AlertType
    trigger_data: dict[str, Any]
    notifications_sent: list[dict[str, Any]]
    triggered_at: datetime
    id: int | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_alert(alert: Alert) -> Alert:
    """Check user-supplied configuration; raise AlertConfigError on the first problem.

    ``alert_type`` is coerced from its string value.  The search query is
    not rejected for being empty after compilation — such alerts simply
    never fire.
    """
    name = (alert.name or "").strip()
    if not 1 <= len(name) <= 100:
        raise AlertConfigError("name", "must be between 1 and 100 characters")
    if alert.search_query is None or not str(alert.search_query).strip():
        raise AlertConfigError("search_query", "can't be blank")
    try:
        alert.alert_type = AlertType(alert.alert_type)
    except ValueError:
        raise AlertConfigError("alert_type", f"must be one of {[t.value for t in AlertType]}") from None

    if not isinstance(alert.cooldown_seconds, int) or not (
        MIN_COOLDOWN <= alert.cooldown_seconds <= MAX_COOLDOWN
    ):
        raise AlertConfigError(
            "cooldown_seconds", f"must be between {MIN_COOLDOWN} and {MAX_COOLDOWN}"
        )

    if alert.alert_type is AlertType.VELOCITY:
        if alert.velocity_threshold is None:
            raise AlertConfigError("velocity_threshold", "can't be blank")
        if alert.velocity_threshold <= 0:
            raise AlertConfigError("velocity_threshold", "must be greater than 0")
        if alert.velocity_window_seconds not in VELOCITY_WINDOWS:
            raise AlertConfigError(
                "velocity_window_seconds", f"must be one of {list(VELOCITY_WINDOWS)}"
            )
    return alert


def validate_channel(channel: NotificationChannel) -> NotificationChannel:
    """Check a channel's name and type-specific config."""
    name = (channel.name or "").strip()
    if not 1 <= len(name) <= 100:
        raise AlertConfigError("name", "must be between 1 and 100 characters")
    try:
        channel.channel_type = ChannelType(channel.channel_type)
    except ValueError:
        raise AlertConfigError(
            "channel_type", f"must be one of {[t.value for t in ChannelType]}"
        ) from None

    config = channel.config or {}
    if channel.channel_type is ChannelType.EMAIL:
        email = config.get("email")
        if not isinstance(email, str) or not _EMAIL_RE.match(email):
            raise AlertConfigError("config", "must include a valid email address")
    elif channel.channel_type is ChannelType.PUSHOVER:
        for key in ("user_key", "app_token"):
            if not isinstance(config.get(key), str) or not config[key]:
                raise AlertConfigError("config", f"must include {key}")
        priority = config.get("priority")
        if priority is not None and priority not in range(-2, 3):
            raise AlertConfigError("config", "priority must be between -2 and 2")
    elif channel.channel_type is ChannelType.SLACK:
        url = config.get("webhook_url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise AlertConfigError("config", "must include a webhook_url")
    return channel
