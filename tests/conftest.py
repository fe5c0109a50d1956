"""Shared pytest fixtures for logwarden tests."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from logwarden.alerts.models import Alert, AlertType, ChannelType, NotificationChannel
from logwarden.alerts.service import AlertService
from logwarden.alerts.store import InMemoryAlertStore
from logwarden.engine.clock import ManualClock
from logwarden.engine.evaluator import Evaluator
from logwarden.notify.base import AlertChannel, DeliveryResult
from logwarden.notify.dispatcher import Dispatcher
from logwarden.store.logs import InMemoryLogStore

NOW = datetime(2025, 8, 12, 10, 30, 0, tzinfo=timezone.utc)


class RecordingChannel(AlertChannel):
    """Sender that remembers every delivery instead of sending it."""

    def __init__(self, result: DeliveryResult | None = None) -> None:
        self.result = result or DeliveryResult.ok()
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def send(self, channel, alert, trigger_type, trigger_data) -> DeliveryResult:
        self.sent.append((channel.name, AlertType(trigger_type).value, dict(trigger_data)))
        return self.result


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(NOW)


@pytest.fixture()
def logs() -> InMemoryLogStore:
    return InMemoryLogStore()


@pytest.fixture()
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture()
def senders() -> dict[ChannelType, RecordingChannel]:
    return {t: RecordingChannel() for t in ChannelType}


@pytest.fixture()
def dispatcher(senders) -> Dispatcher:
    return Dispatcher(senders)


@pytest.fixture()
def service(alert_store, logs) -> AlertService:
    return AlertService(alert_store, logs)


@pytest.fixture()
def evaluator(logs, alert_store, dispatcher, clock) -> Evaluator:
    return Evaluator(logs, alert_store, dispatcher, clock=clock)


@pytest.fixture()
def email_channel(service) -> NotificationChannel:
    return service.create_channel(
        NotificationChannel(ChannelType.EMAIL, "ops mail", {"email": "ops@example.com"})
    )


@pytest.fixture()
def make_alert(service, email_channel):
    """Return a factory that creates alerts linked to the email channel."""

    def _make(query: str = "level:error", **kwargs: Any) -> Alert:
        kwargs.setdefault("name", "errors")
        alert = Alert(search_query=query, **kwargs)
        return service.create_alert(alert, [email_channel.id])

    return _make


@pytest.fixture()
def tmp_log_file(tmp_path: Path):
    """Return a factory that creates temporary log files."""

    def _make(lines: list[str], name: str = "test.ndjson") -> Path:
        p = tmp_path / name
        p.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return p

    return _make


@pytest.fixture()
def json_log_lines() -> list[str]:
    return [
        json.dumps({"timestamp": "2025-08-01T10:00:00Z", "level": "INFO", "message": "startup", "source": "api"}),
        json.dumps({"timestamp": "2025-08-01T10:00:01Z", "level": "ERROR", "message": "disk full", "source": "worker", "user_id": 123}),
        json.dumps({"timestamp": "2025-08-01T10:00:02Z", "level": "WARN", "message": "retry", "source": "api", "duration_ms": 850}),
        json.dumps({"timestamp": "2025-08-01T10:00:03Z", "level": "DEBUG", "message": "done", "source": "cron"}),
    ]
