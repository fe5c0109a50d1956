"""Alert evaluation engine.

One ``tick`` loads every enabled alert and evaluates each under its own
failure boundary:

* cooldown elapsed (or never triggered):
    - any_match: the earliest log after ``last_seen_log_id`` matching the
      query triggers; otherwise only ``last_checked_at`` moves.
    - velocity: matches with ``timestamp >= now - window`` are counted and
      the alert triggers when the count reaches the threshold.
* in cooldown: velocity alerts are left untouched; any_match alerts
  fast-forward ``last_seen_log_id`` past matches that arrive meanwhile, so
  they are suppressed rather than queued for after the cooldown.

An empty compiled query never fires.

On trigger the dispatcher is called, a history row is written, then the
cursor.  A failed write is logged and the next tick works from whatever
was actually persisted.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ..alerts.models import Alert, AlertType, CursorUpdate
from ..alerts.state import AlertPhase, can_trigger, classify
from ..alerts.store import AlertStore
from ..config import settings
from ..notify.dispatcher import Dispatcher
from ..query.parser import parse
from ..store.logs import LogStore
from ..store.records import LogRecord
from .clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    TRIGGERED = "triggered"
    CHECKED = "checked"        # evaluated, condition not met
    SUPPRESSED = "suppressed"  # in cooldown, cursor fast-forwarded
    SKIPPED = "skipped"        # in cooldown, nothing written
    FAILED = "failed"


@dataclass
class TickReport:
    """What happened to each alert during one tick."""

    started_at: datetime
    outcomes: dict[Any, Outcome] = field(default_factory=dict)
    load_error: str | None = None

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes.values() if o is outcome)

    @property
    def triggered(self) -> int:
        return self.count(Outcome.TRIGGERED)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAILED)


def any_match_payload(record: LogRecord, preview_chars: int) -> dict[str, Any]:
    return {
        "log_id": record.id,
        "log_message": record.message[:preview_chars],
        "log_level": record.level,
        "log_source": record.source,
        "log_timestamp": record.timestamp.isoformat(),
    }


def velocity_payload(count: int, threshold: int, window_seconds: int) -> dict[str, Any]:
    return {"count": count, "threshold": threshold, "window_seconds": window_seconds}


class Evaluator:
    """Evaluate alerts against the log store and record triggers.

    Args:
        logs:          Read side of the log store.
        alerts:        Alert state store (configuration, cursors, history).
        dispatcher:    Notification fan-out.
        clock:         Time source; inject ManualClock in tests.
        preview_chars: Max message length copied into trigger data.
        workers:       >1 evaluates alerts of one tick in parallel threads.
                       Each alert is still handled by exactly one worker.
    """

    def __init__(
        self,
        logs: LogStore,
        alerts: AlertStore,
        dispatcher: Dispatcher,
        clock: Clock | None = None,
        preview_chars: int | None = None,
        workers: int = 1,
    ) -> None:
        self._logs = logs
        self._alerts = alerts
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._preview_chars = (
            preview_chars if preview_chars is not None else settings.message_preview_chars
        )
        self._workers = max(1, workers)
        self._tick_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Evaluate every enabled alert once.  Never raises."""
        with self._tick_lock:
            report = TickReport(started_at=self._clock.now())
            try:
                alerts = self._alerts.list_enabled()
            except Exception as exc:
                logger.error("Failed to load enabled alerts: %s", exc)
                report.load_error = str(exc)
                return report

            if self._workers > 1 and len(alerts) > 1:
                with ThreadPoolExecutor(max_workers=self._workers) as pool:
                    results = list(pool.map(self._evaluate_guarded, alerts))
            else:
                results = [self._evaluate_guarded(a) for a in alerts]

            for alert, outcome in zip(alerts, results):
                report.outcomes[alert.id] = outcome
            logger.debug(
                "Tick evaluated %d alerts: %d triggered, %d failed",
                len(alerts), report.triggered, report.failed,
            )
            return report

    def _evaluate_guarded(self, alert: Alert) -> Outcome:
        try:
            return self.evaluate(alert)
        except Exception as exc:
            logger.error("Alert evaluation failed for %s: %s", alert.id, exc, exc_info=True)
            return Outcome.FAILED

    # ------------------------------------------------------------------
    # Per-alert evaluation
    # ------------------------------------------------------------------

    def evaluate(self, alert: Alert) -> Outcome:
        """Evaluate one alert.  Errors from the log store propagate."""
        now = self._clock.now()
        phase = classify(now, alert.last_triggered_at, alert.cooldown_seconds)
        alert_type = AlertType(alert.alert_type)

        if alert_type is AlertType.ANY_MATCH:
            return self._evaluate_any_match(alert, now, phase)
        if alert_type is AlertType.VELOCITY:
            if not can_trigger(phase):
                return Outcome.SKIPPED
            return self._evaluate_velocity(alert, now)
        raise ValueError(f"unknown alert type: {alert.alert_type!r}")

    def _evaluate_any_match(self, alert: Alert, now: datetime, phase: AlertPhase) -> Outcome:
        tokens = parse(alert.search_query, now=now)

        if not can_trigger(phase):
            if not tokens:
                return Outcome.SKIPPED
            latest = self._logs.last_match_after(alert.last_seen_log_id, tokens)
            if latest is None:
                return Outcome.SKIPPED
            self._write_cursor(alert, CursorUpdate(last_seen_log_id=latest.id))
            return Outcome.SUPPRESSED

        record = self._logs.first_match_after(alert.last_seen_log_id, tokens) if tokens else None
        if record is None:
            self._write_cursor(alert, CursorUpdate(last_checked_at=now))
            return Outcome.CHECKED

        self._trigger(
            alert,
            AlertType.ANY_MATCH,
            any_match_payload(record, self._preview_chars),
            CursorUpdate(last_seen_log_id=record.id, last_triggered_at=now, last_checked_at=now),
            now,
        )
        return Outcome.TRIGGERED

    def _evaluate_velocity(self, alert: Alert, now: datetime) -> Outcome:
        threshold = alert.velocity_threshold
        window = alert.velocity_window_seconds
        if threshold is None or window is None:
            raise ValueError(f"velocity alert {alert.id} has no threshold/window")

        tokens = parse(alert.search_query, now=now)
        cutoff = now - timedelta(seconds=window)
        count = self._logs.count_matches_since(cutoff, tokens) if tokens else 0

        if count < threshold:
            self._write_cursor(alert, CursorUpdate(last_checked_at=now))
            return Outcome.CHECKED

        self._trigger(
            alert,
            AlertType.VELOCITY,
            velocity_payload(count, threshold, window),
            CursorUpdate(last_triggered_at=now, last_checked_at=now),
            now,
        )
        return Outcome.TRIGGERED

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _trigger(
        self,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
        cursor: CursorUpdate,
        now: datetime,
    ) -> None:
        logger.info("Alert %s (%s) triggered: %s", alert.id, alert.name, trigger_type.value)
        notifications = self._dispatcher.send_alert(alert, trigger_type, trigger_data)
        try:
            self._alerts.create_history(alert, trigger_type, trigger_data, notifications, now)
        except Exception as exc:
            logger.error("Failed to create alert history for %s: %s", alert.id, exc)
        self._write_cursor(alert, cursor)

    def _write_cursor(self, alert: Alert, update: CursorUpdate) -> None:
        try:
            self._alerts.update_cursor(alert, update)
        except Exception as exc:
            logger.error("Failed to update alert state for %s: %s", alert.id, exc)
