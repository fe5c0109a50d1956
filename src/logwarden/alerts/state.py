"""Cooldown classification for an alert's cursor."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum


class AlertPhase(str, Enum):
    NEVER_TRIGGERED = "never_triggered"
    IN_COOLDOWN = "in_cooldown"
    ELIGIBLE = "eligible"


def classify(
    now: datetime,
    last_triggered_at: datetime | None,
    cooldown_seconds: int,
) -> AlertPhase:
    """Where an alert stands relative to its cooldown window.

    The window is half-open: exactly ``cooldown_seconds`` after the last
    trigger the alert is eligible again.
    """
    if last_triggered_at is None:
        return AlertPhase.NEVER_TRIGGERED
    if last_triggered_at.tzinfo is None:
        last_triggered_at = last_triggered_at.replace(tzinfo=timezone.utc)
    elapsed = (now - last_triggered_at).total_seconds()
    if elapsed < cooldown_seconds:
        return AlertPhase.IN_COOLDOWN
    return AlertPhase.ELIGIBLE


def can_trigger(phase: AlertPhase) -> bool:
    return phase is not AlertPhase.IN_COOLDOWN
