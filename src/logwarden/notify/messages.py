"""Human-readable text for alert notifications."""
from __future__ import annotations

from typing import Any

from ..alerts.models import Alert, AlertType

_LONG_WINDOWS = {60: "1 minute", 300: "5 minutes", 900: "15 minutes", 3600: "1 hour"}
_SHORT_WINDOWS = {60: "1m", 300: "5m", 900: "15m", 3600: "1h"}


def format_window(seconds: Any, short: bool = False) -> str:
    """``300`` -> ``"5 minutes"`` (or ``"5m"`` when ``short``)."""
    table = _SHORT_WINDOWS if short else _LONG_WINDOWS
    if seconds in table:
        return table[seconds]
    return f"{seconds}s" if short else f"{seconds} seconds"


def email_subject(alert: Alert, trigger_type: AlertType) -> str:
    if AlertType(trigger_type) is AlertType.VELOCITY:
        return f"[logwarden] Velocity Alert: {alert.name}"
    return f"[logwarden] Alert: {alert.name}"


def email_body(alert: Alert, trigger_type: AlertType, data: dict[str, Any]) -> str:
    if AlertType(trigger_type) is AlertType.VELOCITY:
        lines = [
            f"Alert: {alert.name}",
            "Type: Log Velocity",
            "",
            "Log velocity exceeded threshold.",
            "",
            f"Query: {alert.search_query}",
            "",
            "Details:",
            f"- Count: {data.get('count')} logs",
            f"- Threshold: {data.get('threshold')} logs",
            f"- Time Window: {format_window(data.get('window_seconds'))}",
        ]
    else:
        lines = [
            f"Alert: {alert.name}",
            "Type: Log Match",
            "",
            "A log entry matched your alert criteria.",
            "",
            f"Query: {alert.search_query}",
            "",
            "Matching Log:",
            f"- Level: {data.get('log_level')}",
            f"- Source: {data.get('log_source')}",
            f"- Time: {data.get('log_timestamp')}",
            f"- Message: {data.get('log_message')}",
        ]
    return "\n".join(lines) + "\n"


def short_title(alert: Alert, trigger_type: AlertType) -> str:
    if AlertType(trigger_type) is AlertType.VELOCITY:
        return f"Velocity Alert: {alert.name}"
    return f"Log Match: {alert.name}"


def short_message(alert: Alert, trigger_type: AlertType, data: dict[str, Any]) -> str:
    """Compact body for push-style channels."""
    if AlertType(trigger_type) is AlertType.VELOCITY:
        window = format_window(data.get("window_seconds"), short=True)
        lines = [
            f"{data.get('count')} matches in {window}",
            f"Threshold: {data.get('threshold')}",
            f"Query: {alert.search_query}",
        ]
    else:
        lines = [
            f"{data.get('log_level')}: {data.get('log_message')}",
            f"Source: {data.get('log_source')}",
            f"Query: {alert.search_query}",
        ]
    return "\n".join(lines)
