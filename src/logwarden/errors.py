"""Exception hierarchy for logwarden.

The query compiler never raises; these cover configuration validation
and persistence.
"""
from __future__ import annotations


class LogwardenError(Exception):
    """Base class for all logwarden errors."""


class AlertConfigError(LogwardenError, ValueError):
    """An alert or notification channel failed validation.

    ``field`` names the offending attribute so callers can surface the
    message next to the right input.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class StoreError(LogwardenError):
    """A read or write against a backing store failed."""
