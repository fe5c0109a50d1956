"""Pushover push-notification alert channel."""
from __future__ import annotations

import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from ..alerts.models import Alert, AlertType, NotificationChannel
from ..config import settings
from .base import AlertChannel, DeliveryResult
from .messages import short_message, short_title

logger = logging.getLogger(__name__)


class PushoverChannel(AlertChannel):
    """POST alerts to the Pushover messages API.

    The channel config supplies ``app_token``, ``user_key`` and an optional
    ``priority`` (-2..2, default 0).  Form payload::

        token=<app_token>&user=<user_key>&title=...&message=...&priority=0
    """

    def __init__(self, api_url: str | None = None, timeout: float | None = None) -> None:
        self._url = api_url or settings.pushover_api_url
        self._timeout = timeout if timeout is not None else settings.notify_timeout

    def send(
        self,
        channel: NotificationChannel,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> DeliveryResult:
        config = channel.config or {}
        payload = {
            "token": config.get("app_token", ""),
            "user": config.get("user_key", ""),
            "title": short_title(alert, trigger_type),
            "message": short_message(alert, trigger_type, trigger_data),
            "priority": config.get("priority", 0),
        }
        return self._post(payload)

    def _post(self, payload: dict[str, Any]) -> DeliveryResult:
        data = urllib.parse.urlencode(payload).encode()
        req = urllib.request.Request(
            self._url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                if resp.status != 200:
                    body = resp.read().decode("utf-8", errors="replace")
                    logger.warning("Pushover returned non-200 status: %s", resp.status)
                    return DeliveryResult.failed(f"HTTP {resp.status}: {body}")
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
            logger.warning("Pushover rejected alert: HTTP %s", exc.code)
            return DeliveryResult.failed(f"HTTP {exc.code}: {body}")
        except OSError as exc:
            logger.warning("Failed to send Pushover alert: %s", exc)
            return DeliveryResult.failed(repr(exc))
        return DeliveryResult.ok()
