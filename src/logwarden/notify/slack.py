"""Slack webhook alert channel."""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from ..alerts.models import Alert, AlertType, NotificationChannel
from ..config import settings
from .base import AlertChannel, DeliveryResult
from .messages import short_message, short_title

logger = logging.getLogger(__name__)


class SlackChannel(AlertChannel):
    """Send alert notifications to a Slack incoming webhook.

    The webhook URL is the channel's ``config["webhook_url"]``.

    Example payload sent to Slack::

        {
            "text": ":rotating_light: *Log Match: api errors*",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": "error: upstream timeout\\nSource: api\\n..."
                    }
                }
            ]
        }
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else settings.notify_timeout

    def send(
        self,
        channel: NotificationChannel,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> DeliveryResult:
        """POST a Slack message for the triggered alert."""
        url = (channel.config or {}).get("webhook_url")
        if not url:
            return DeliveryResult.failed("channel has no webhook_url")
        payload = {
            "text": f":rotating_light: *{short_title(alert, trigger_type)}*",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": short_message(alert, trigger_type, trigger_data),
                    },
                }
            ],
        }
        return self._post(url, payload)

    def _post(self, url: str, payload: dict[str, Any]) -> DeliveryResult:
        data = json.dumps(payload).encode()
        req = urllib.request.Request(
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                if resp.status != 200:
                    logger.warning("Slack webhook returned non-200 status: %s", resp.status)
                    return DeliveryResult.failed(f"HTTP {resp.status}")
        except urllib.error.HTTPError as exc:
            logger.warning("Slack webhook rejected alert: HTTP %s", exc.code)
            return DeliveryResult.failed(f"HTTP {exc.code}")
        except OSError as exc:
            logger.warning("Failed to send Slack alert: %s", exc)
            return DeliveryResult.failed(repr(exc))
        return DeliveryResult.ok()
