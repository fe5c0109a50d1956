"""Tests for notification messages, channels and the dispatcher."""
from __future__ import annotations

import json
import smtplib
import urllib.error
import urllib.parse
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from logwarden.alerts.models import Alert, AlertType, ChannelType, NotificationChannel
from logwarden.notify.base import AlertChannel, DeliveryResult
from logwarden.notify.dispatcher import Dispatcher
from logwarden.notify.email_channel import EmailChannel
from logwarden.notify.messages import email_body, email_subject, format_window, short_message, short_title
from logwarden.notify.pushover import PushoverChannel
from logwarden.notify.slack import SlackChannel

MATCH_DATA: dict[str, Any] = {
    "log_id": 42,
    "log_message": "upstream timeout",
    "log_level": "error",
    "log_source": "api",
    "log_timestamp": "2025-08-12T10:00:00+00:00",
}
VELOCITY_DATA: dict[str, Any] = {"count": 12, "threshold": 10, "window_seconds": 300}


def _alert(**kwargs: Any) -> Alert:
    kwargs.setdefault("name", "api errors")
    kwargs.setdefault("search_query", "level:error source:api")
    return Alert(id=1, **kwargs)


def _response(status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.read.return_value = b"{}"
    resp.__enter__.return_value = resp
    return resp


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TestMessages:
    def test_format_window(self) -> None:
        assert format_window(300) == "5 minutes"
        assert format_window(3600, short=True) == "1h"
        assert format_window(42) == "42 seconds"

    def test_subjects(self) -> None:
        assert email_subject(_alert(), AlertType.ANY_MATCH) == "[logwarden] Alert: api errors"
        assert email_subject(_alert(), AlertType.VELOCITY) == "[logwarden] Velocity Alert: api errors"

    def test_match_body(self) -> None:
        body = email_body(_alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert "Query: level:error source:api" in body
        assert "- Message: upstream timeout" in body

    def test_velocity_body(self) -> None:
        body = email_body(_alert(), AlertType.VELOCITY, VELOCITY_DATA)
        assert "- Count: 12 logs" in body
        assert "- Time Window: 5 minutes" in body

    def test_short_forms(self) -> None:
        assert short_title(_alert(), AlertType.ANY_MATCH) == "Log Match: api errors"
        assert short_message(_alert(), AlertType.VELOCITY, VELOCITY_DATA).startswith("12 matches in 5m")


# ---------------------------------------------------------------------------
# EmailChannel
# ---------------------------------------------------------------------------

class TestEmailChannel:
    def _channel(self) -> NotificationChannel:
        return NotificationChannel(ChannelType.EMAIL, "ops", {"email": "ops@example.com"}, id=1)

    def _sender(self) -> EmailChannel:
        return EmailChannel(host="smtp.test", port=25, username="", from_addr="alerts@test", use_tls=False)

    def test_sends_via_smtp(self) -> None:
        with patch("logwarden.notify.email_channel.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            result = self._sender().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert result.success
        smtp_cls.assert_called_once_with("smtp.test", 25, timeout=10.0)
        from_addr, to_addrs, message = smtp.sendmail.call_args.args
        assert from_addr == "alerts@test"
        assert to_addrs == ["ops@example.com"]
        assert "[logwarden] Alert: api errors" in message
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()

    def test_smtp_failure_is_reported(self) -> None:
        with patch("logwarden.notify.email_channel.smtplib.SMTP") as smtp_cls:
            smtp_cls.side_effect = smtplib.SMTPConnectError(421, "busy")
            result = self._sender().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert not result.success
        assert "SMTPConnectError" in result.error

    def test_missing_recipient(self) -> None:
        channel = NotificationChannel(ChannelType.EMAIL, "ops", {}, id=1)
        assert not self._sender().send(channel, _alert(), AlertType.ANY_MATCH, MATCH_DATA).success


# ---------------------------------------------------------------------------
# PushoverChannel
# ---------------------------------------------------------------------------

class TestPushoverChannel:
    def _channel(self, **config: Any) -> NotificationChannel:
        config = {"user_key": "u123", "app_token": "t456", **config}
        return NotificationChannel(ChannelType.PUSHOVER, "phone", config, id=2)

    def test_posts_form(self) -> None:
        with patch("urllib.request.urlopen", return_value=_response()) as mock_open:
            result = PushoverChannel(api_url="https://push.test/1/messages.json").send(
                self._channel(priority=1), _alert(), AlertType.VELOCITY, VELOCITY_DATA
            )
        assert result.success
        req = mock_open.call_args.args[0]
        assert req.full_url == "https://push.test/1/messages.json"
        form = urllib.parse.parse_qs(req.data.decode())
        assert form["token"] == ["t456"]
        assert form["user"] == ["u123"]
        assert form["priority"] == ["1"]
        assert form["title"] == ["Velocity Alert: api errors"]

    def test_http_error(self) -> None:
        err = urllib.error.HTTPError("https://push.test", 400, "Bad Request", {}, None)  # type: ignore[arg-type]
        with patch("urllib.request.urlopen", side_effect=err):
            result = PushoverChannel().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert not result.success
        assert result.error.startswith("HTTP 400")

    def test_network_error(self) -> None:
        with patch("urllib.request.urlopen", side_effect=OSError("unreachable")):
            result = PushoverChannel().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert not result.success


# ---------------------------------------------------------------------------
# SlackChannel
# ---------------------------------------------------------------------------

class TestSlackChannel:
    def _channel(self) -> NotificationChannel:
        return NotificationChannel(ChannelType.SLACK, "chat", {"webhook_url": "https://hooks.test/abc"}, id=3)

    def test_posts_json(self) -> None:
        with patch("urllib.request.urlopen", return_value=_response()) as mock_open:
            result = SlackChannel().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert result.success
        req = mock_open.call_args.args[0]
        payload = json.loads(req.data)
        assert "Log Match: api errors" in payload["text"]
        assert "upstream timeout" in payload["blocks"][0]["text"]["text"]

    def test_non_200(self) -> None:
        with patch("urllib.request.urlopen", return_value=_response(500)):
            result = SlackChannel().send(self._channel(), _alert(), AlertType.ANY_MATCH, MATCH_DATA)
        assert result == DeliveryResult.failed("HTTP 500")

    def test_missing_webhook(self) -> None:
        channel = NotificationChannel(ChannelType.SLACK, "chat", {}, id=3)
        assert not SlackChannel().send(channel, _alert(), AlertType.ANY_MATCH, MATCH_DATA).success


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class TestDispatcher:
    def _channels(self) -> list[NotificationChannel]:
        return [
            NotificationChannel(ChannelType.EMAIL, "mail", {"email": "a@b.io"}, id=1),
            NotificationChannel(ChannelType.PUSHOVER, "phone", {"user_key": "u", "app_token": "t"}, id=2),
            NotificationChannel(ChannelType.SLACK, "muted", {"webhook_url": "https://h"}, enabled=False, id=3),
        ]

    def test_requires_sender_per_type(self) -> None:
        with pytest.raises(ValueError):
            Dispatcher({ChannelType.EMAIL: MagicMock(spec=AlertChannel)})

    def test_skips_disabled_channels(self, senders) -> None:
        outcomes = Dispatcher(senders).send_alert(
            _alert(channels=self._channels()), AlertType.ANY_MATCH, MATCH_DATA
        )
        assert [o["channel_name"] for o in outcomes] == ["mail", "phone"]
        assert senders[ChannelType.SLACK].sent == []

    def test_outcome_shape(self, senders) -> None:
        outcomes = Dispatcher(senders).send_alert(
            _alert(channels=self._channels()[:1]), AlertType.ANY_MATCH, MATCH_DATA
        )
        assert outcomes == [
            {"channel_id": 1, "channel_type": "email", "channel_name": "mail", "success": True, "error": None}
        ]

    def test_failure_does_not_stop_siblings(self, senders) -> None:
        boom = MagicMock(spec=AlertChannel)
        boom.send.side_effect = RuntimeError("smtp exploded")
        senders[ChannelType.EMAIL] = boom
        outcomes = Dispatcher(senders).send_alert(
            _alert(channels=self._channels()), AlertType.ANY_MATCH, MATCH_DATA
        )
        assert [o["success"] for o in outcomes] == [False, True]
        assert "smtp exploded" in outcomes[0]["error"]
        assert len(senders[ChannelType.PUSHOVER].sent) == 1

    def test_reported_failure_is_kept(self, senders) -> None:
        senders[ChannelType.PUSHOVER].result = DeliveryResult.failed("HTTP 429: slow down")
        outcomes = Dispatcher(senders).send_alert(
            _alert(channels=self._channels()), AlertType.VELOCITY, VELOCITY_DATA
        )
        assert outcomes[1]["error"] == "HTTP 429: slow down"

    def test_no_channels(self, senders) -> None:
        assert Dispatcher(senders).send_alert(_alert(), AlertType.ANY_MATCH, MATCH_DATA) == []
