"""Email alert channel via SMTP."""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from ..alerts.models import Alert, AlertType, NotificationChannel
from ..config import settings
from .base import AlertChannel, DeliveryResult
from .messages import email_body, email_subject

logger = logging.getLogger(__name__)


class EmailChannel(AlertChannel):
    """Send alert notifications via SMTP.

    Server settings come from the constructor, falling back to
    ``logwarden.config.settings`` (``LOGWARDEN_SMTP_*`` env vars).  The
    recipient is the channel's ``config["email"]``.

    Example::

        channel = EmailChannel(
            host="smtp.gmail.com",
            port=587,
            username="bot@example.com",
            password="...",
            from_addr="alerts@example.com",
        )
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        from_addr: str | None = None,
        use_tls: bool | None = None,
        timeout: float | None = None,
    ) -> None:
        self._host = host if host is not None else settings.smtp_host
        self._port = port if port is not None else settings.smtp_port
        self._username = username if username is not None else settings.smtp_user
        self._password = password if password is not None else settings.smtp_password
        self._from = from_addr or settings.alert_from_email
        self._use_tls = use_tls if use_tls is not None else settings.smtp_use_tls
        self._timeout = timeout if timeout is not None else settings.notify_timeout

    def send(
        self,
        channel: NotificationChannel,
        alert: Alert,
        trigger_type: AlertType,
        trigger_data: dict[str, Any],
    ) -> DeliveryResult:
        """Send an email alert for the triggered alert.

        SMTP and network failures are logged and returned as a failed result.
        """
        recipient = (channel.config or {}).get("email")
        if not recipient:
            return DeliveryResult.failed("channel has no email address")
        subject = email_subject(alert, trigger_type)
        body = email_body(alert, trigger_type, trigger_data)
        try:
            self._send_smtp(recipient, subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send email alert to %s: %s", recipient, exc)
            return DeliveryResult.failed(repr(exc))
        return DeliveryResult.ok()

    def _send_smtp(self, recipient: str, subject: str, body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"logwarden Alerts <{self._from}>"
        msg["To"] = recipient
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.ehlo()
                smtp.starttls()
                smtp.ehlo()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.sendmail(self._from, [recipient], msg.as_string())
            logger.debug("Email alert sent to %s", recipient)
