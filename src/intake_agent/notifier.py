"""Case notification delivery (SMTP email or log output)."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Protocol

from .config import NotifierSettings
from .errors import ConfigError, NotificationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    """A rendered message for the fixed recipient."""

    subject: str
    body: str


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None:
        ...


class ConsoleNotifier:
    """Writes notifications to the application log instead of sending them."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification (console): %s\n%s",
            notification.subject,
            notification.body,
        )


class EmailNotifier:
    """Delivers notifications over SMTP with STARTTLS."""

    def __init__(self, settings: NotifierSettings) -> None:
        if not settings.smtp_configured:
            raise ConfigError(
                "SMTP notifier requires INTAKE_SMTP_USER, "
                "INTAKE_SMTP_PASSWORD and a recipient."
            )
        self._settings = settings

    async def send(self, notification: Notification) -> None:
        try:
            await asyncio.to_thread(self._send_sync, notification)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Email delivery to %s failed: %s",
                self._settings.recipient,
                exc,
            )
            raise NotificationError(f"Email delivery failed: {exc}") from exc
        logger.info("Email sent to %s: %s", self._settings.recipient, notification.subject)

    def _send_sync(self, notification: Notification) -> None:
        settings = self._settings
        message = MIMEText(notification.body, "plain", "utf-8")
        message["Subject"] = notification.subject
        message["From"] = settings.sender or settings.smtp_user or ""
        message["To"] = settings.recipient or ""
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(settings.smtp_user or "", settings.smtp_password or "")
            server.sendmail(
                message["From"],
                [settings.recipient or ""],
                message.as_string(),
            )


def build_notifier(settings: NotifierSettings) -> Notifier:
    if settings.backend == "smtp":
        try:
            return EmailNotifier(settings)
        except ConfigError as exc:
            logger.warning("%s Falling back to console notifications.", exc)
    return ConsoleNotifier()
