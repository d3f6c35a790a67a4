"""Mailer — SMTP delivery for transactional email (workspace invites).

Invariants:
    - Unset SMTP credentials mean is_configured() is False; send() then raises
      ServiceNotConfiguredError instead of attempting a connection
    - Every smtplib / socket failure surfaces as ExternalServiceError("email", ...)
    - Messages are multipart/alternative with a plain-text part and an HTML part

Design Decisions:
    - smtplib is blocking: delivery runs in a worker thread (asyncio.to_thread),
      as object storage does with boto3
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache

from tutorassist.config import get_settings
from tutorassist.core.errors import ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


class Mailer:
    """STARTTLS + login against one SMTP server."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender_name: str = "TutorAssist",
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender_name = sender_name

    def is_configured(self) -> bool:
        return bool(self._username and self._password)

    def build_message(self, to: str, subject: str, html: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self._sender_name, self._username))
        message["To"] = to
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=SMTP_TIMEOUT_SECONDS) as server:
            server.starttls()
            server.login(self._username, self._password)
            server.send_message(message)

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        if not self.is_configured():
            raise ServiceNotConfiguredError("Email")
        message = self.build_message(to, subject, html, text)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {to} failed: {e}")
            raise ExternalServiceError("email", str(e))
        logger.info(f"Email sent: {subject}")


@lru_cache
def get_mailer() -> Mailer:
    settings = get_settings()
    return Mailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        sender_name=settings.smtp_sender_name,
    )
