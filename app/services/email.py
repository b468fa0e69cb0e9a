"""Verification email rendering and delivery.

``EMAIL_BACKEND=log`` (the default) writes messages to the log, which is
where the demo script and local development read codes from.
``EMAIL_BACKEND=smtp`` delivers through aiosmtplib using the ``SMTP_*``
settings.
"""

import logging
from datetime import timedelta
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from app.config import Settings, settings

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class LogEmailSender:
    """Writes each message to the log instead of delivering it."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.log(self.level, "Verification email for %s: %s\n%s", to, subject, body)


class SmtpEmailSender:
    def __init__(
        self,
        host: str,
        port: int,
        from_address: str,
        *,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        start_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.from_address = from_address
        self.username = username
        self.password = password
        self.use_tls = use_tls
        # Implicit TLS and STARTTLS are mutually exclusive
        self.start_tls = start_tls and not use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings) -> "SmtpEmailSender":
        return cls(
            config.smtp_host,
            config.smtp_port,
            config.smtp_from_address,
            username=config.smtp_username or None,
            password=config.smtp_password or None,
            use_tls=config.smtp_use_tls,
            start_tls=config.smtp_start_tls,
            timeout=config.smtp_timeout_seconds,
        )

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    async def send(self, to: str, subject: str, body: str) -> None:
        await aiosmtplib.send(
            self.build_message(to, subject, body),
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            use_tls=self.use_tls,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )
        logger.info("Sent verification email to %s via %s:%d", to, self.host, self.port)


def get_email_sender() -> EmailSender:
    if settings.email_backend == "smtp":
        return SmtpEmailSender.from_settings(settings)
    return LogEmailSender()


def _describe_window(window: timedelta) -> str:
    minutes = int(window.total_seconds() // 60)
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def render_verification_email(code: str, expires_in: timedelta) -> tuple[str, str]:
    """Return (subject, body) for a verification code email."""
    subject = "Verify your email address"
    body = (
        f"Your verification code is: {code}\n\n"
        f"Enter this code on the signup page to confirm your email address.\n"
        f"It expires in {_describe_window(expires_in)}.\n\n"
        f"If you did not request this, ignore this email."
    )
    return subject, body
