"""
Verification code delivery.

`MailSender.send(email, code)` reports success as a bool and never raises
for delivery problems; the caller turns False into `EmailDeliveryFailed`.
One attempt per code, no retries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

import aiosmtplib

from emailgate.core.config.config import Config
from emailgate.core.logging.logger import get_logger
from emailgate.modules.verification import messages

logger = get_logger(__name__)


def _render(email: str, code: str, ttl_minutes: int) -> tuple[str, str]:
    html = messages.EMAIL_HTML.format(email=email, code=code, minutes=ttl_minutes)
    text = messages.EMAIL_TEXT.format(email=email, code=code, minutes=ttl_minutes)
    return html, text


class MailSender(ABC):
    """Sends the verification code email."""

    def __init__(self, ttl_minutes: int = 10) -> None:
        self.ttl_minutes = ttl_minutes

    @abstractmethod
    async def send(self, email: str, code: str) -> bool:
        """Send `code` to `email`. True when the message was accepted."""


class ConsoleMailSender(MailSender):
    """Logs the message instead of sending it (development)."""

    async def send(self, email: str, code: str) -> bool:
        _, text = _render(email, code, self.ttl_minutes)
        logger.info(
            f"\n{'=' * 60}\n"
            f"EMAIL (console backend - not sent)\n"
            f"To: {email}\n"
            f"Subject: {messages.EMAIL_SUBJECT}\n"
            f"{'=' * 60}\n"
            f"{text}"
            f"{'=' * 60}"
        )
        return True


class SMTPMailSender(MailSender):
    """
    Sends through an authenticated SMTP relay with aiosmtplib.

    `secure=True` connects with implicit TLS (port 465 style); otherwise the
    connection is upgraded with STARTTLS.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        secure: bool = False,
        from_name: str = "Email Verification",
        timeout: float = 15.0,
        ttl_minutes: int = 10,
    ) -> None:
        super().__init__(ttl_minutes)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.secure = secure
        self.from_name = from_name
        self.timeout = timeout

    def build_message(self, email: str, code: str) -> MIMEMultipart:
        html, text = _render(email, code, self.ttl_minutes)
        message = MIMEMultipart("alternative")
        message["From"] = formataddr((self.from_name, self.username))
        message["To"] = email
        message["Subject"] = messages.EMAIL_SUBJECT
        message.attach(MIMEText(text, "plain", "utf-8"))
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    async def send(self, email: str, code: str) -> bool:
        message = self.build_message(email, code)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.secure,
                start_tls=not self.secure,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send verification email",
                extra={"to": email, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.info("Verification email sent", extra={"to": email})
        return True


def build_mail_sender() -> MailSender:
    """Mail sender selected by `Config.MAIL_BACKEND`."""
    ttl_minutes = max(1, Config.OTP_TTL_SECONDS // 60)
    if Config.MAIL_BACKEND == "console":
        return ConsoleMailSender(ttl_minutes=ttl_minutes)
    if Config.MAIL_BACKEND == "smtp":
        return SMTPMailSender(
            host=Config.SMTP_HOST,
            port=Config.SMTP_PORT,
            username=Config.SMTP_USER,
            password=Config.SMTP_PASS,
            secure=bool(Config.SMTP_SECURE),
            from_name=Config.MAIL_FROM_NAME,
            timeout=float(Config.EXTERNAL_CALL_TIMEOUT_SECONDS),
            ttl_minutes=ttl_minutes,
        )
    raise ValueError(f"Unknown mail backend: {Config.MAIL_BACKEND}")
