"""
Unit tests for the verification mail backends.
"""

import aiosmtplib
import pytest

from emailgate.core.config.config import Config
from emailgate.modules.verification import messages
from emailgate.modules.verification.mailer import (
    ConsoleMailSender,
    SMTPMailSender,
    build_mail_sender,
)


@pytest.fixture
def smtp_sender():
    return SMTPMailSender(
        host="smtp.example.com",
        port=587,
        username="bot@example.com",
        password="secret",
        from_name="Email Verification",
        timeout=5.0,
    )


class TestSMTPMailSender:
    def test_message_headers_and_body(self, smtp_sender):
        message = smtp_sender.build_message("alice@uni.edu", "012345")

        assert message["To"] == "alice@uni.edu"
        assert message["Subject"] == messages.EMAIL_SUBJECT
        assert message["From"] == "Email Verification <bot@example.com>"

        plain, html = message.get_payload()
        assert plain.get_content_type() == "text/plain"
        assert html.get_content_type() == "text/html"
        html_body = html.get_payload(decode=True).decode("utf-8")
        assert "012345" in html_body
        assert "10 minutes" in html_body

    async def test_send_uses_starttls_by_default(self, smtp_sender, mocker):
        send = mocker.patch(
            "emailgate.modules.verification.mailer.aiosmtplib.send", new_callable=mocker.AsyncMock
        )

        assert await smtp_sender.send("alice@uni.edu", "012345") is True

        kwargs = send.await_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 587
        assert kwargs["username"] == "bot@example.com"
        assert kwargs["start_tls"] is True
        assert kwargs["use_tls"] is False
        assert kwargs["timeout"] == 5.0

    async def test_secure_uses_implicit_tls(self, mocker):
        send = mocker.patch(
            "emailgate.modules.verification.mailer.aiosmtplib.send", new_callable=mocker.AsyncMock
        )
        sender = SMTPMailSender("smtp.example.com", 465, "bot@example.com", "secret", secure=True)

        await sender.send("alice@uni.edu", "012345")

        assert send.await_args.kwargs["use_tls"] is True
        assert send.await_args.kwargs["start_tls"] is False

    @pytest.mark.parametrize(
        "error",
        [
            aiosmtplib.SMTPAuthenticationError(535, "bad credentials"),
            aiosmtplib.SMTPConnectError("refused"),
            ConnectionRefusedError(),
        ],
    )
    async def test_delivery_errors_return_false(self, smtp_sender, mocker, error):
        mocker.patch(
            "emailgate.modules.verification.mailer.aiosmtplib.send",
            new_callable=mocker.AsyncMock,
            side_effect=error,
        )

        assert await smtp_sender.send("alice@uni.edu", "012345") is False


async def test_console_sender_always_succeeds():
    assert await ConsoleMailSender().send("alice@uni.edu", "012345") is True


class TestBuildMailSender:
    def test_console_backend(self, monkeypatch):
        monkeypatch.setattr(Config, "MAIL_BACKEND", "console")

        assert isinstance(build_mail_sender(), ConsoleMailSender)

    def test_smtp_backend(self, monkeypatch):
        monkeypatch.setattr(Config, "MAIL_BACKEND", "smtp")
        monkeypatch.setattr(Config, "SMTP_HOST", "smtp.example.com")
        monkeypatch.setattr(Config, "SMTP_PORT", 2525)
        monkeypatch.setattr(Config, "OTP_TTL_SECONDS", 600)

        sender = build_mail_sender()

        assert isinstance(sender, SMTPMailSender)
        assert sender.port == 2525
        assert sender.ttl_minutes == 10

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setattr(Config, "MAIL_BACKEND", "carrier-pigeon")

        with pytest.raises(ValueError):
            build_mail_sender()
