"""
tests/test_mailer.py -- Unit tests for mail/mailer.py.

No network: smtplib.SMTP is patched wherever delivery is attempted.
"""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from core.config import Settings
from mail.mailer import Mailer


def _settings(**overrides) -> Settings:
    base = {
        "session_secret": "mailer-test-secret-0123456789abcdef01234567",
        "frontend_url": "https://app.example.com/",
        "smtp_host": "",
    }
    base.update(overrides)
    return Settings(**base)


class TestRender:
    def test_verification_email_contains_link(self) -> None:
        html = Mailer(_settings()).render(
            "verify_email", name="Ama", url="https://app.example.com/verify-email?token=abc123"
        )
        assert "https://app.example.com/verify-email?token=abc123" in html
        assert "Ama" in html

    def test_names_are_escaped(self) -> None:
        html = Mailer(_settings()).render("login_otp", name="<b>Eve</b>", code="123456")
        assert "<b>Eve</b>" not in html
        assert "&lt;b&gt;Eve&lt;/b&gt;" in html

    def test_links_use_frontend_url_without_trailing_slash(self) -> None:
        mailer = Mailer(_settings())
        assert mailer._link("/reset-password", token="t0k") == "https://app.example.com/reset-password?token=t0k"
        assert mailer._link("/login") == "https://app.example.com/login"


class TestSend:
    def test_without_smtp_host_nothing_is_sent(self) -> None:
        with patch("mail.mailer.smtplib.SMTP") as smtp_cls:
            assert Mailer(_settings()).send_verification("ama@example.com", "Ama", "abc") is False
        smtp_cls.assert_not_called()

    def test_delivers_through_smtp(self) -> None:
        settings = _settings(smtp_host="smtp.example.com", smtp_user="mailer@example.com", smtp_password="pw")
        with patch("mail.mailer.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            assert Mailer(settings).send_password_reset("ama@example.com", "Ama", "tok") is True

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=15)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("mailer@example.com", "pw")
        msg = smtp.send_message.call_args.args[0]
        assert msg["To"] == "ama@example.com"
        assert msg["Subject"] == "Recover your password"
        assert "reset-password?token=tok" in msg.get_body(("plain",)).get_content()

    def test_tls_and_login_are_optional(self) -> None:
        settings = _settings(smtp_host="relay.local", smtp_port=25, smtp_use_tls=False)
        with patch("mail.mailer.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            assert Mailer(settings).send_test("ops@example.com") is True
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()

    @pytest.mark.parametrize("error", [smtplib.SMTPException("rejected"), OSError("connection refused")])
    def test_smtp_failure_returns_false(self, error: Exception) -> None:
        settings = _settings(smtp_host="smtp.example.com", smtp_use_tls=False)
        with patch("mail.mailer.smtplib.SMTP") as smtp_cls:
            smtp = MagicMock()
            smtp.send_message.side_effect = error
            smtp_cls.return_value.__enter__.return_value = smtp
            assert Mailer(settings).send_welcome("ama@example.com", "Ama", {"SMS": 50.0}) is False
