"""
mail/mailer.py -- SMTP delivery with Jinja2-rendered bodies.

Every message is rendered from mail/templates/<name>.html and sent as an
HTML part with a plain-text fallback derived from the subject and link.

Delivery is best-effort: send() returns False instead of raising when SMTP
is not configured or the server rejects the message, and the failure is
logged. Account flows must not fail because an email could not be sent;
routes schedule these calls as FastAPI BackgroundTasks so SMTP latency never
sits on the request path.

With SMTP_HOST unset (local development) messages are logged, not sent.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("exa.mail")

_TEMPLATE_DIR = Path(__file__).parent / "templates"


class Mailer:
    """Renders and sends the platform's transactional emails.

    Usage:
        mailer = Mailer(get_settings())
        mailer.send_verification("ama@example.com", "Ama", raw_token)
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def render(self, template: str, **context) -> str:
        context.setdefault("frontend_url", self.settings.frontend_url.rstrip("/"))
        return self.env.get_template(f"{template}.html").render(**context)

    def send(self, to: str, subject: str, template: str, text: str = "", **context) -> bool:
        """Render template and deliver it. Returns True only if SMTP accepted the message."""
        html = self.render(template, subject=subject, **context)
        if not self.settings.smtp_host:
            logger.info("SMTP not configured; skipping '%s' email to %s", subject, to)
            return False

        sender = self.settings.smtp_user or f"no-reply@{self.settings.smtp_host}"
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.settings.mail_from_name, sender))
        msg["To"] = to
        msg.set_content(text or subject)
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=15) as smtp:
                if self.settings.smtp_use_tls:
                    smtp.starttls()
                if self.settings.smtp_user:
                    smtp.login(self.settings.smtp_user, self.settings.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send '%s' email to %s: %s", subject, to, exc)
            return False
        logger.info("Sent '%s' email to %s", subject, to)
        return True

    def _link(self, path: str, **params) -> str:
        base = self.settings.frontend_url.rstrip("/")
        return f"{base}{path}?{urlencode(params)}" if params else f"{base}{path}"

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_verification(self, to: str, name: str, token: str) -> bool:
        url = self._link("/verify-email", token=token)
        return self.send(
            to,
            "Verify your email and claim your welcome credits!",
            "verify_email",
            text=f"Hi {name}, verify your email by visiting: {url}\nThis link expires in 24 hours.",
            name=name,
            url=url,
        )

    def send_welcome(self, to: str, name: str, balances: dict[str, float]) -> bool:
        url = self._link("/home")
        return self.send(
            to,
            "Welcome to Sendexa! Your account is now active",
            "welcome",
            text=f"Hi {name}, your account is active. Get started: {url}",
            name=name,
            url=url,
            balances=balances,
        )

    def send_login_alert(self, to: str, name: str, ip_address: str | None = None) -> bool:
        url = self._link("/")
        return self.send(
            to,
            "New Login Detected",
            "login_alert",
            text=f"Hi {name}, a new login to your account was detected. If this wasn't you, reset your password.",
            name=name,
            url=url,
            ip_address=ip_address or "unknown",
        )

    def send_login_otp(self, to: str, name: str, code: str) -> bool:
        return self.send(
            to,
            "Your login verification code",
            "login_otp",
            text=f"Your Exa login code is {code}. It expires in 10 minutes.",
            name=name,
            code=code,
        )

    def send_password_reset(self, to: str, name: str, token: str) -> bool:
        url = self._link("/reset-password", token=token)
        return self.send(
            to,
            "Recover your password",
            "reset_password",
            text=f"Hi {name}, reset your password by visiting: {url}\nThis link expires in 1 hour.",
            name=name,
            url=url,
        )

    def send_password_changed(self, to: str, name: str) -> bool:
        return self.send(
            to,
            "Password reset",
            "password_changed",
            text=f"Hi {name}, your password was changed. If this wasn't you, contact support immediately.",
            name=name,
            url=self._link("/login"),
        )

    def send_invitation(
        self, to: str, business_name: str, inviter_name: str, role: str, token: str, expires_at: str
    ) -> bool:
        url = self._link("/accept-invitation", token=token, email=to)
        return self.send(
            to,
            f"You've been invited to join {business_name} on Sendexa",
            "invitation",
            text=f"{inviter_name} invited you to join {business_name} as {role}. Accept: {url}",
            business_name=business_name,
            inviter_name=inviter_name,
            role=role,
            url=url,
            expires_at=expires_at[:10],
        )

    def send_test(self, to: str) -> bool:
        return self.send(
            to,
            "Welcome to Sendexa",
            "welcome",
            text="This is a test message from the Exa platform.",
            name="there",
            url=self._link("/home"),
            balances={},
        )
