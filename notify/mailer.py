"""
notify/mailer.py -- Transactional email: verification codes, reset codes, welcome.

Delivery is best-effort. Every send_* method returns True/False and logs the
failure; the account flows never fail a request because the mail relay is
down (the user can always ask for a fresh code via resend-otp or
forgot-password).

When SMTP_HOST is empty the message is not sent. It is logged instead, and in
DEBUG mode the plain-text body is included so a developer can read the code
off the console.

Layer rule: stdlib + core/ only. auth/ does not import this module; the
account service receives a Mailer instance from api/main.py.
"""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from core.config import Settings

logger = logging.getLogger("planit.mail")

_CODE_LIFETIME = "10 minutes"


def _redact(email: str) -> str:
    """Redact an address for logging: ab***@example.com."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    """SMTP sender configured from Settings.

    Usage:
        mailer = Mailer.from_settings(get_settings())
        mailer.send_otp_email("a@x.com", "123456", "A B")
    """

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Planit",
        debug: bool = False,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_username
        self.from_name = from_name
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            debug=settings.debug,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def _send(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> bool:
        if not self.is_configured:
            if self.debug:
                logger.info("mail not configured; to=%s subject=%r body=%r", _redact(to_email), subject, text_body)
            else:
                logger.info("mail not configured; dropped to=%s subject=%r", _redact(to_email), subject)
            return False

        msg = EmailMessage()
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "mail send failed to=%s subject=%r error=%s: %s", _redact(to_email), subject, type(exc).__name__, exc
            )
            return False

        logger.info("mail sent to=%s subject=%r", _redact(to_email), subject)
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_otp_email(self, to_email: str, code: str, full_name: str) -> bool:
        text = (
            f"Hello {full_name},\n"
            f"Your Planit verification code is: {code}\n"
            f"This code will expire in {_CODE_LIFETIME}. Please do not share this code with anyone.\n"
            "If you didn't request this code, please ignore this email.\n"
            "Best regards,\nThe Planit Team"
        )
        html_body = (
            f"<p>Hello {html.escape(full_name)},</p>"
            f"<p>Your Planit verification code is: <strong>{code}</strong></p>"
            f"<p>This code will expire in {_CODE_LIFETIME}.</p>"
        )
        return self._send(to_email, "Planit - Email Verification Code", text, html_body)

    def send_password_reset_email(self, to_email: str, code: str) -> bool:
        text = (
            "Hello,\n"
            "We received a password reset request for your Planit account.\n"
            f"Your password reset code is: {code}\n"
            f"This code will expire in {_CODE_LIFETIME}. If you didn't request this, please ignore this email.\n"
            "Best regards,\nThe Planit Team"
        )
        return self._send(to_email, "Planit - Password Reset Request", text)

    def send_welcome_email(self, to_email: str, full_name: str) -> bool:
        text = (
            f"Welcome to Planit, {full_name}!\n"
            "Thank you for verifying your email. We're excited to have you on board!\n"
            "Best regards,\nThe Planit Team"
        )
        return self._send(to_email, "Welcome to Planit!", text)
