"""
services/email.py -- Outbound email delivery over SMTP.

The identity engine only needs "send a message to an address". Mailer.send()
is that contract; it raises DeliveryError on any transport failure so the
caller decides whether the failure matters.

When SMTP_HOST is not configured (local development, tests) the message is
logged instead of sent, with the recipient redacted.

Layer rule: no imports from api/, auth/, or accounts/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.text import MIMEText

logger = logging.getLogger("waypoint.services.email")


class DeliveryError(Exception):
    """Raised when a message could not be handed to the SMTP server."""


def redact_email(email: str) -> str:
    """Redact an email address for log lines: 'alice@x.com' -> 'al***@x.com'."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    """Plain-text SMTP mailer.

    Usage:
        mailer = Mailer(smtp_host="smtp.example.com", smtp_user="noreply@example.com", smtp_password="...")
        mailer.send("alice@example.com", "Verify Your Email", "Verify your email: https://...")
    """

    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        from_email: str | None = None,
        timeout: float = 30,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, to_email: str, subject: str, text: str) -> None:
        """Send a plain-text message. Raises DeliveryError on transport failure."""
        if not self.is_configured:
            logger.info("Email (dev mode, not sent) to=%s subject=%r", redact_email(to_email), subject)
            logger.debug("Email body: %s", text)
            return

        msg = MIMEText(text, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(self.from_email, [to_email], msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.sendmail(self.from_email, [to_email], msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Email delivery failed to=%s host=%s error=%s: %s",
                redact_email(to_email),
                self.smtp_host,
                type(exc).__name__,
                exc,
            )
            raise DeliveryError(f"Could not deliver email: {type(exc).__name__}") from exc

        logger.info("Email sent to=%s subject=%r", redact_email(to_email), subject)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
