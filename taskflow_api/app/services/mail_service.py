"""
Outgoing e‑mail.

Messages are sent over SMTP (STARTTLS when a user is configured).  When
``SMTP_HOST`` is empty the message is written to the log instead, which
is what local development and the tests rely on.
"""

import logging
import smtplib
from email.message import EmailMessage

from taskflow_api.app.core.config import settings

logger = logging.getLogger(__name__)


class MailService:
    """Thin wrapper around ``smtplib``."""

    @classmethod
    async def send(cls, to: str, subject: str, body: str) -> None:
        """Send a plain text message.  SMTP errors propagate to the caller."""
        if not settings.smtp_host:
            logger.info("SMTP not configured; mail to %s: %s\n%s", to, subject, body)
            return
        message = EmailMessage()
        message["From"] = settings.smtp_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
            if settings.smtp_user:
                smtp.starttls()
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
        logger.info("Mail sent to %s: %s", to, subject)

    @classmethod
    async def send_password_reset(cls, to: str, reset_url: str) -> None:
        body = (
            "We received a request to reset your password.\n\n"
            f"Open the link below to choose a new one:\n{reset_url}\n\n"
            f"The link expires in {settings.password_reset_token_minutes} minutes. "
            "If you did not request a reset you can ignore this message."
        )
        await cls.send(to, "Reset your password", body)
