"""
Account Mailer - Verification codes and password reset links.

EMAIL_MODE=log writes the message to the structured log (development);
EMAIL_MODE=smtp hands it to the configured SMTP server.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from structlog import get_logger

from leadhub.config import Settings
from leadhub.exceptions import EmailDeliveryError

logger = get_logger(__name__)


class Mailer:
    """Sends account emails according to the configured mode."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver one plain-text email.

        Raises:
            EmailDeliveryError: SMTP server refused or was unreachable
        """
        if self.settings.email_mode != "smtp":
            logger.info("email_logged", to=to, subject=subject, body=body)
            return

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.settings.email_from
        message["To"] = to
        message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_delivery_failed", to=to, subject=subject, error=str(exc))
            raise EmailDeliveryError(str(exc)) from exc

        logger.info("email_sent", to=to, subject=subject)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=30) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_username:
                smtp.login(self.settings.smtp_username, self.settings.smtp_password)
            smtp.send_message(message)

    async def send_verification_code(self, to: str, name: str, code: str) -> None:
        await self.send(
            to,
            "Verify your LeadHub account",
            f"Hi {name},\n\nYour LeadHub verification code is: {code}\n",
        )

    async def send_password_reset(self, to: str, name: str, token: str) -> None:
        query = urlencode({"email": to, "token": token})
        link = f"{self.settings.password_reset_url}?{query}"
        minutes = self.settings.password_reset_ttl_minutes
        await self.send(
            to,
            "Reset your LeadHub password",
            f"Hi {name},\n\nReset your password here: {link}\n\n"
            f"This link expires in {minutes} minutes.\n",
        )
