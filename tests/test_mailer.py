"""
Tests for the account mailer.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from leadhub.config import settings
from leadhub.exceptions import EmailDeliveryError
from leadhub.services.mailer import Mailer


def smtp_settings(**overrides):
    values = {
        "email_mode": "smtp",
        "smtp_host": "smtp.example.com",
        "smtp_port": 2525,
        "smtp_username": "mailer",
        "smtp_password": "hunter2",
        "smtp_use_tls": True,
    }
    values.update(overrides)
    return settings.model_copy(update=values)


class TestLogMode:
    async def test_nothing_leaves_the_process(self):
        mailer = Mailer(settings.model_copy(update={"email_mode": "log"}))

        with patch("leadhub.services.mailer.smtplib.SMTP") as smtp_cls:
            await mailer.send_verification_code("user@example.com", "Ann", "0427")

        smtp_cls.assert_not_called()


class TestSmtpMode:
    async def test_verification_code_sent(self):
        mailer = Mailer(smtp_settings())

        with patch("leadhub.services.mailer.smtplib.SMTP") as smtp_cls:
            await mailer.send_verification_code("user@example.com", "Ann", "0427")

        smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=30)
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("mailer", "hunter2")
        message = smtp.send_message.call_args.args[0]
        assert message["To"] == "user@example.com"
        assert "0427" in message.get_content()

    async def test_reset_link_is_url_encoded(self):
        mailer = Mailer(smtp_settings(smtp_use_tls=False, smtp_username=""))

        with patch("leadhub.services.mailer.smtplib.SMTP") as smtp_cls:
            await mailer.send_password_reset("a+b@example.com", "Ann", "tok/123")

        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        body = smtp.send_message.call_args.args[0].get_content()
        assert "email=a%2Bb%40example.com&token=tok%2F123" in body

    @pytest.mark.parametrize(
        "error",
        [smtplib.SMTPAuthenticationError(535, b"bad credentials"), ConnectionRefusedError()],
        ids=["smtp-error", "unreachable"],
    )
    async def test_delivery_failure_raises(self, error):
        mailer = Mailer(smtp_settings())
        smtp_cls = MagicMock(side_effect=error)

        with patch("leadhub.services.mailer.smtplib.SMTP", smtp_cls):
            with pytest.raises(EmailDeliveryError):
                await mailer.send("user@example.com", "Subject", "Body")
