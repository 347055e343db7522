"""
Tests for exception classes.

Covers the typed attributes and messages each exception carries.
"""

import pytest

from leadhub.client.errors import (
    ApiRequestError,
    ClientError,
    RateLimitedError,
    SessionExpiredError,
)
from leadhub.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CouponError,
    DataIntegrityError,
    DuplicateEmailError,
    InsufficientLeadCoinsError,
    LeadHubError,
    PaymentProviderError,
    PaymentSessionNotFoundError,
    PlanInactiveError,
    ResourceNotFoundError,
    UserNotFoundError,
    WebhookVerificationError,
)


class TestLeadHubError:
    """Tests for the base server exception."""

    @pytest.mark.parametrize(
        "exc",
        [
            InsufficientLeadCoinsError(1, 5),
            UserNotFoundError(1),
            ResourceNotFoundError("Lead", 7),
            PlanInactiveError(10),
            PaymentSessionNotFoundError("cs_1"),
            DuplicateEmailError("a@b.c"),
            CouponError("expired"),
            DataIntegrityError("balance mismatch"),
            PaymentProviderError("timeout"),
            WebhookVerificationError("bad signature"),
            AuthenticationError("expired"),
            AuthorizationError("admin"),
        ],
    )
    def test_all_derive_from_base(self, exc):
        """Every server exception can be caught as LeadHubError."""
        assert isinstance(exc, LeadHubError)


class TestInsufficientLeadCoinsError:
    def test_message_matches_client_wording(self):
        """Message uses the same wording the 402 response carries."""
        exc = InsufficientLeadCoinsError(balance=3, required=5)

        assert exc.balance == 3
        assert exc.required == 5
        assert str(exc) == "Insufficient LeadCoins. Balance: 3, Required: 5"


class TestResourceErrors:
    def test_resource_not_found(self):
        exc = ResourceNotFoundError("Subscription plan", 42)

        assert exc.resource == "Subscription plan"
        assert exc.resource_id == 42
        assert str(exc) == "Subscription plan not found: 42"

    def test_plan_inactive(self):
        assert PlanInactiveError(9).plan_id == 9

    def test_payment_session_not_found(self):
        exc = PaymentSessionNotFoundError("cs_missing")

        assert exc.session_id == "cs_missing"
        assert "cs_missing" in str(exc)


class TestProviderErrors:
    def test_payment_provider_error_keeps_message(self):
        exc = PaymentProviderError("Stripe checkout failed")

        assert exc.message == "Stripe checkout failed"
        assert str(exc) == "Payment provider error: Stripe checkout failed"

    def test_webhook_error(self):
        assert WebhookVerificationError("bad").message == "bad"


class TestClientErrors:
    """Tests for the client SDK hierarchy."""

    def test_session_expired_is_401(self):
        exc = SessionExpiredError()

        assert isinstance(exc, ApiRequestError)
        assert isinstance(exc, ClientError)
        assert exc.status_code == 401

    def test_rate_limited(self):
        exc = RateLimitedError(4)

        assert exc.attempts == 4
        assert exc.status_code == 429
        assert exc.is_server_error is False

    def test_server_error_flag(self):
        assert ApiRequestError(500, "boom").is_server_error is True
        assert ApiRequestError(499, "client closed").is_server_error is False
