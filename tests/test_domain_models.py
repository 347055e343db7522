"""
Tests for domain dataclasses: validation and immutability.
"""

from dataclasses import FrozenInstanceError

import pytest

from leadhub.models.api import CoinTransactionType, PurchaseKind, ViewType
from leadhub.models.domain import CoinMovement, PaymentSession, ViewCosts


class TestCoinMovement:
    def test_valid_movement(self):
        movement = CoinMovement(
            user_id=1, amount=25, type=CoinTransactionType.PURCHASE, description="Coin package"
        )

        assert movement.admin_id is None

    @pytest.mark.parametrize("amount", [0, -5])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValueError, match="positive"):
            CoinMovement(
                user_id=1, amount=amount, type=CoinTransactionType.SPENT, description="View"
            )

    def test_description_required(self):
        with pytest.raises(ValueError, match="Description"):
            CoinMovement(user_id=1, amount=5, type=CoinTransactionType.SPENT, description="")

    def test_immutable(self):
        movement = CoinMovement(
            user_id=1, amount=5, type=CoinTransactionType.ADMIN_TOPUP, description="Top-up"
        )

        with pytest.raises(FrozenInstanceError):
            movement.amount = 500


class TestPaymentSession:
    def session(self, **overrides) -> PaymentSession:
        values = {
            "session_id": "cs_test_123",
            "client_secret": "pi_secret",
            "payment_url": "https://checkout.stripe.com/c/pay/cs_test_123",
            "qr_code_data_url": "",
            "expires_at": 1_900_000_000,
            "kind": PurchaseKind.SUBSCRIPTION,
        }
        values.update(overrides)
        return PaymentSession(**values)

    def test_to_response_uses_camel_case(self):
        wire = self.session().to_response().model_dump(by_alias=True)

        assert wire["sessionId"] == "cs_test_123"
        assert wire["clientSecret"] == "pi_secret"
        assert wire["expiresAt"] == 1_900_000_000

    def test_empty_session_id_rejected(self):
        with pytest.raises(ValueError, match="session_id"):
            self.session(session_id="")

    def test_expiry_required(self):
        with pytest.raises(ValueError, match="expires_at"):
            self.session(expires_at=0)


class TestViewCosts:
    @pytest.mark.parametrize(
        ("view_type", "cost"),
        [
            (ViewType.CONTACT_INFO, 1),
            (ViewType.DETAILED_INFO, 2),
            (ViewType.FULL_ACCESS, 3),
        ],
    )
    def test_cost_for(self, view_type, cost):
        costs = ViewCosts(contact_info=1, detailed_info=2, full_access=3)

        assert costs.cost_for(view_type) == cost
