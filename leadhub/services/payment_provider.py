"""
Payment Provider Protocol - Provider-agnostic checkout interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Provider-agnostic checkout request.

    Represents one purchase the user is about to pay for.
    """

    amount_minor: int
    currency: str
    product_name: str
    product_description: str | None
    customer_email: str
    user_id: int
    item_id: int  # plan id or package id
    kind: str  # "subscription" or "coins"
    expires_at: int  # epoch seconds

    def __post_init__(self) -> None:
        """Validate checkout request fields."""
        if self.amount_minor < 0:
            raise ValueError(f"Amount cannot be negative: {self.amount_minor}")
        if self.kind not in ("subscription", "coins"):
            raise ValueError(f"Invalid checkout kind: {self.kind}")


@dataclass(frozen=True)
class CheckoutSessionResult:
    """Provider-agnostic checkout session returned after creation."""

    session_id: str
    client_secret: str  # For client-side card confirmation
    payment_url: str  # Hosted checkout page
    expires_at: int


@dataclass(frozen=True)
class CheckoutStatus:
    """
    Current state of a checkout session.

    payment_status: "paid", "unpaid" or "no_payment_required"
    session_status: "open", "complete" or "expired"
    """

    session_id: str
    payment_status: str
    session_status: str

    @property
    def is_paid(self) -> bool:
        """Whether the provider has captured the payment."""
        return self.payment_status == "paid"

    @property
    def is_expired(self) -> bool:
        """Whether the session can no longer be paid."""
        return self.session_status == "expired"


@dataclass(frozen=True)
class WebhookEvent:
    """
    Provider-agnostic webhook event.

    Represents a checkout notification from the payment provider.
    """

    event_id: str
    event_type: str
    session_id: str | None
    payment_status: str | None
    kind: str | None
    user_id: int | None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    Any payment provider must implement this interface so purchase
    flows stay provider-agnostic.
    """

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSessionResult:
        """
        Create a checkout session with the provider.

        Raises:
            PaymentProviderError: If session creation fails
        """
        ...

    async def get_checkout_status(self, session_id: str) -> CheckoutStatus:
        """
        Look up the current state of a checkout session.

        Raises:
            PaymentProviderError: If the provider cannot be reached
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse a webhook event from the provider.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        ...
