"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime

from leadhub.models.api import (
    CoinTransactionType,
    PaymentSessionResponse,
    PurchaseKind,
    UserRole,
    ViewType,
)


@dataclass(frozen=True)
class PaymentSession:
    """A payment session created with the provider for one purchase."""

    session_id: str
    client_secret: str
    payment_url: str
    qr_code_data_url: str
    expires_at: int  # epoch seconds
    kind: PurchaseKind

    def __post_init__(self) -> None:
        """Validate payment session fields."""
        if not self.session_id:
            raise ValueError("session_id cannot be empty")
        if self.expires_at <= 0:
            raise ValueError(f"Invalid expires_at: {self.expires_at}")

    def to_response(self) -> PaymentSessionResponse:
        """Convert to the wire model."""
        return PaymentSessionResponse(
            session_id=self.session_id,
            client_secret=self.client_secret,
            payment_url=self.payment_url,
            qr_code_data_url=self.qr_code_data_url,
            expires_at=self.expires_at,
        )


@dataclass(frozen=True)
class SessionClaims:
    """Decoded session token claims."""

    user_id: int
    role: UserRole
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedSession:
    """A freshly signed session token."""

    token: str
    expires_at: datetime
    max_age_seconds: int


@dataclass(frozen=True)
class CoinMovement:
    """Immutable intent for a LeadCoin balance change."""

    user_id: int
    amount: int
    type: CoinTransactionType
    description: str
    admin_id: int | None = None

    def __post_init__(self) -> None:
        """Validate movement constraints."""
        if self.amount <= 0:
            raise ValueError(f"Coin amount must be positive: {self.amount}")
        if not self.description:
            raise ValueError("Description cannot be empty")


@dataclass(frozen=True)
class BalanceChange:
    """Result of applying a CoinMovement."""

    user_id: int
    balance_before: int
    balance_after: int
    transaction_id: int


@dataclass(frozen=True)
class LeadViewCharge:
    """Result of unlocking a lead."""

    lead_id: int
    view_type: ViewType
    coins_spent: int
    remaining_coins: int
    already_viewed: bool


@dataclass(frozen=True)
class ExpirySweepResult:
    """Counts from one subscription/purchase expiry sweep."""

    expired_subscriptions: int
    promoted_subscriptions: int
    abandoned_subscriptions: int
    abandoned_coin_purchases: int


@dataclass(frozen=True)
class ViewCosts:
    """LeadCoin cost per view type."""

    contact_info: int
    detailed_info: int
    full_access: int

    def cost_for(self, view_type: ViewType) -> int:
        """Cost of unlocking a lead at the given level."""
        if view_type == ViewType.CONTACT_INFO:
            return self.contact_info
        if view_type == ViewType.DETAILED_INFO:
            return self.detailed_info
        return self.full_access
