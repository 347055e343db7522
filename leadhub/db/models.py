"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from leadhub.models.api import CoinTransactionType, NotificationType, ViewType


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _string_enum(enum_cls: type, name: str) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda x: [e.value for e in x],
    )


class User(Base):
    """
    ORM model for users table.

    Holds identity, role and the global LeadCoin balance.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Access
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    permissions: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)

    # Email verification and password reset
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verification_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    password_reset_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_reset_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Global spendable balance
    lead_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("lead_coins >= 0", name="ck_users_lead_coins_non_negative"),
        CheckConstraint("role IN ('admin', 'subadmin', 'user')", name="ck_users_role"),
        CheckConstraint("status IN ('active', 'inactive', 'pending')", name="ck_users_status"),
        Index("idx_users_role", "role"),
        Index(
            "idx_users_password_reset_token_hash",
            "password_reset_token_hash",
            postgresql_where=text("password_reset_token_hash IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, email={self.email}, lead_coins={self.lead_coins})>"


class Subscription(Base):
    """
    ORM model for subscriptions table.

    Plan templates managed by admins.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # cents
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    lead_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    features: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_subscriptions_price_non_negative"),
        CheckConstraint("duration_days > 0", name="ck_subscriptions_duration_positive"),
        CheckConstraint("lead_coins > 0", name="ck_subscriptions_lead_coins_positive"),
    )


class UserSubscription(Base):
    """
    ORM model for user_subscriptions table.

    One row per purchase attempt of a plan. Only an active, payment-verified
    row whose end_date lies in the future is the user's current subscription.
    """

    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscriptions.id"), nullable=False
    )
    plan: Mapped[Subscription] = relationship(Subscription, lazy="selectin")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lead_coins_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payment session (Stripe checkout session id)
    payment_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("lead_coins_left >= 0", name="ck_user_subscriptions_coins_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'active', 'expired', 'cancelled')",
            name="ck_user_subscriptions_status",
        ),
        Index("idx_user_subscriptions_user_status", "user_id", "status"),
        Index(
            "idx_user_subscriptions_session",
            "payment_session_id",
            postgresql_where=(payment_session_id.isnot(None)),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UserSubscription(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, lead_coins_left={self.lead_coins_left})>"
        )


class LeadCoinPackage(Base):
    """ORM model for leadcoin_packages table (one-off coin bundles)."""

    __tablename__ = "leadcoin_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    lead_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # cents
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("lead_coins > 0", name="ck_leadcoin_packages_coins_positive"),
        CheckConstraint("price >= 0", name="ck_leadcoin_packages_price_non_negative"),
    )


class CoinPurchase(Base):
    """ORM model for coin_purchases table."""

    __tablename__ = "coin_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    package_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leadcoin_packages.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    lead_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # cents
    payment_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    purchase_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("lead_coins > 0", name="ck_coin_purchases_coins_positive"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'cancelled')",
            name="ck_coin_purchases_status",
        ),
        Index(
            "idx_coin_purchases_session",
            "payment_session_id",
            postgresql_where=(payment_session_id.isnot(None)),
        ),
    )


class CoinTransaction(Base):
    """
    ORM model for coin_transactions table.

    Immutable ledger of every LeadCoin balance change.
    """

    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    admin_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)

    # Signed: positive credits, negative debits
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[CoinTransactionType] = mapped_column(
        _string_enum(CoinTransactionType, "coin_transaction_type"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_coin_transactions_amount_non_zero"),
        CheckConstraint("balance_after >= 0", name="ck_coin_transactions_balance_non_negative"),
        Index("idx_coin_transactions_created_at", "created_at"),
    )


class LeadCategory(Base):
    """ORM model for lead_categories table."""

    __tablename__ = "lead_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class Lead(Base):
    """ORM model for leads table."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lead_categories.id"), nullable=True
    )
    category_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    skills: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    work_type: Mapped[str] = mapped_column(String(20), nullable=False, default="full_time")
    duration: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    total_members: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Contact details are only revealed after a paid view
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(20), nullable=False)

    images: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    creator_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("work_type IN ('part_time', 'full_time')", name="ck_leads_work_type"),
        CheckConstraint("total_members > 0", name="ck_leads_total_members_positive"),
        Index("idx_leads_category", "category_id"),
        Index("idx_leads_creator", "creator_id"),
        Index("idx_leads_created_at", "created_at"),
    )


class LeadView(Base):
    """
    ORM model for lead_views table.

    A row means the user has unlocked the lead at that view type.
    """

    __tablename__ = "lead_views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    lead: Mapped[Lead] = relationship(Lead, lazy="selectin")
    coins_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    view_type: Mapped[ViewType] = mapped_column(
        _string_enum(ViewType, "view_type"), nullable=False
    )
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("coins_spent >= 0", name="ck_lead_views_coins_non_negative"),
        UniqueConstraint("user_id", "lead_id", "view_type", name="uq_lead_views_user_lead_type"),
        Index("idx_lead_views_viewed_at", "viewed_at"),
    )


class LeadCoinSettings(Base):
    """ORM model for leadcoin_settings table. Single row of view costs."""

    __tablename__ = "leadcoin_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contact_info_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    detailed_info_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    full_access_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "contact_info_cost > 0 AND detailed_info_cost > 0 AND full_access_cost > 0",
            name="ck_leadcoin_settings_costs_positive",
        ),
    )


class SupportTicket(Base):
    """ORM model for support_tickets table."""

    __tablename__ = "support_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'closed')",
            name="ck_support_tickets_status",
        ),
    )


class SupportTicketReply(Base):
    """ORM model for support_ticket_replies table."""

    __tablename__ = "support_ticket_replies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_from_staff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class Notification(Base):
    """ORM model for notifications table."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[NotificationType] = mapped_column(
        _string_enum(NotificationType, "notification_type"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Database column is "metadata"; SQLAlchemy reserves that attribute name
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "read"),
        Index("idx_notifications_created_at", "created_at"),
    )


class Coupon(Base):
    """ORM model for coupons table."""

    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coin_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("max_uses > 0", name="ck_coupons_max_uses_positive"),
        CheckConstraint("current_uses >= 0", name="ck_coupons_current_uses_non_negative"),
        CheckConstraint("coin_amount > 0", name="ck_coupons_coin_amount_positive"),
    )


class CouponClaim(Base):
    """ORM model for coupon_claims table. One claim per user per coupon."""

    __tablename__ = "coupon_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    coupon_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (UniqueConstraint("coupon_id", "user_id", name="uq_coupon_claims_user"),)


class RevokedSession(Base):
    """
    ORM model for revoked_sessions table.

    Stores SHA-256 hashes of session tokens invalidated by logout.
    """

    __tablename__ = "revoked_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_revoked_sessions_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<RevokedSession(id={self.id}, token_hash={self.token_hash[:16]}...)>"
