"""initial schema

Revision ID: 2026_10_01_0000
Revises:
Create Date: 2026-10-01 08:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_01_0000"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
    )


def upgrade() -> None:
    """Create the LeadHub schema."""

    # ========================================================================
    # Users
    # ========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("permissions", ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("lead_coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("lead_coins >= 0", name="ck_users_lead_coins_non_negative"),
        sa.CheckConstraint("role IN ('admin', 'subadmin', 'user')", name="ck_users_role"),
        sa.CheckConstraint("status IN ('active', 'inactive', 'pending')", name="ck_users_status"),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ========================================================================
    # Plans and user subscriptions
    # ========================================================================
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("lead_coins", sa.Integer(), nullable=False),
        sa.Column("features", ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("price >= 0", name="ck_subscriptions_price_non_negative"),
        sa.CheckConstraint("duration_days > 0", name="ck_subscriptions_duration_positive"),
        sa.CheckConstraint("lead_coins > 0", name="ck_subscriptions_lead_coins_positive"),
    )

    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("subscription_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("lead_coins_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "start_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_session_id", sa.String(255), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_user_subscriptions_user", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["subscription_id"], ["subscriptions.id"], name="fk_user_subscriptions_plan"
        ),
        sa.CheckConstraint("lead_coins_left >= 0", name="ck_user_subscriptions_coins_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'expired', 'cancelled')",
            name="ck_user_subscriptions_status",
        ),
    )
    op.create_index(
        "idx_user_subscriptions_user_status", "user_subscriptions", ["user_id", "status"]
    )
    op.create_index(
        "idx_user_subscriptions_session",
        "user_subscriptions",
        ["payment_session_id"],
        postgresql_where=sa.text("payment_session_id IS NOT NULL"),
    )

    # ========================================================================
    # LeadCoin packages, purchases and ledger
    # ========================================================================
    op.create_table(
        "leadcoin_packages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("lead_coins", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("lead_coins > 0", name="ck_leadcoin_packages_coins_positive"),
        sa.CheckConstraint("price >= 0", name="ck_leadcoin_packages_price_non_negative"),
    )

    op.create_table(
        "coin_purchases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("lead_coins", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payment_session_id", sa.String(255), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "purchase_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_coin_purchases_user", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["package_id"], ["leadcoin_packages.id"], name="fk_coin_purchases_package"
        ),
        sa.CheckConstraint("lead_coins > 0", name="ck_coin_purchases_coins_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'cancelled')",
            name="ck_coin_purchases_status",
        ),
    )
    op.create_index("ix_coin_purchases_user_id", "coin_purchases", ["user_id"])
    op.create_index(
        "idx_coin_purchases_session",
        "coin_purchases",
        ["payment_session_id"],
        postgresql_where=sa.text("payment_session_id IS NOT NULL"),
    )

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("admin_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_coin_transactions_user", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], name="fk_coin_transactions_admin"),
        sa.CheckConstraint("amount <> 0", name="ck_coin_transactions_amount_non_zero"),
        sa.CheckConstraint("balance_after >= 0", name="ck_coin_transactions_balance_non_negative"),
        sa.CheckConstraint(
            "type IN ('purchase', 'subscription', 'admin_topup', 'coupon', 'bonus', "
            "'spent', 'refund')",
            name="ck_coin_transactions_type",
        ),
    )
    op.create_index("ix_coin_transactions_user_id", "coin_transactions", ["user_id"])
    op.create_index("idx_coin_transactions_created_at", "coin_transactions", ["created_at"])

    # ========================================================================
    # Leads
    # ========================================================================
    op.create_table(
        "lead_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint("name", name="uq_lead_categories_name"),
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("category_name", sa.String(255), nullable=True),
        sa.Column("skills", ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("work_type", sa.String(20), nullable=False, server_default="full_time"),
        sa.Column("duration", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("total_members", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("contact_number", sa.String(20), nullable=False),
        sa.Column("images", ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(["category_id"], ["lead_categories.id"], name="fk_leads_category"),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"], name="fk_leads_creator"),
        sa.CheckConstraint("work_type IN ('part_time', 'full_time')", name="ck_leads_work_type"),
        sa.CheckConstraint("total_members > 0", name="ck_leads_total_members_positive"),
    )
    op.create_index("idx_leads_category", "leads", ["category_id"])
    op.create_index("idx_leads_creator", "leads", ["creator_id"])
    op.create_index("idx_leads_created_at", "leads", ["created_at"])

    op.create_table(
        "lead_views",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=False),
        sa.Column("coins_spent", sa.Integer(), nullable=False),
        sa.Column("view_type", sa.String(20), nullable=False),
        sa.Column(
            "viewed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_lead_views_user", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["lead_id"], ["leads.id"], name="fk_lead_views_lead", ondelete="CASCADE"
        ),
        sa.CheckConstraint("coins_spent >= 0", name="ck_lead_views_coins_non_negative"),
        sa.CheckConstraint(
            "view_type IN ('contact_info', 'detailed_info', 'full_access')",
            name="ck_lead_views_view_type",
        ),
        sa.UniqueConstraint("user_id", "lead_id", "view_type", name="uq_lead_views_user_lead_type"),
    )
    op.create_index("idx_lead_views_viewed_at", "lead_views", ["viewed_at"])

    op.create_table(
        "leadcoin_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contact_info_cost", sa.Integer(), nullable=False),
        sa.Column("detailed_info_cost", sa.Integer(), nullable=False),
        sa.Column("full_access_cost", sa.Integer(), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(["updated_by"], ["users.id"], name="fk_leadcoin_settings_admin"),
        sa.CheckConstraint(
            "contact_info_cost > 0 AND detailed_info_cost > 0 AND full_access_cost > 0",
            name="ck_leadcoin_settings_costs_positive",
        ),
    )

    # ========================================================================
    # Support, notifications, coupons, sessions
    # ========================================================================
    op.create_table(
        "support_tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_support_tickets_user", ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'closed')",
            name="ck_support_tickets_status",
        ),
    )
    op.create_index("ix_support_tickets_user_id", "support_tickets", ["user_id"])

    op.create_table(
        "support_ticket_replies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_from_staff", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["ticket_id"],
            ["support_tickets.id"],
            name="fk_support_ticket_replies_ticket",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_support_ticket_replies_user"),
    )
    op.create_index("ix_support_ticket_replies_ticket_id", "support_ticket_replies", ["ticket_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_notifications_user", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("idx_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("coin_amount", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="fk_coupons_creator"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
        sa.CheckConstraint("max_uses > 0", name="ck_coupons_max_uses_positive"),
        sa.CheckConstraint("current_uses >= 0", name="ck_coupons_current_uses_non_negative"),
        sa.CheckConstraint("coin_amount > 0", name="ck_coupons_coin_amount_positive"),
    )

    op.create_table(
        "coupon_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("coupon_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "claimed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["coupon_id"], ["coupons.id"], name="fk_coupon_claims_coupon", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_coupon_claims_user", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_claims_user"),
    )

    op.create_table(
        "revoked_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column(
            "revoked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("token_hash", name="uq_revoked_sessions_token_hash"),
    )
    op.create_index("idx_revoked_sessions_expires_at", "revoked_sessions", ["expires_at"])


def downgrade() -> None:
    """Drop the LeadHub schema."""
    for table in (
        "revoked_sessions",
        "coupon_claims",
        "coupons",
        "notifications",
        "support_ticket_replies",
        "support_tickets",
        "leadcoin_settings",
        "lead_views",
        "leads",
        "lead_categories",
        "coin_transactions",
        "coin_purchases",
        "leadcoin_packages",
        "user_subscriptions",
        "subscriptions",
        "users",
    ):
        op.drop_table(table)
