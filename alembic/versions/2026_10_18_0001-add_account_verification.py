"""Add email verification and password reset columns to users table.

Revision ID: 2026_10_18_0001
Revises: 2026_10_01_0000
Create Date: 2026-10-18

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "2026_10_18_0001"
down_revision = "2026_10_01_0000"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add verification and reset-token columns; existing users count as verified."""
    op.add_column(
        "users",
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.add_column(
        "users",
        sa.Column("verification_code", sa.String(10), nullable=True),
    )
    op.add_column(
        "users",
        sa.Column("password_reset_token_hash", sa.String(64), nullable=True),
    )
    op.add_column(
        "users",
        sa.Column("password_reset_expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_users_password_reset_token_hash",
        "users",
        ["password_reset_token_hash"],
        postgresql_where=sa.text("password_reset_token_hash IS NOT NULL"),
    )


def downgrade() -> None:
    """Remove verification and reset-token columns from users table."""
    op.drop_index("idx_users_password_reset_token_hash", table_name="users")
    op.drop_column("users", "password_reset_expires_at")
    op.drop_column("users", "password_reset_token_hash")
    op.drop_column("users", "verification_code")
    op.drop_column("users", "verified")
