"""Create partner referrals

Revision ID: 8c4e2a7f5b13
Revises: 3f1c9a2b7d10
Create Date: 2025-03-11 14:27:05.402117

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "8c4e2a7f5b13"
down_revision = "3f1c9a2b7d10"
branch_labels = None
depends_on = None

SCHEMA = "settlement"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "partner_referrals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("partner", sa.String(32), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("referral_url", sa.String(1024), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        sa.Column("booking_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("booking_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("booking_reference", sa.String(255), nullable=True),
        sa.Column("partner_booking_id", sa.String(255), nullable=True),
        sa.Column("total_amount_minor", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("commission_rate_bps", sa.Integer(), nullable=False, server_default="300"),
        sa.Column("commission_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("commission_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_settlement_partner_referrals_user_id", "partner_referrals", ["user_id"], schema=SCHEMA
    )
    op.create_index(
        "ix_settlement_partner_referrals_booking_id",
        "partner_referrals",
        ["booking_id"],
        schema=SCHEMA,
    )
    op.create_index(
        "ix_settlement_partner_referrals_booking_status",
        "partner_referrals",
        ["booking_status"],
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("partner_referrals", schema=SCHEMA)
