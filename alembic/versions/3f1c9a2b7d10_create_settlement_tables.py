"""Create settlement tables

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2025-02-03 09:12:31.118204

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1c9a2b7d10"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "settlement"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "resources",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("vertical", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("parent_id", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("units", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("capacity", postgresql.JSONB(), nullable=False),
        sa.Column("rate_card", postgresql.JSONB(), nullable=False),
        sa.Column("rules", postgresql.JSONB(), nullable=False),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_settlement_resources_vertical", "resources", ["vertical"], schema=SCHEMA)
    op.create_index("ix_settlement_resources_parent_id", "resources", ["parent_id"], schema=SCHEMA)

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("vertical", sa.String(16), nullable=False),
        sa.Column(
            "resource_id",
            sa.String(64),
            sa.ForeignKey(f"{SCHEMA}.resources.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("window_start", sa.DateTime(), nullable=False),
        sa.Column("window_end", sa.DateTime(), nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("party", postgresql.JSONB(), nullable=False),
        sa.Column("pricing", postgresql.JSONB(), nullable=False),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), nullable=True, unique=True),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("external_reference", sa.String(255), nullable=True),
        sa.Column("contact", postgresql.JSONB(), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_settlement_bookings_vertical", "bookings", ["vertical"], schema=SCHEMA)
    op.create_index("ix_settlement_bookings_user_id", "bookings", ["user_id"], schema=SCHEMA)
    op.create_index("ix_settlement_bookings_status", "bookings", ["status"], schema=SCHEMA)
    op.create_index(
        "ix_bookings_resource_window",
        "bookings",
        ["resource_id", "window_start", "window_end"],
        schema=SCHEMA,
    )

    op.create_table(
        "resource_holds",
        sa.Column("hold_id", sa.String(36), primary_key=True),
        sa.Column(
            "resource_id",
            sa.String(64),
            sa.ForeignKey(f"{SCHEMA}.resources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("window_start", sa.DateTime(), nullable=False),
        sa.Column("window_end", sa.DateTime(), nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_settlement_resource_holds_resource_id", "resource_holds", ["resource_id"], schema=SCHEMA
    )

    op.create_table(
        "loyalty_accounts",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("tier", sa.String(16), nullable=False, server_default="bronze"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("related_booking_id", sa.String(36), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_settlement_points_transactions_user_id", "points_transactions", ["user_id"], schema=SCHEMA
    )
    op.create_index(
        "ix_settlement_points_transactions_related_booking_id",
        "points_transactions",
        ["related_booking_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "webhook_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_settlement_webhook_events_booking_id", "webhook_events", ["booking_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("webhook_events", schema=SCHEMA)
    op.drop_table("points_transactions", schema=SCHEMA)
    op.drop_table("loyalty_accounts", schema=SCHEMA)
    op.drop_table("resource_holds", schema=SCHEMA)
    op.drop_table("bookings", schema=SCHEMA)
    op.drop_table("resources", schema=SCHEMA)
