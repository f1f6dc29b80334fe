from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from booking_settlement.config import SCHEMA
from booking_settlement.models.base import Base


class LoyaltyAccount(Base):
    """
    ORM model for a user's loyalty account.

    ``points`` is the spendable balance, ``lifetime_points`` only ever grows and
    drives the tier. Both are only changed together with an appended
    PointsTransaction in the same database transaction.
    """

    __tablename__ = "loyalty_accounts"
    __table_args__ = {"schema": SCHEMA}

    user_id = Column(String(64), primary_key=True)
    tier = Column(String(16), nullable=False, default="bronze")
    points = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class PointsTransaction(Base):
    """
    Append-only ledger entry. Rows are never updated except for the
    ``expired`` flag set by the points expiry sweep.

    ``idempotency_key`` is unique: ``"<booking_id>:points-earned"`` guarantees a
    single earn transaction per settled booking.
    """

    __tablename__ = "points_transactions"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    related_booking_id = Column(String(36), nullable=True, index=True)
    idempotency_key = Column(String(128), nullable=True, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    expired = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
