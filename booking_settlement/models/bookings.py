# models/bookings.py

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from booking_settlement.config import SCHEMA
from booking_settlement.models.base import Base, JSONType


class Booking(Base):
    """
    ORM model for a booking in any vertical (hotel, car, tour, transfer).

    The booking id is generated before the payment intent is created and is
    carried in the intent metadata, so the webhook handler can find the booking
    either by ``payment_intent_id`` or by that id.

    ``pricing`` is the itemized snapshot shown to the client (decimal strings).
    ``amount_minor`` is ``pricing.total_price`` in minor currency units and is
    the exact amount charged; neither is recomputed after creation.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_resource_window", "resource_id", "window_start", "window_end"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True)
    vertical = Column(String(16), nullable=False, index=True)
    resource_id = Column(
        String(64), ForeignKey(f"{SCHEMA}.resources.id", ondelete="RESTRICT"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False)
    units = Column(Integer, nullable=False, default=1)
    party = Column(JSONType, nullable=False)
    pricing = Column(JSONType, nullable=False)
    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    payment_intent_id = Column(String(255), nullable=True, unique=True)
    payment_status = Column(String(16), nullable=False, default="pending")
    status = Column(String(16), nullable=False, default="pending", index=True)
    external_reference = Column(String(255), nullable=True)
    contact = Column(JSONType, nullable=False, default=dict)
    details = Column(JSONType, nullable=False, default=dict)
    special_requests = Column(Text, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ResourceHold(Base):
    """
    Short-lived reservation of (resource, window).

    Inserted in the same transaction as the availability check while the
    resource row is locked, and removed in the transaction that persists the
    pending booking. ``hold_id`` is the provisional booking id.
    """

    __tablename__ = "resource_holds"
    __table_args__ = {"schema": SCHEMA}

    hold_id = Column(String(36), primary_key=True)
    resource_id = Column(
        String(64),
        ForeignKey(f"{SCHEMA}.resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False)
    units = Column(Integer, nullable=False, default=1)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
