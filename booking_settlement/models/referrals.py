from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from booking_settlement.config import SCHEMA
from booking_settlement.models.base import Base, JSONType


class PartnerReferral(Base):
    """
    A user sent to a travel partner to book there, tracked for commission.

    The referral id travels to the partner and comes back on its webhooks as
    ``referralId``; ``partner_booking_id`` is the partner's own booking id.
    Commission is ``total_amount_minor * commission_rate_bps / 10000`` once the
    partner confirms, and is zeroed again on cancellation or refund.

    ``booking_id`` optionally links the referral to a local booking that the
    partner's events also settle.
    """

    __tablename__ = "partner_referrals"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    partner = Column(String(32), nullable=False)
    booking_id = Column(String(36), nullable=True, index=True)
    referral_url = Column(String(1024), nullable=True)
    details = Column(JSONType, nullable=False, default=dict)
    booking_status = Column(String(16), nullable=False, default="pending", index=True)
    booking_confirmed = Column(Boolean, nullable=False, default=False)
    booking_reference = Column(String(255), nullable=True)
    partner_booking_id = Column(String(255), nullable=True)
    total_amount_minor = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=True)
    commission_rate_bps = Column(Integer, nullable=False, default=300)
    commission_minor = Column(Integer, nullable=False, default=0)
    commission_paid = Column(Boolean, nullable=False, default=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
