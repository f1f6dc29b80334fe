from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from booking_settlement.services.pricing import HUNDRED
from booking_settlement.services.referrals import BASIS_POINTS


class ReferralCreate(BaseModel):
    """Body of POST /referrals."""

    partner: str = Field(..., min_length=1, max_length=32)
    booking_id: Optional[str] = Field(None, description="Local booking the partner settles")
    referral_url: Optional[str] = Field(None, max_length=1024)
    details: dict[str, Any] = Field(default_factory=dict)
    commission_rate: Optional[Decimal] = Field(
        None, ge=0, le=1, description="Fraction of the partner total, 0.03 when omitted"
    )


class ReferralOut(BaseModel):
    id: str
    user_id: str
    partner: str
    booking_id: Optional[str] = None
    referral_url: Optional[str] = None
    details: dict[str, Any]
    booking_status: str
    booking_confirmed: bool
    booking_reference: Optional[str] = None
    partner_booking_id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    commission_rate: Decimal
    commission_amount: Decimal
    commission_paid: bool
    confirmed_at: Optional[datetime] = None
    clicked_at: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "ReferralOut":
        total = None
        if row.total_amount_minor is not None:
            total = Decimal(row.total_amount_minor) / HUNDRED
        return cls(
            id=row.id,
            user_id=row.user_id,
            partner=row.partner,
            booking_id=row.booking_id,
            referral_url=row.referral_url,
            details=row.details or {},
            booking_status=row.booking_status,
            booking_confirmed=row.booking_confirmed,
            booking_reference=row.booking_reference,
            partner_booking_id=row.partner_booking_id,
            total_amount=total,
            currency=row.currency,
            commission_rate=Decimal(row.commission_rate_bps) / BASIS_POINTS,
            commission_amount=Decimal(row.commission_minor) / HUNDRED,
            commission_paid=row.commission_paid,
            confirmed_at=row.confirmed_at,
            clicked_at=row.clicked_at,
            created_at=row.created_at,
        )
