"""Partner referral tracking routes."""

from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from booking_settlement.dependencies import get_db_engine, get_user_id
from booking_settlement.schemas.referrals import ReferralCreate, ReferralOut
from booking_settlement.services import referrals as referral_service

logger = structlog.get_logger(__name__)
router = APIRouter()

ReferralStatus = Literal["pending", "confirmed", "cancelled", "refunded"]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ReferralOut)
def create_referral(
    payload: ReferralCreate,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
) -> ReferralOut:
    """
    Record that the caller is being sent to a travel partner.

    The returned ``id`` must be passed to the partner as the referral id; the
    partner echoes it back as ``referralId`` on its booking webhooks.
    """
    row = referral_service.create_referral(
        engine,
        user_id,
        payload.partner,
        booking_id=payload.booking_id,
        referral_url=payload.referral_url,
        details=payload.details,
        commission_rate=payload.commission_rate,
    )
    return ReferralOut.from_row(row)


@router.get("", response_model=list[ReferralOut])
def list_referrals(
    booking_status: Optional[ReferralStatus] = Query(None),
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
) -> list[ReferralOut]:
    rows = referral_service.list_referrals(engine, user_id, booking_status)
    return [ReferralOut.from_row(row) for row in rows]


@router.get("/{referral_id}", response_model=ReferralOut)
def get_referral(
    referral_id: str,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
) -> ReferralOut:
    return ReferralOut.from_row(referral_service.get_referral(engine, referral_id, user_id))
