"""
Partner referrals and their commission.

A referral is recorded when a user is sent to a travel partner to book there.
The partner reports the outcome through signed webhooks (see
``services/settlement.py``), which move the referral through::

    pending   --booking.confirmed-->  confirmed  (commission = total * rate)
    pending   --booking.cancelled-->  cancelled  (commission zeroed)
    confirmed --booking.cancelled-->  cancelled  (commission zeroed)
    any       --booking.refunded--->  refunded   (commission zeroed)

Rates are stored in basis points and amounts in minor units, so commission is
computed exactly: ``round_half_up(total_minor * bps / 10000)``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_settlement.db.readers.bookings import get_booking
from booking_settlement.db.readers.referrals import get_referral as read_referral
from booking_settlement.db.readers.referrals import list_user_referrals
from booking_settlement.db.writers.referrals import insert_referral, transition_referral
from booking_settlement.errors import NotFoundError
from booking_settlement.metrics import referral_commission
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("0.03")
BASIS_POINTS = Decimal("10000")

# Statuses a partner event may still change; refunded is final.
OPEN_STATUSES = ("pending", "confirmed", "cancelled")


def rate_to_bps(rate: Decimal) -> int:
    return int((rate * BASIS_POINTS).to_integral_value(rounding=ROUND_HALF_UP))


def commission_for(total_minor: int, rate_bps: int) -> int:
    """Commission in minor units for a partner booking total, rounded half up."""
    commission = Decimal(total_minor) * Decimal(rate_bps) / BASIS_POINTS
    return int(commission.to_integral_value(rounding=ROUND_HALF_UP))


def create_referral(
    engine: Engine,
    user_id: str,
    partner: str,
    booking_id: Optional[str] = None,
    referral_url: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    commission_rate: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Any:
    """
    Record a referral to a travel partner.

    Args:
        engine: SQLAlchemy engine
        user_id: Referred user
        partner: Partner name, e.g. ``trip.com``
        booking_id: Local booking the partner's events should also settle
        referral_url: Tracking URL the user was sent to
        details: What was offered (route, dates, quoted price, ...)
        commission_rate: Fraction of the partner total, 0.03 when omitted
        now: Clock override for tests

    Returns:
        Row: the stored referral

    Raises:
        NotFoundError: ``booking_id`` does not name one of the user's bookings
    """
    referral_id = str(uuid.uuid4())
    rate = DEFAULT_COMMISSION_RATE if commission_rate is None else commission_rate

    with engine.begin() as conn:
        if booking_id is not None:
            booking = get_booking(conn, booking_id)
            if booking is None or booking.user_id != user_id:
                raise NotFoundError(
                    f"Booking {booking_id} not found", details={"booking_id": booking_id}
                )

        insert_referral(
            conn,
            {
                "id": referral_id,
                "user_id": user_id,
                "partner": partner,
                "booking_id": booking_id,
                "referral_url": referral_url,
                "details": details or {},
                "booking_status": "pending",
                "booking_confirmed": False,
                "commission_rate_bps": rate_to_bps(rate),
                "commission_minor": 0,
                "commission_paid": False,
                "clicked_at": now or utc_now(),
            },
        )
        referral = read_referral(conn, referral_id)

    logger.info(
        "referral_created",
        referral_id=referral_id,
        user_id=user_id,
        partner=partner,
        booking_id=booking_id,
    )
    return referral


def get_referral(engine: Engine, referral_id: str, user_id: Optional[str] = None) -> Any:
    with engine.connect() as conn:
        referral = read_referral(conn, referral_id)
    if referral is None or (user_id is not None and referral.user_id != user_id):
        raise NotFoundError(
            f"Referral {referral_id} not found", details={"referral_id": referral_id}
        )
    return referral


def list_referrals(engine: Engine, user_id: str, booking_status: Optional[str] = None) -> list[Any]:
    with engine.connect() as conn:
        return list_user_referrals(conn, user_id, booking_status)


# =============================================================================
# Partner transitions (called inside the settlement transaction)
# =============================================================================


def confirm_referral(
    conn: Connection,
    referral: Any,
    booking_reference: str,
    partner_booking_id: str,
    total_minor: int,
    currency: str,
) -> str:
    """
    Mark the partner booking confirmed and record its commission.

    A confirmation repeating the reference already stored is a no-op.
    """
    if referral.booking_confirmed and referral.booking_reference == booking_reference:
        logger.info(
            "referral_already_confirmed",
            referral_id=referral.id,
            booking_reference=booking_reference,
        )
        return "already_confirmed"

    commission = commission_for(total_minor, referral.commission_rate_bps)
    won = transition_referral(
        conn,
        referral.id,
        OPEN_STATUSES,
        booking_status="confirmed",
        booking_confirmed=True,
        booking_reference=booking_reference,
        partner_booking_id=partner_booking_id,
        total_amount_minor=total_minor,
        currency=currency,
        commission_minor=commission,
        confirmed_at=utc_now(),
    )
    if not won:
        return "ignored"

    referral_commission.labels(currency=currency).inc(commission)
    logger.info(
        "referral_confirmed",
        referral_id=referral.id,
        booking_reference=booking_reference,
        total_minor=total_minor,
        commission_minor=commission,
        currency=currency,
    )
    return "confirmed"


def cancel_referral(conn: Connection, referral: Any) -> str:
    won = transition_referral(
        conn,
        referral.id,
        ("pending", "confirmed"),
        booking_status="cancelled",
        booking_confirmed=False,
        commission_minor=0,
        commission_paid=False,
    )
    if not won:
        return "ignored"
    logger.info("referral_cancelled", referral_id=referral.id, previous_status=referral.booking_status)
    return "cancelled"


def refund_referral(conn: Connection, referral: Any) -> str:
    won = transition_referral(
        conn,
        referral.id,
        OPEN_STATUSES,
        booking_status="refunded",
        commission_minor=0,
        commission_paid=False,
    )
    if not won:
        return "ignored"
    logger.info("referral_refunded", referral_id=referral.id, previous_status=referral.booking_status)
    return "refunded"
