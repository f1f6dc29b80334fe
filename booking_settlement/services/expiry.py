"""
Reaper for abandoned pending bookings and expired holds.

A booking whose payment never completed keeps its window blocked until this
sweep cancels it. The payment intent is cancelled at the processor first; if
that fails (for example because the payment just succeeded) the booking is
left untouched and the next sweep, or the settlement webhook, decides its
fate.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from booking_settlement.config import PENDING_BOOKING_TTL_MINUTES
from booking_settlement.db.readers.bookings import list_abandoned_bookings
from booking_settlement.db.writers.bookings import delete_expired_holds, transition_booking
from booking_settlement.errors import PaymentGatewayError
from booking_settlement.metrics import bookings_expired
from booking_settlement.services.payments import PaymentGateway
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def expire_abandoned_bookings(
    engine: Engine,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
    ttl_minutes: int = PENDING_BOOKING_TTL_MINUTES,
) -> dict[str, int]:
    """
    Cancel pending bookings older than ``ttl_minutes`` and delete expired holds.

    Args:
        engine: SQLAlchemy engine
        gateway: Payment gateway used to cancel the booking's intent
        now: Clock override for tests
        ttl_minutes: Age after which an unpaid pending booking is abandoned

    Returns:
        dict: counts of cancelled and skipped bookings and deleted holds
    """
    current = now or utc_now()
    cutoff = current - timedelta(minutes=ttl_minutes)

    with engine.connect() as conn:
        abandoned = list_abandoned_bookings(conn, cutoff)

    cancelled = 0
    skipped = 0

    for booking in abandoned:
        if booking.payment_intent_id:
            try:
                gateway.cancel_payment_intent(booking.payment_intent_id)
            except PaymentGatewayError:
                skipped += 1
                logger.warning(
                    "booking_expiry_skipped",
                    booking_id=booking.id,
                    payment_intent_id=booking.payment_intent_id,
                    reason="intent_cancel_failed",
                )
                continue

        with engine.begin() as conn:
            won = transition_booking(
                conn,
                booking.id,
                ("pending",),
                status="cancelled",
                cancelled_at=current,
            )

        if won:
            cancelled += 1
            bookings_expired.inc()
            logger.info(
                "booking_expired",
                booking_id=booking.id,
                resource_id=booking.resource_id,
                user_id=booking.user_id,
                created_at=booking.created_at.isoformat() if booking.created_at else None,
            )

    with engine.begin() as conn:
        holds_deleted = delete_expired_holds(conn, current)

    logger.info(
        "booking_expiry_completed",
        cancelled=cancelled,
        skipped=skipped,
        holds_deleted=holds_deleted,
    )
    return {"cancelled": cancelled, "skipped": skipped, "holds_deleted": holds_deleted}
