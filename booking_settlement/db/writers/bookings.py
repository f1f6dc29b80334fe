"""
Booking and hold writers.

``transition_booking`` is the only function that changes a booking's
``status`` or ``payment_status`` after creation. It is a guarded update: the
row only changes when its current status is one of ``from_statuses``, so two
concurrent deliveries of the same event cannot both apply it.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import and_, delete, insert, update
from sqlalchemy.engine import Connection

from booking_settlement.models.bookings import Booking, ResourceHold
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_booking(conn: Connection, row: dict[str, Any]) -> None:
    now = utc_now()
    conn.execute(insert(Booking).values({**row, "created_at": now, "updated_at": now}))


def transition_booking(
    conn: Connection,
    booking_id: str,
    from_statuses: Iterable[str],
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    **extra: Any,
) -> bool:
    """
    Atomically move a booking to a new status and/or payment status.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Booking id
        from_statuses: Statuses the booking must currently be in
        status: New booking status (unchanged if None)
        payment_status: New payment status (unchanged if None)
        **extra: Other columns to set in the same statement
            (confirmed_at, cancelled_at, external_reference)

    Returns:
        bool: True if this call performed the transition, False if the
        booking was not in one of ``from_statuses`` (already processed)
    """
    values: dict[str, Any] = {"updated_at": utc_now(), **extra}
    if status is not None:
        values["status"] = status
    if payment_status is not None:
        values["payment_status"] = payment_status

    result = conn.execute(
        update(Booking)
        .where(and_(Booking.id == booking_id, Booking.status.in_(tuple(from_statuses))))
        .values(values)
    )
    return result.rowcount == 1


def insert_hold(
    conn: Connection,
    hold_id: str,
    resource_id: str,
    window_start: datetime,
    window_end: datetime,
    units: int,
    expires_at: datetime,
) -> None:
    conn.execute(
        insert(ResourceHold).values(
            hold_id=hold_id,
            resource_id=resource_id,
            window_start=window_start,
            window_end=window_end,
            units=units,
            expires_at=expires_at,
            created_at=utc_now(),
        )
    )


def release_hold(conn: Connection, hold_id: str) -> None:
    conn.execute(delete(ResourceHold).where(ResourceHold.hold_id == hold_id))


def delete_expired_holds(conn: Connection, now: datetime) -> int:
    result = conn.execute(delete(ResourceHold).where(ResourceHold.expires_at <= now))
    if result.rowcount:
        logger.info("expired_holds_deleted", count=result.rowcount)
    return result.rowcount
