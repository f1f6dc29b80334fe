from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import and_, select
from sqlalchemy.engine import Connection

from booking_settlement.models.bookings import Booking, ResourceHold

# Bookings in these states hold their window
BLOCKING_STATUSES: tuple[str, ...] = ("pending", "confirmed")


def get_booking(conn: Connection, booking_id: str) -> Optional[Any]:
    return conn.execute(select(Booking).where(Booking.id == booking_id)).fetchone()


def get_booking_by_payment_intent(conn: Connection, payment_intent_id: str) -> Optional[Any]:
    """
    Look up a booking by its payment-intent id (unique).

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        payment_intent_id (str): Processor payment-intent id.

    Returns:
        Optional[Row]: The booking row or None.
    """
    return conn.execute(
        select(Booking).where(Booking.payment_intent_id == payment_intent_id)
    ).fetchone()


def list_user_bookings(
    conn: Connection, user_id: str, vertical: Optional[str] = None, limit: int = 100
) -> list[Any]:
    stmt = select(Booking).where(Booking.user_id == user_id)
    if vertical:
        stmt = stmt.where(Booking.vertical == vertical)
    stmt = stmt.order_by(Booking.created_at.desc()).limit(limit)
    return list(conn.execute(stmt).fetchall())


def find_overlapping_bookings(
    conn: Connection,
    resource_id: str,
    window_start: datetime,
    window_end: datetime,
    statuses: Iterable[str] = BLOCKING_STATUSES,
) -> list[Any]:
    """
    Bookings on ``resource_id`` whose window overlaps ``[window_start, window_end)``.

    Overlap test: ``existing.start < requested.end AND existing.end > requested.start``.
    """
    stmt = select(Booking.id, Booking.window_start, Booking.window_end, Booking.units).where(
        and_(
            Booking.resource_id == resource_id,
            Booking.status.in_(tuple(statuses)),
            Booking.window_start < window_end,
            Booking.window_end > window_start,
        )
    )
    return list(conn.execute(stmt).fetchall())


def find_overlapping_holds(
    conn: Connection,
    resource_id: str,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> list[Any]:
    """Unexpired holds on ``resource_id`` overlapping the requested window."""
    stmt = select(
        ResourceHold.hold_id, ResourceHold.window_start, ResourceHold.window_end, ResourceHold.units
    ).where(
        and_(
            ResourceHold.resource_id == resource_id,
            ResourceHold.expires_at > now,
            ResourceHold.window_start < window_end,
            ResourceHold.window_end > window_start,
        )
    )
    return list(conn.execute(stmt).fetchall())


def list_abandoned_bookings(conn: Connection, created_before: datetime, limit: int = 500) -> list[Any]:
    """
    Pending bookings created before ``created_before`` whose payment never completed.
    """
    stmt = (
        select(Booking)
        .where(
            and_(
                Booking.status == "pending",
                Booking.payment_status != "completed",
                Booking.created_at < created_before,
            )
        )
        .order_by(Booking.created_at)
        .limit(limit)
    )
    return list(conn.execute(stmt).fetchall())
