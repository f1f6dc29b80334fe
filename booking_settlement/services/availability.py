"""
Availability checker and resource holds.

A window is the half-open interval ``[window_start, window_end)``. Two windows
overlap when ``a.start < b.end and a.end > b.start``, so back-to-back bookings
(check-out day == next check-in day) never clash.

``check_availability`` is read-only. ``acquire_hold`` repeats the same check
while the resource row is locked and inserts a hold before the lock is
released, which is what stops two concurrent requests from both seeing a free
window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_settlement.config import HOLD_TTL_MINUTES
from booking_settlement.db.readers.bookings import (
    find_overlapping_bookings,
    find_overlapping_holds,
)
from booking_settlement.db.readers.resources import get_resource
from booking_settlement.db.writers.bookings import insert_hold, release_hold
from booking_settlement.errors import (
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from booking_settlement.schemas.resources import BookingRules
from booking_settlement.utils.datetime import start_of_day, utc_now

logger = structlog.get_logger(__name__)

# Verticals booked by the calendar day: a window from midnight to midnight.
DATE_GRANULAR_VERTICALS = ("hotel", "tour")


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflicting_booking_ids: list[str] = field(default_factory=list)
    conflicting_windows: list[dict[str, str]] = field(default_factory=list)
    units_free: int = 0


def validate_window(
    resource: Any,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> None:
    """
    Check window ordering and the resource's advance-booking limits.

    Whole-day windows of date-granular verticals are measured from the start
    of today, so a check-in today is allowed when ``min_advance_hours`` is 0.

    Raises:
        ValidationError: window_end is not after window_start
        PolicyViolationError: window starts too soon or too far ahead
    """
    if window_end <= window_start:
        raise ValidationError(
            "Window end must be after window start",
            details={"window_end": "must be after window_start"},
        )

    rules = BookingRules.model_validate(resource.rules or {})
    current = (now or utc_now()).replace(tzinfo=None)
    reference = current
    if _is_whole_day_window(resource, window_start, window_end):
        reference = start_of_day(current.date())

    if window_start < reference + timedelta(hours=rules.min_advance_hours):
        raise PolicyViolationError(
            "Booking starts too soon",
            details={"min_advance_hours": rules.min_advance_hours},
        )
    if rules.max_advance_days is not None and window_start > current + timedelta(
        days=rules.max_advance_days
    ):
        raise PolicyViolationError(
            "Booking starts too far in advance",
            details={"max_advance_days": rules.max_advance_days},
        )


def _is_whole_day_window(resource: Any, window_start: datetime, window_end: datetime) -> bool:
    return (
        resource.vertical in DATE_GRANULAR_VERTICALS
        and window_start.time() == time.min
        and window_end.time() == time.min
    )


def _scan(
    conn: Connection,
    resource: Any,
    window_start: datetime,
    window_end: datetime,
    units: int,
    now: datetime,
) -> AvailabilityResult:
    bookings = find_overlapping_bookings(conn, resource.id, window_start, window_end)
    holds = find_overlapping_holds(conn, resource.id, window_start, window_end, now)

    taken = sum(row.units for row in bookings) + sum(row.units for row in holds)
    units_free = max(0, resource.units - taken)

    return AvailabilityResult(
        available=taken + units <= resource.units,
        conflicting_booking_ids=[row.id for row in bookings],
        conflicting_windows=[
            {"start": row.window_start.isoformat(), "end": row.window_end.isoformat()}
            for row in [*bookings, *holds]
        ],
        units_free=units_free,
    )


def check_availability(
    conn: Connection,
    resource_id: str,
    window_start: datetime,
    window_end: datetime,
    units: int = 1,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    """
    Report whether ``units`` of a resource are free for the whole window.

    Pending and confirmed bookings count against the resource, as do holds
    that have not expired. Cancelled and refunded bookings do not.

    Args:
        conn: Active database connection
        resource_id: Resource id
        window_start: Inclusive start (naive wall-clock)
        window_end: Exclusive end
        units: Units requested (rooms, seats in a tour group, ...)
        now: Clock override for tests

    Returns:
        AvailabilityResult: availability plus the conflicting bookings

    Raises:
        NotFoundError: resource does not exist
        ValidationError: empty or inverted window
        PolicyViolationError: window violates advance-booking rules
    """
    resource = get_resource(conn, resource_id)
    if resource is None:
        raise NotFoundError(f"Resource {resource_id} not found", details={"resource_id": resource_id})

    validate_window(resource, window_start, window_end, now)
    return _scan(conn, resource, window_start, window_end, units, now or utc_now())


def acquire_hold(
    engine: Engine,
    hold_id: str,
    resource_id: str,
    window_start: datetime,
    window_end: datetime,
    units: int = 1,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    """
    Atomically check availability and reserve the window.

    The resource row is locked (``SELECT ... FOR UPDATE``) for the duration of
    the transaction, so concurrent callers for the same resource serialize
    here. The hold expires after ``HOLD_TTL_MINUTES``.

    Raises:
        ConflictError: window not available; details list the clashing windows
    """
    current = now or utc_now()

    with engine.begin() as conn:
        resource = get_resource(conn, resource_id, lock=True)
        if resource is None:
            raise NotFoundError(
                f"Resource {resource_id} not found", details={"resource_id": resource_id}
            )

        result = _scan(conn, resource, window_start, window_end, units, current)
        if not result.available:
            logger.info(
                "availability_conflict",
                resource_id=resource_id,
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
                conflicts=len(result.conflicting_windows),
            )
            raise ConflictError(
                "Requested window is not available",
                details={
                    "resource_id": resource_id,
                    "conflicting_windows": result.conflicting_windows,
                },
            )

        insert_hold(
            conn,
            hold_id=hold_id,
            resource_id=resource_id,
            window_start=window_start,
            window_end=window_end,
            units=units,
            expires_at=current + timedelta(minutes=HOLD_TTL_MINUTES),
        )

    logger.debug("hold_acquired", hold_id=hold_id, resource_id=resource_id)
    return result


def drop_hold(engine: Engine, hold_id: str) -> None:
    """Release a hold outside any booking transaction (gateway failure path)."""
    with engine.begin() as conn:
        release_hold(conn, hold_id)
    logger.debug("hold_released", hold_id=hold_id)
