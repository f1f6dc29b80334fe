"""Resource availability lookup."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Engine

from booking_settlement.dependencies import get_db_engine
from booking_settlement.schemas.bookings import AvailabilityOut
from booking_settlement.services.availability import check_availability

router = APIRouter()


@router.get("/resources/{resource_id}/availability", response_model=AvailabilityOut)
def get_availability(
    resource_id: str,
    start: datetime = Query(..., description="Window start (inclusive)"),
    end: datetime = Query(..., description="Window end (exclusive)"),
    units: int = Query(1, ge=1),
    engine: Engine = Depends(get_db_engine),
) -> AvailabilityOut:
    """
    Report whether a resource is free for ``[start, end)``.

    Read-only: nothing is held, so a later booking request can still conflict.
    """
    window_start = start.replace(tzinfo=None)
    window_end = end.replace(tzinfo=None)
    with engine.connect() as conn:
        result = check_availability(conn, resource_id, window_start, window_end, units)

    return AvailabilityOut(
        resource_id=resource_id,
        window_start=window_start,
        window_end=window_end,
        units=units,
        available=result.available,
        units_free=result.units_free,
        conflicting_booking_ids=result.conflicting_booking_ids,
    )
