from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from booking_settlement.errors import PolicyViolationError, ValidationError
from booking_settlement.schemas.bookings import TourBookingRequest
from booking_settlement.schemas.resources import TourCapacity, TourRateCard
from booking_settlement.services.bookings.base import (
    BookingHandler,
    require_not_past_date,
    rules_for,
)
from booking_settlement.services.pricing import PricingBreakdown, price_tour
from booking_settlement.utils.datetime import at_time, start_of_day


class TourBookingHandler(BookingHandler):
    """
    Tour bookings. A tour resource's ``units`` is its maximum group size and
    each booking takes one unit per participant, so several parties can share
    a departure until it is full.
    """

    vertical = "tour"
    request_model = TourBookingRequest

    def resource_id(self, request: TourBookingRequest) -> str:
        return request.tour_id

    def validate(self, request: TourBookingRequest, now: datetime) -> None:
        if request.participants.total < 1:
            raise ValidationError(
                "At least one participant is required",
                details={"participants": "at least one participant is required"},
            )
        require_not_past_date("tour_date", request.tour_date, now)

    def window(self, request: TourBookingRequest, resource: Any) -> tuple[datetime, datetime]:
        if request.tour_time is None:
            start = start_of_day(request.tour_date)
            return start, start + timedelta(days=1)

        start = at_time(request.tour_date, request.tour_time)
        duration = rules_for(resource).duration_minutes
        if duration is None:
            return start, start_of_day(request.tour_date) + timedelta(days=1)
        return start, start + timedelta(minutes=duration)

    def units(self, request: TourBookingRequest) -> int:
        return request.participants.total

    def check_policy(
        self,
        request: TourBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> None:
        capacity = TourCapacity.model_validate(resource.capacity)
        total = request.participants.total
        if total < capacity.min_participants:
            raise PolicyViolationError(
                f"Minimum {capacity.min_participants} participants required",
                details={"min_participants": capacity.min_participants, "participants": total},
            )
        if total > resource.units:
            raise PolicyViolationError(
                f"Maximum {resource.units} participants allowed",
                details={"max_participants": resource.units, "participants": total},
            )

    def price(
        self,
        request: TourBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> PricingBreakdown:
        participants = request.participants
        return price_tour(
            TourRateCard.model_validate(resource.rate_card),
            adults=participants.adults,
            children=participants.children,
            seniors=participants.seniors,
        )

    def party(self, request: TourBookingRequest) -> dict[str, Any]:
        return request.participants.model_dump()

    def contact(self, request: TourBookingRequest) -> dict[str, Any]:
        return request.contact_info.model_dump()

    def details(self, request: TourBookingRequest) -> dict[str, Any]:
        return {
            "tour_date": request.tour_date.isoformat(),
            "tour_time": request.tour_time.isoformat() if request.tour_time else None,
            "dietary_restrictions": request.dietary_restrictions,
            "accessibility_needs": request.accessibility_needs,
        }
