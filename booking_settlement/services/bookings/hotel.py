from __future__ import annotations

from datetime import datetime
from typing import Any

from booking_settlement.errors import NotFoundError, PolicyViolationError, ValidationError
from booking_settlement.schemas.bookings import HotelBookingRequest
from booking_settlement.schemas.resources import HotelCapacity, HotelRateCard
from booking_settlement.services.bookings.base import (
    BookingHandler,
    check_stay_limits,
    require_not_past_date,
    rules_for,
)
from booking_settlement.services.pricing import PricingBreakdown, price_hotel_stay
from booking_settlement.utils.datetime import start_of_day


class HotelBookingHandler(BookingHandler):
    """Room bookings. The window runs from check-in day to check-out day, midnight to midnight."""

    vertical = "hotel"
    request_model = HotelBookingRequest

    def resource_id(self, request: HotelBookingRequest) -> str:
        return request.room_id

    def validate(self, request: HotelBookingRequest, now: datetime) -> None:
        require_not_past_date("check_in_date", request.check_in_date, now)
        if request.check_out_date <= request.check_in_date:
            raise ValidationError(
                "Check-out must be after check-in",
                details={"check_out_date": "must be after check_in_date"},
            )

    def check_resource(self, request: HotelBookingRequest, resource: Any) -> None:
        if resource.parent_id != request.property_id:
            raise NotFoundError(
                f"Room {request.room_id} not found in property {request.property_id}",
                details={"property_id": request.property_id, "room_id": request.room_id},
            )

    def window(self, request: HotelBookingRequest, resource: Any) -> tuple[datetime, datetime]:
        return start_of_day(request.check_in_date), start_of_day(request.check_out_date)

    def check_policy(
        self,
        request: HotelBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> None:
        capacity = HotelCapacity.model_validate(resource.capacity)
        guests = request.guests
        if guests.adults > capacity.adults or guests.children > capacity.children:
            raise PolicyViolationError(
                "Room capacity exceeded",
                details={
                    "max_adults": capacity.adults,
                    "max_children": capacity.children,
                    "adults": guests.adults,
                    "children": guests.children,
                },
            )
        check_stay_limits(rules_for(resource), (window_end - window_start).days, "nights")

    def price(
        self,
        request: HotelBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> PricingBreakdown:
        capacity = HotelCapacity.model_validate(resource.capacity)
        return price_hotel_stay(
            HotelRateCard.model_validate(resource.rate_card),
            nights=(window_end - window_start).days,
            adults=request.guests.adults,
            children=request.guests.children,
            included_guests=capacity.adults,
        )

    def party(self, request: HotelBookingRequest) -> dict[str, Any]:
        return request.guests.model_dump()

    def contact(self, request: HotelBookingRequest) -> dict[str, Any]:
        return request.guest_info.model_dump()

    def details(self, request: HotelBookingRequest) -> dict[str, Any]:
        return {
            "property_id": request.property_id,
            "room_id": request.room_id,
            "check_in_date": request.check_in_date.isoformat(),
            "check_out_date": request.check_out_date.isoformat(),
            "nights": (request.check_out_date - request.check_in_date).days,
        }
