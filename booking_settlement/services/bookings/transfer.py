from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from booking_settlement.config import TRANSFER_BUFFER_MINUTES
from booking_settlement.errors import PolicyViolationError
from booking_settlement.schemas.bookings import TransferBookingRequest
from booking_settlement.schemas.resources import TransferCapacity, TransferRateCard
from booking_settlement.services.bookings.base import BookingHandler, require_not_past
from booking_settlement.services.pricing import PricingBreakdown, price_transfer
from booking_settlement.utils.datetime import at_time

AIRPORT_TRANSFER_TYPES = ("airport_to_city", "city_to_airport")


class TransferBookingHandler(BookingHandler):
    """
    Point-to-point transfers. A vehicle is blocked from pickup for the trip
    duration, never less than ``TRANSFER_BUFFER_MINUTES``.
    """

    vertical = "transfer"
    request_model = TransferBookingRequest

    def resource_id(self, request: TransferBookingRequest) -> str:
        return request.vehicle_id

    def _pickup(self, request: TransferBookingRequest) -> datetime:
        return at_time(request.pickup_date, request.pickup_time)

    def validate(self, request: TransferBookingRequest, now: datetime) -> None:
        require_not_past("pickup_date", self._pickup(request), now)

    def window(self, request: TransferBookingRequest, resource: Any) -> tuple[datetime, datetime]:
        pickup = self._pickup(request)
        blocked = max(request.estimated_duration, TRANSFER_BUFFER_MINUTES)
        return pickup, pickup + timedelta(minutes=blocked)

    def check_policy(
        self,
        request: TransferBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> None:
        capacity = TransferCapacity.model_validate(resource.capacity)
        passengers = request.passenger_info
        if passengers.number_of_passengers > capacity.passengers:
            raise PolicyViolationError(
                "Vehicle passenger capacity exceeded",
                details={
                    "max_passengers": capacity.passengers,
                    "passengers": passengers.number_of_passengers,
                },
            )
        if passengers.number_of_luggage > capacity.luggage:
            raise PolicyViolationError(
                "Vehicle luggage capacity exceeded",
                details={"max_luggage": capacity.luggage, "luggage": passengers.number_of_luggage},
            )

    def is_airport_transfer(self, request: TransferBookingRequest) -> bool:
        return (
            request.transfer_type in AIRPORT_TRANSFER_TYPES
            or bool(request.pickup_location.flight_number)
            or bool(request.dropoff_location.flight_number)
        )

    def price(
        self,
        request: TransferBookingRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> PricingBreakdown:
        return price_transfer(
            TransferRateCard.model_validate(resource.rate_card),
            distance_km=request.estimated_distance,
            pickup=window_start,
            airport_transfer=self.is_airport_transfer(request),
        )

    def party(self, request: TransferBookingRequest) -> dict[str, Any]:
        return {
            "passengers": request.passenger_info.number_of_passengers,
            "luggage": request.passenger_info.number_of_luggage,
        }

    def contact(self, request: TransferBookingRequest) -> dict[str, Any]:
        return request.passenger_info.model_dump(
            include={"first_name", "last_name", "email", "phone"}
        )

    def details(self, request: TransferBookingRequest) -> dict[str, Any]:
        return {
            "transfer_type": request.transfer_type,
            "pickup_location": request.pickup_location.model_dump(mode="json"),
            "dropoff_location": request.dropoff_location.model_dump(mode="json"),
            "estimated_duration": request.estimated_duration,
            "estimated_distance": str(request.estimated_distance),
            "child_seats_required": request.child_seats_required,
            "wheelchair_accessible": request.wheelchair_accessible,
        }
