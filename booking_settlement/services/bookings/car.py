from __future__ import annotations

from datetime import datetime
from typing import Any

from booking_settlement.config import MIN_DRIVER_AGE
from booking_settlement.errors import PolicyViolationError, ValidationError
from booking_settlement.schemas.bookings import CarRentalRequest, DriverInfo
from booking_settlement.schemas.resources import CarCapacity, CarRateCard
from booking_settlement.services.bookings.base import (
    BookingHandler,
    age_on,
    check_stay_limits,
    require_not_past,
    rules_for,
)
from booking_settlement.services.pricing import PricingBreakdown, price_car_rental
from booking_settlement.utils.datetime import at_time, whole_days


class CarRentalHandler(BookingHandler):
    """
    Vehicle rentals. The window runs from pickup date+time to return
    date+time and is billed in started days.
    """

    vertical = "car"
    request_model = CarRentalRequest

    def resource_id(self, request: CarRentalRequest) -> str:
        return request.vehicle_id

    def _pickup(self, request: CarRentalRequest) -> datetime:
        return at_time(request.pickup_date, request.pickup_time)

    def _return(self, request: CarRentalRequest) -> datetime:
        return at_time(request.return_date, request.return_time)

    def _check_driver(self, field: str, driver: DriverInfo, request: CarRentalRequest) -> None:
        if age_on(driver.date_of_birth, request.pickup_date) < MIN_DRIVER_AGE:
            raise ValidationError(
                f"Driver must be at least {MIN_DRIVER_AGE} years old",
                details={f"{field}.date_of_birth": f"driver must be at least {MIN_DRIVER_AGE}"},
            )
        if driver.license_expiry < request.return_date:
            raise ValidationError(
                "Driver licence expires before the return date",
                details={f"{field}.license_expiry": "must be valid through return_date"},
            )

    def validate(self, request: CarRentalRequest, now: datetime) -> None:
        pickup = self._pickup(request)
        require_not_past("pickup_date", pickup, now)
        if self._return(request) <= pickup:
            raise ValidationError(
                "Return must be after pickup",
                details={"return_date": "must be after pickup_date"},
            )
        self._check_driver("driver_info", request.driver_info, request)
        for index, driver in enumerate(request.additional_drivers):
            self._check_driver(f"additional_drivers.{index}", driver, request)

    def window(self, request: CarRentalRequest, resource: Any) -> tuple[datetime, datetime]:
        return self._pickup(request), self._return(request)

    def check_policy(
        self,
        request: CarRentalRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> None:
        capacity = CarCapacity.model_validate(resource.capacity)
        if len(request.additional_drivers) > capacity.max_additional_drivers:
            raise PolicyViolationError(
                "Too many additional drivers",
                details={
                    "max_additional_drivers": capacity.max_additional_drivers,
                    "additional_drivers": len(request.additional_drivers),
                },
            )
        check_stay_limits(rules_for(resource), whole_days(window_start, window_end), "days")

    def price(
        self,
        request: CarRentalRequest,
        resource: Any,
        window_start: datetime,
        window_end: datetime,
    ) -> PricingBreakdown:
        return price_car_rental(
            CarRateCard.model_validate(resource.rate_card),
            days=whole_days(window_start, window_end),
            pickup=window_start,
            airport_pickup=request.airport_pickup,
        )

    def party(self, request: CarRentalRequest) -> dict[str, Any]:
        return {"drivers": 1 + len(request.additional_drivers)}

    def contact(self, request: CarRentalRequest) -> dict[str, Any]:
        return request.driver_info.model_dump(mode="json")

    def details(self, request: CarRentalRequest) -> dict[str, Any]:
        return {
            "pickup_location": request.pickup_location,
            "return_location": request.return_location,
            "airport_pickup": request.airport_pickup,
            "additional_drivers": [
                driver.model_dump(mode="json") for driver in request.additional_drivers
            ],
        }
