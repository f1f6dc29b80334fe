from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field, PlainSerializer

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
DATE_HELP = "ISO date (YYYY-MM-DD)"


class ContactInfo(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: str = Field(..., min_length=5, max_length=20)


class GuestInfo(ContactInfo):
    country: str = Field(..., min_length=2)


class GuestCounts(BaseModel):
    adults: int = Field(..., ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)


class HotelBookingRequest(BaseModel):
    """Body of POST /hotels/bookings."""

    property_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)
    guest_info: GuestInfo
    check_in_date: date = Field(..., description=DATE_HELP)
    check_out_date: date = Field(..., description=DATE_HELP)
    guests: GuestCounts
    special_requests: Optional[str] = Field(None, max_length=1000)


class DriverInfo(ContactInfo):
    license_number: str = Field(..., min_length=5, max_length=30)
    license_expiry: date
    date_of_birth: date


class CarRentalRequest(BaseModel):
    """Body of POST /cars/rentals."""

    vehicle_id: str = Field(..., min_length=1)
    driver_info: DriverInfo
    pickup_date: date
    pickup_time: time
    return_date: date
    return_time: time
    pickup_location: str = Field(..., min_length=5)
    return_location: str = Field(..., min_length=5)
    airport_pickup: bool = False
    additional_drivers: list[DriverInfo] = Field(default_factory=list)
    special_requests: Optional[str] = Field(None, max_length=500)


class TourParticipants(BaseModel):
    adults: int = Field(0, ge=0)
    children: int = Field(0, ge=0)
    seniors: int = Field(0, ge=0)

    @property
    def total(self) -> int:
        return self.adults + self.children + self.seniors


class TourBookingRequest(BaseModel):
    """Body of POST /tours/bookings."""

    tour_id: str = Field(..., min_length=1)
    tour_date: date
    tour_time: Optional[time] = None
    participants: TourParticipants
    contact_info: ContactInfo
    special_requests: Optional[str] = Field(None, max_length=1000)
    dietary_restrictions: Optional[str] = None
    accessibility_needs: Optional[str] = None


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class TransferLocation(BaseModel):
    address: str = Field(..., min_length=5)
    city: str = Field(..., min_length=2)
    coordinates: Optional[Coordinates] = None
    flight_number: Optional[str] = None
    terminal: Optional[str] = None


class PassengerInfo(ContactInfo):
    number_of_passengers: int = Field(..., ge=1)
    number_of_luggage: int = Field(0, ge=0)


TransferType = Literal["airport_to_city", "city_to_airport", "point_to_point", "hourly"]


class TransferBookingRequest(BaseModel):
    """Body of POST /transfers/bookings."""

    vehicle_id: str = Field(..., min_length=1)
    transfer_type: TransferType
    pickup_location: TransferLocation
    dropoff_location: TransferLocation
    pickup_date: date
    pickup_time: time
    estimated_duration: int = Field(..., ge=1, description="Minutes")
    estimated_distance: Decimal = Field(..., ge=0, description="Kilometres")
    passenger_info: PassengerInfo
    special_requests: Optional[str] = Field(None, max_length=500)
    child_seats_required: int = Field(0, ge=0)
    wheelchair_accessible: bool = False


# Rendered as a JSON number; the exact charge is the booking's amount_minor.
JsonAmount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class PaymentIntentOut(BaseModel):
    client_secret: str = Field(..., serialization_alias="clientSecret")
    amount: JsonAmount
    currency: str


class BookingOut(BaseModel):
    id: str
    vertical: str
    resource_id: str
    user_id: str
    window_start: Any
    window_end: Any
    units: int
    party: dict[str, Any]
    pricing: dict[str, Any]
    amount_minor: int
    currency: str
    payment_intent_id: Optional[str]
    payment_status: str
    status: str
    external_reference: Optional[str] = None
    contact: dict[str, Any]
    details: dict[str, Any]
    special_requests: Optional[str] = None
    confirmed_at: Any = None
    cancelled_at: Any = None
    created_at: Any = None

    model_config = {"from_attributes": True}


class BookingCreatedOut(BaseModel):
    booking: BookingOut
    payment_intent: PaymentIntentOut = Field(..., serialization_alias="paymentIntent")


class AvailabilityOut(BaseModel):
    resource_id: str
    window_start: datetime
    window_end: datetime
    units: int
    available: bool
    units_free: int
    conflicting_booking_ids: list[str]
