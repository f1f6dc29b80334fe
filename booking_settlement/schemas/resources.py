"""
Typed views over the JSON documents stored on a Resource row.

Rate cards hold money as Decimal; JSON numbers and decimal strings are both
accepted so seed files can use either.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

Vertical = Literal["hotel", "car", "tour", "transfer"]
VERTICALS: tuple[str, ...] = ("hotel", "car", "tour", "transfer")

# Stripe charges these in whole units or thousandths; prices here are kept in cents.
NON_DECIMAL_CURRENCIES = frozenset(
    "BIF CLP DJF GNF JPY KMF KRW MGA PYG RWF UGX VND VUV XAF XOF XPF BHD JOD KWD OMR TND".split()
)


def check_currency(value: str) -> str:
    """Normalize an ISO 4217 code and reject currencies without two-decimal minor units."""
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError("currency must be a three-letter ISO 4217 code")
    if code in NON_DECIMAL_CURRENCIES:
        raise ValueError(f"{code} does not use two-decimal minor units")
    return code


Currency = Annotated[str, AfterValidator(check_currency)]


class BookingRules(BaseModel):
    """Duration and advance-booking limits shared by all verticals."""

    minimum_stay: int = Field(1, ge=1, description="Minimum nights (hotel) or days (car)")
    maximum_stay: Optional[int] = Field(None, ge=1)
    min_advance_hours: int = Field(0, ge=0)
    max_advance_days: Optional[int] = Field(None, ge=1)
    duration_minutes: Optional[int] = Field(None, ge=1, description="Tour length")


class HotelCapacity(BaseModel):
    adults: int = Field(..., ge=1)
    children: int = Field(0, ge=0)


class HotelRateCard(BaseModel):
    base_price: Decimal = Field(..., ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, description="Percent, 10 means 10%")
    cleaning_fee: Decimal = Field(Decimal("0"), ge=0)
    extra_guest_fee: Decimal = Field(Decimal("0"), ge=0, description="Per extra guest per night")
    included_guests: Optional[int] = Field(None, ge=1)
    currency: Currency = "USD"


class CarCapacity(BaseModel):
    seats: int = Field(5, ge=1)
    max_additional_drivers: int = Field(2, ge=0)


class CarRateCard(BaseModel):
    daily_rate: Decimal = Field(..., ge=0)
    weekly_rate: Optional[Decimal] = Field(None, ge=0)
    monthly_rate: Optional[Decimal] = Field(None, ge=0)
    insurance_fee: Decimal = Field(Decimal("0"), ge=0, description="Per rental day")
    deposit: Decimal = Field(Decimal("0"), ge=0)
    airport_surcharge: Decimal = Field(Decimal("0"), ge=0)
    night_surcharge: Decimal = Field(Decimal("0"), ge=0)
    currency: Currency = "USD"


class TourCapacity(BaseModel):
    min_participants: int = Field(1, ge=1)


class TourRateCard(BaseModel):
    price: Decimal = Field(..., ge=0, description="Adult price per participant")
    child_discount: Decimal = Field(Decimal("0.30"), ge=0, le=1)
    senior_discount: Decimal = Field(Decimal("0.15"), ge=0, le=1)
    tax_rate: Decimal = Field(Decimal("10"), ge=0)
    currency: Currency = "USD"


class TransferCapacity(BaseModel):
    passengers: int = Field(..., ge=1)
    luggage: int = Field(0, ge=0)


class TransferRateCard(BaseModel):
    base_price: Decimal = Field(..., ge=0)
    price_per_km: Decimal = Field(Decimal("0"), ge=0)
    airport_surcharge: Decimal = Field(Decimal("0"), ge=0)
    night_surcharge: Decimal = Field(Decimal("0"), ge=0)
    currency: Currency = "USD"


CAPACITY_MODELS: dict[str, type[BaseModel]] = {
    "hotel": HotelCapacity,
    "car": CarCapacity,
    "tour": TourCapacity,
    "transfer": TransferCapacity,
}

RATE_CARD_MODELS: dict[str, type[BaseModel]] = {
    "hotel": HotelRateCard,
    "car": CarRateCard,
    "tour": TourRateCard,
    "transfer": TransferRateCard,
}


class ResourcePayload(BaseModel):
    """
    Input shape for loading resources (seed files, upsert writer).

    The capacity and rate card documents are validated against the vertical's
    typed model but stored as plain JSON.
    """

    id: str = Field(..., min_length=1, max_length=64)
    vertical: Vertical
    name: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    is_active: bool = True
    units: int = Field(1, ge=1)
    capacity: dict[str, Any] = Field(default_factory=dict)
    rate_card: dict[str, Any]
    rules: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_documents(self) -> "ResourcePayload":
        CAPACITY_MODELS[self.vertical].model_validate(self.capacity)
        RATE_CARD_MODELS[self.vertical].model_validate(self.rate_card)
        BookingRules.model_validate(self.rules)
        return self
