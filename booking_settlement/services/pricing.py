"""
Pricing calculator for all booking verticals.

Every function here is pure: no I/O, no clock, no randomness. The breakdown a
client is shown is the breakdown that is charged and stored, so computing it
twice from the same inputs must give the same result. All arithmetic is done
in Decimal and every component is rounded to cents before summing, which keeps
``total_price`` exactly equal to the sum of its components.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Optional

from booking_settlement.schemas.resources import (
    NON_DECIMAL_CURRENCIES,
    CarRateCard,
    HotelRateCard,
    TourRateCard,
    TransferRateCard,
)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 6


def to_money(value: Decimal | int | str) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency: Optional[str] = None) -> int:
    """
    Convert a money amount to integer minor units (cents) without float drift.

    Raises:
        ValueError: if the amount has sub-cent precision, or the currency is
            not counted in hundredths
    """
    if currency is not None and currency.upper() in NON_DECIMAL_CURRENCIES:
        raise ValueError(f"{currency} does not use two-decimal minor units")
    minor = amount * HUNDRED
    if minor != minor.to_integral_value(rounding=ROUND_FLOOR):
        raise ValueError(f"Amount {amount} has sub-cent precision")
    return int(minor)


@dataclass(frozen=True)
class PricingBreakdown:
    """
    Itemized price. ``components`` keeps insertion order so the snapshot
    reads the same way the client saw it.
    """

    components: tuple[tuple[str, Decimal], ...]
    currency: str

    @property
    def total_price(self) -> Decimal:
        return sum((amount for _, amount in self.components), Decimal("0.00"))

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.total_price, self.currency)

    def component(self, name: str) -> Decimal:
        for key, amount in self.components:
            if key == name:
                return amount
        raise KeyError(name)

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe snapshot stored on the booking (decimals as strings)."""
        data: dict[str, Any] = {key: str(amount) for key, amount in self.components}
        data["total_price"] = str(self.total_price)
        data["currency"] = self.currency
        return data


def is_night_pickup(pickup: datetime) -> bool:
    """Pickup hour in [22, 6)."""
    return pickup.hour >= NIGHT_START_HOUR or pickup.hour < NIGHT_END_HOUR


def price_hotel_stay(
    rate_card: HotelRateCard,
    nights: int,
    adults: int,
    children: int,
    included_guests: int,
) -> PricingBreakdown:
    """
    Price a hotel stay.

    Tax applies to the room price only. The extra guest fee is charged per
    guest above ``included_guests`` (the rate card's value when set) per night.
    """
    if nights < 1:
        raise ValueError("A stay must be at least one night")

    room_price = to_money(rate_card.base_price * nights)
    tax = to_money(room_price * rate_card.tax_rate / HUNDRED)
    cleaning_fee = to_money(rate_card.cleaning_fee)

    included = rate_card.included_guests or included_guests
    extra_guests = max(0, adults + children - included)
    extra_guest_fee = to_money(rate_card.extra_guest_fee * extra_guests * nights)

    return PricingBreakdown(
        components=(
            ("room_price", room_price),
            ("tax_amount", tax),
            ("cleaning_fee", cleaning_fee),
            ("extra_guest_fee", extra_guest_fee),
        ),
        currency=rate_card.currency,
    )


def car_rental_subtotal(rate_card: CarRateCard, days: int) -> Decimal:
    """Monthly rate from 30 days, weekly from 7, daily otherwise; leftovers at the daily rate."""
    if days >= 30 and rate_card.monthly_rate is not None:
        months, rest = divmod(days, 30)
        return months * rate_card.monthly_rate + rest * rate_card.daily_rate
    if days >= 7 and rate_card.weekly_rate is not None:
        weeks, rest = divmod(days, 7)
        return weeks * rate_card.weekly_rate + rest * rate_card.daily_rate
    return days * rate_card.daily_rate


def price_car_rental(
    rate_card: CarRateCard,
    days: int,
    pickup: datetime,
    airport_pickup: bool,
) -> PricingBreakdown:
    if days < 1:
        raise ValueError("A rental must be at least one day")

    subtotal = to_money(car_rental_subtotal(rate_card, days))
    insurance_fee = to_money(rate_card.insurance_fee * days)
    deposit = to_money(rate_card.deposit)
    airport_surcharge = to_money(rate_card.airport_surcharge if airport_pickup else 0)
    night_surcharge = to_money(rate_card.night_surcharge if is_night_pickup(pickup) else 0)

    return PricingBreakdown(
        components=(
            ("subtotal", subtotal),
            ("insurance_fee", insurance_fee),
            ("deposit", deposit),
            ("airport_surcharge", airport_surcharge),
            ("night_surcharge", night_surcharge),
        ),
        currency=rate_card.currency,
    )


def price_transfer(
    rate_card: TransferRateCard,
    distance_km: Decimal,
    pickup: datetime,
    airport_transfer: bool,
) -> PricingBreakdown:
    base_price = to_money(rate_card.base_price)
    distance_charge = to_money(Decimal(distance_km) * rate_card.price_per_km)
    airport_surcharge = to_money(rate_card.airport_surcharge if airport_transfer else 0)
    night_surcharge = to_money(rate_card.night_surcharge if is_night_pickup(pickup) else 0)

    return PricingBreakdown(
        components=(
            ("base_price", base_price),
            ("distance_charge", distance_charge),
            ("airport_surcharge", airport_surcharge),
            ("night_surcharge", night_surcharge),
        ),
        currency=rate_card.currency,
    )


def price_tour(
    rate_card: TourRateCard,
    adults: int,
    children: int,
    seniors: int,
) -> PricingBreakdown:
    """Children and seniors pay the adult price minus their discount."""
    child_price = rate_card.price * (1 - rate_card.child_discount)
    senior_price = rate_card.price * (1 - rate_card.senior_discount)

    subtotal = to_money(
        adults * rate_card.price + children * child_price + seniors * senior_price
    )
    tax = to_money(subtotal * rate_card.tax_rate / HUNDRED)

    return PricingBreakdown(
        components=(
            ("subtotal", subtotal),
            ("tax_amount", tax),
        ),
        currency=rate_card.currency,
    )
