"""
Webhook payloads as tagged unions.

Stripe events are discriminated on ``type`` and partner events on ``event``.
Only the fields settlement reads are modelled; everything else is ignored.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from booking_settlement.schemas.resources import Currency

# =============================================================================
# Stripe
# =============================================================================


class PaymentIntentObject(BaseModel):
    id: str
    amount: int
    amount_received: int = 0
    currency: str
    status: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ChargeObject(BaseModel):
    id: str
    payment_intent: Optional[str] = None
    amount: int = 0
    amount_refunded: int = 0
    refunded: bool = False
    currency: str
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentIntentData(BaseModel):
    object: PaymentIntentObject


class ChargeData(BaseModel):
    object: ChargeObject


class PaymentIntentSucceeded(BaseModel):
    id: str
    type: Literal["payment_intent.succeeded"]
    data: PaymentIntentData


class PaymentIntentFailed(BaseModel):
    id: str
    type: Literal["payment_intent.payment_failed"]
    data: PaymentIntentData


class PaymentIntentCanceled(BaseModel):
    id: str
    type: Literal["payment_intent.canceled"]
    data: PaymentIntentData


class ChargeRefunded(BaseModel):
    id: str
    type: Literal["charge.refunded"]
    data: ChargeData


StripeEvent = Annotated[
    Union[PaymentIntentSucceeded, PaymentIntentFailed, PaymentIntentCanceled, ChargeRefunded],
    Field(discriminator="type"),
]
stripe_event_adapter: TypeAdapter[StripeEvent] = TypeAdapter(StripeEvent)

HANDLED_STRIPE_EVENTS = frozenset(
    {
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "payment_intent.canceled",
        "charge.refunded",
    }
)

# =============================================================================
# Travel partners
# =============================================================================


class PartnerBookingData(BaseModel):
    """
    ``referralId`` is our referral id echoed back by the partner;
    ``bookingId`` is the partner's own booking id.
    """

    model_config = ConfigDict(populate_by_name=True)

    partner_booking_id: str = Field(..., alias="bookingId", min_length=1)
    referral_id: str = Field(..., alias="referralId", min_length=1)
    booking_reference: str = Field(..., alias="bookingReference", min_length=1)
    status: Literal["confirmed", "cancelled", "refunded"]
    total_amount: Decimal = Field(..., alias="totalAmount", ge=0)
    currency: Currency
    passenger_count: Optional[int] = Field(None, alias="passengerCount", ge=0)
    booked_at: Optional[str] = Field(None, alias="bookedAt")


class PartnerBookingConfirmed(BaseModel):
    event: Literal["booking.confirmed"]
    timestamp: str
    data: PartnerBookingData


class PartnerBookingCancelled(BaseModel):
    event: Literal["booking.cancelled"]
    timestamp: str
    data: PartnerBookingData


class PartnerBookingRefunded(BaseModel):
    event: Literal["booking.refunded"]
    timestamp: str
    data: PartnerBookingData


PartnerEvent = Annotated[
    Union[PartnerBookingConfirmed, PartnerBookingCancelled, PartnerBookingRefunded],
    Field(discriminator="event"),
]
partner_event_adapter: TypeAdapter[PartnerEvent] = TypeAdapter(PartnerEvent)


class WebhookAck(BaseModel):
    received: bool = True
    event_id: Optional[str] = None
    outcome: str
    referral_id: Optional[str] = None
