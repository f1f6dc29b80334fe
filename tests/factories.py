"""
Test data builders: seeded resources, request payloads, signed webhook bodies
and an in-memory payment gateway.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from booking_settlement.errors import PaymentGatewayError
from booking_settlement.services.payments import PaymentIntent

STRIPE_SECRET = "whsec_test_secret"
PARTNER_SECRET = "partner_test_secret"
CRON_SECRET = "cron_test_secret"

# Fixed clock for service-level tests; bookings are made a couple of months ahead
NOW = datetime(2030, 1, 10, 12, 0, tzinfo=timezone.utc)

RESOURCES: list[dict[str, Any]] = [
    {
        "id": "room-101",
        "vertical": "hotel",
        "name": "Deluxe Double",
        "parent_id": "hotel-1",
        "units": 1,
        "capacity": {"adults": 2, "children": 1},
        "rate_card": {"base_price": "100.00", "tax_rate": "10", "currency": "USD"},
        "rules": {"minimum_stay": 1, "maximum_stay": 14},
    },
    {
        "id": "room-suite",
        "vertical": "hotel",
        "name": "Family Suite",
        "parent_id": "hotel-1",
        "units": 2,
        "capacity": {"adults": 4, "children": 2},
        "rate_card": {
            "base_price": "200.00",
            "tax_rate": "12",
            "cleaning_fee": "40.00",
            "extra_guest_fee": "15.00",
            "included_guests": 2,
            "currency": "USD",
        },
        "rules": {"minimum_stay": 2},
    },
    {
        "id": "room-closed",
        "vertical": "hotel",
        "name": "Closed Room",
        "parent_id": "hotel-1",
        "is_active": False,
        "capacity": {"adults": 2},
        "rate_card": {"base_price": "90.00"},
    },
    {
        "id": "car-1",
        "vertical": "car",
        "name": "Compact Sedan",
        "capacity": {"seats": 5, "max_additional_drivers": 1},
        "rate_card": {
            "daily_rate": "50.00",
            "weekly_rate": "300.00",
            "insurance_fee": "10.00",
            "deposit": "200.00",
            "airport_surcharge": "25.00",
            "night_surcharge": "15.00",
            "currency": "EUR",
        },
        "rules": {"minimum_stay": 1},
    },
    {
        "id": "tour-1",
        "vertical": "tour",
        "name": "Old Town Walking Tour",
        "units": 10,
        "capacity": {"min_participants": 1},
        "rate_card": {"price": "80.00"},
        "rules": {"duration_minutes": 180},
    },
    {
        "id": "van-1",
        "vertical": "transfer",
        "name": "Airport Van",
        "capacity": {"passengers": 6, "luggage": 6},
        "rate_card": {
            "base_price": "30.00",
            "price_per_km": "1.50",
            "airport_surcharge": "20.00",
            "night_surcharge": "10.00",
        },
    },
]


class FakePaymentGateway:
    """In-memory stand-in for the Stripe gateway."""

    def __init__(self) -> None:
        self.intents: list[dict[str, Any]] = []
        self.cancelled: list[str] = []
        self.fail_create = False
        self.fail_cancel = False

    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        if self.fail_create:
            raise PaymentGatewayError(PaymentGatewayError.public_message)
        intent_id = f"pi_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_test",
            amount=amount_minor,
            currency=currency,
        )
        self.intents.append(
            {"intent": intent, "metadata": metadata, "idempotency_key": idempotency_key}
        )
        return intent

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        if self.fail_cancel:
            raise PaymentGatewayError(PaymentGatewayError.public_message)
        self.cancelled.append(payment_intent_id)


# =============================================================================
# Payload helpers
# =============================================================================


def contact(**overrides: Any) -> dict[str, Any]:
    data = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "+441234567890",
    }
    data.update(overrides)
    return data


def hotel_request(check_in: str, check_out: str, **overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "property_id": "hotel-1",
        "room_id": "room-101",
        "guest_info": {**contact(), "country": "GB"},
        "check_in_date": check_in,
        "check_out_date": check_out,
        "guests": {"adults": 2, "children": 0},
    }
    data.update(overrides)
    return data


def car_request(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "vehicle_id": "car-1",
        "driver_info": {
            **contact(),
            "license_number": "LOVEL812345",
            "license_expiry": "2035-01-01",
            "date_of_birth": "1990-05-01",
        },
        "pickup_date": "2030-03-01",
        "pickup_time": "10:00",
        "return_date": "2030-03-04",
        "return_time": "10:00",
        "pickup_location": "Main Street Office",
        "return_location": "Main Street Office",
    }
    data.update(overrides)
    return data


def tour_request(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "tour_id": "tour-1",
        "tour_date": "2030-03-05",
        "tour_time": "09:00",
        "participants": {"adults": 2, "children": 1, "seniors": 1},
        "contact_info": contact(),
    }
    data.update(overrides)
    return data


def transfer_request(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "vehicle_id": "van-1",
        "transfer_type": "airport_to_city",
        "pickup_location": {"address": "Terminal 2 Arrivals", "city": "Lisbon"},
        "dropoff_location": {"address": "Rua Augusta 100", "city": "Lisbon"},
        "pickup_date": "2030-03-01",
        "pickup_time": "14:00",
        "estimated_duration": 40,
        "estimated_distance": "20",
        "passenger_info": {**contact(), "number_of_passengers": 3, "number_of_luggage": 2},
    }
    data.update(overrides)
    return data


# =============================================================================
# Webhook helpers
# =============================================================================


def stripe_signature(payload: bytes, secret: str = STRIPE_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs events."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def partner_signature(payload: bytes, secret: str = PARTNER_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def intent_event(
    event_type: str,
    payment_intent_id: str,
    amount: int,
    booking_id: str = "",
    event_id: Optional[str] = None,
) -> bytes:
    event = {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "type": event_type,
        "data": {
            "object": {
                "id": payment_intent_id,
                "object": "payment_intent",
                "amount": amount,
                "amount_received": amount if event_type == "payment_intent.succeeded" else 0,
                "currency": "usd",
                "status": "succeeded",
                "metadata": {"booking_id": booking_id} if booking_id else {},
            }
        },
    }
    return json.dumps(event).encode("utf-8")


def refund_event(payment_intent_id: str, amount: int, refunded: bool = True) -> bytes:
    event = {
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": f"ch_{uuid.uuid4().hex[:12]}",
                "payment_intent": payment_intent_id,
                "amount": amount,
                "amount_refunded": amount if refunded else amount // 2,
                "refunded": refunded,
                "currency": "usd",
            }
        },
    }
    return json.dumps(event).encode("utf-8")


def partner_event(
    event: str,
    referral_id: str,
    total_amount: float,
    booking_reference: str = "TRP-778899",
    currency: str = "USD",
) -> bytes:
    """Partner booking event; ``bookingId`` is the partner's id, ``referralId`` ours."""
    status = event.split(".", 1)[1]
    body = {
        "event": event,
        "timestamp": "2030-01-10T12:00:00Z",
        "data": {
            "bookingId": "TRP-B-1001",
            "referralId": referral_id,
            "bookingReference": booking_reference,
            "status": status,
            "totalAmount": total_amount,
            "currency": currency,
            "passengerCount": 2,
            "bookedAt": "2030-01-10T11:58:00Z",
        },
    }
    return json.dumps(body).encode("utf-8")
