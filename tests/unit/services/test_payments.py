"""
Unit tests for the Stripe payment gateway.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe
from prometheus_client import REGISTRY

from booking_settlement.errors import PaymentGatewayError
from booking_settlement.services.payments import PaymentIntent, StripePaymentGateway


def _failures() -> float:
    return REGISTRY.get_sample_value("settlement_payment_intent_failures_total") or 0.0


@pytest.mark.unit
def test_create_payment_intent_passes_amount_metadata_and_idempotency_key() -> None:
    gateway = StripePaymentGateway(api_key="sk_test_123")
    fake_intent = SimpleNamespace(
        id="pi_123", client_secret="pi_123_secret_abc", amount=33000, currency="usd"
    )

    with patch("stripe.PaymentIntent.create", return_value=fake_intent) as mock_create:
        intent = gateway.create_payment_intent(
            amount_minor=33000,
            currency="USD",
            metadata={"booking_id": "b-1", "vertical": "hotel"},
            idempotency_key="booking-b-1",
        )

    assert intent == PaymentIntent(
        id="pi_123", client_secret="pi_123_secret_abc", amount=33000, currency="USD"
    )
    kwargs = mock_create.call_args.kwargs
    assert kwargs["amount"] == 33000
    assert kwargs["currency"] == "usd"
    assert kwargs["metadata"] == {"booking_id": "b-1", "vertical": "hotel"}
    assert kwargs["idempotency_key"] == "booking-b-1"
    assert kwargs["api_key"] == "sk_test_123"


@pytest.mark.unit
def test_stripe_error_becomes_payment_gateway_error() -> None:
    gateway = StripePaymentGateway(api_key="sk_test_123")
    before = _failures()
    card_error = stripe.CardError("Your card was declined.", param=None, code="card_declined")

    with patch("stripe.PaymentIntent.create", side_effect=card_error):
        with pytest.raises(PaymentGatewayError) as exc_info:
            gateway.create_payment_intent(1000, "USD", {"booking_id": "b-2"}, "booking-b-2")

    err = exc_info.value
    assert err.message == PaymentGatewayError.public_message
    assert err.details == {"reason": "card_declined"}
    assert err.__cause__ is card_error
    assert _failures() == before + 1


@pytest.mark.unit
def test_network_error_becomes_payment_gateway_error() -> None:
    gateway = StripePaymentGateway(api_key="sk_test_123")

    with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("down")):
        with pytest.raises(PaymentGatewayError) as exc_info:
            gateway.create_payment_intent(1000, "USD", {}, "booking-b-3")

    assert exc_info.value.details == {"reason": "processor_error"}


@pytest.mark.unit
def test_cancel_payment_intent() -> None:
    gateway = StripePaymentGateway(api_key="sk_test_123")

    with patch("stripe.PaymentIntent.cancel") as mock_cancel:
        gateway.cancel_payment_intent("pi_123")

    mock_cancel.assert_called_once_with("pi_123", api_key="sk_test_123")


@pytest.mark.unit
def test_cancel_rejected_by_stripe_raises() -> None:
    gateway = StripePaymentGateway(api_key="sk_test_123")
    error = stripe.InvalidRequestError(
        "This PaymentIntent's status is succeeded", param=None, code="payment_intent_unexpected_state"
    )

    with patch("stripe.PaymentIntent.cancel", side_effect=error):
        with pytest.raises(PaymentGatewayError) as exc_info:
            gateway.cancel_payment_intent("pi_123")

    assert exc_info.value.details == {"payment_intent_id": "pi_123"}
