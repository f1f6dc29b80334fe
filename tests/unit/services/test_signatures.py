"""
Unit tests for webhook signature verification.
"""

from __future__ import annotations

import time

import pytest

from booking_settlement.errors import AuthenticationError
from booking_settlement.services.settlement import (
    verify_partner_signature,
    verify_stripe_signature,
)
from tests.factories import (
    PARTNER_SECRET,
    STRIPE_SECRET,
    intent_event,
    partner_event,
    partner_signature,
    stripe_signature,
)


@pytest.mark.unit
def test_valid_stripe_signature_is_accepted() -> None:
    payload = intent_event("payment_intent.succeeded", "pi_1", 1000)

    verify_stripe_signature(payload, stripe_signature(payload), STRIPE_SECRET)


@pytest.mark.unit
def test_stripe_signature_over_different_body_is_rejected() -> None:
    payload = intent_event("payment_intent.succeeded", "pi_1", 1000)
    tampered = payload.replace(b"1000", b"9000")

    with pytest.raises(AuthenticationError):
        verify_stripe_signature(tampered, stripe_signature(payload), STRIPE_SECRET)


@pytest.mark.unit
def test_stripe_signature_with_wrong_secret_is_rejected() -> None:
    payload = intent_event("payment_intent.succeeded", "pi_1", 1000)

    with pytest.raises(AuthenticationError):
        verify_stripe_signature(payload, stripe_signature(payload, "whsec_other"), STRIPE_SECRET)


@pytest.mark.unit
def test_stale_stripe_signature_is_rejected() -> None:
    payload = intent_event("payment_intent.succeeded", "pi_1", 1000)
    header = stripe_signature(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(AuthenticationError):
        verify_stripe_signature(payload, header, STRIPE_SECRET, tolerance=300)


@pytest.mark.unit
@pytest.mark.parametrize("header", [None, ""])
def test_missing_stripe_signature_is_rejected(header: str | None) -> None:
    with pytest.raises(AuthenticationError) as exc_info:
        verify_stripe_signature(b"{}", header, STRIPE_SECRET)

    assert "Missing" in exc_info.value.message


@pytest.mark.unit
def test_unset_stripe_secret_rejects_everything() -> None:
    payload = b"{}"

    with pytest.raises(AuthenticationError):
        verify_stripe_signature(payload, stripe_signature(payload, ""), "")


@pytest.mark.unit
def test_valid_partner_signature_is_accepted() -> None:
    payload = partner_event("booking.confirmed", "b-1", 120.0)

    verify_partner_signature(payload, partner_signature(payload), PARTNER_SECRET)
    # case-insensitive hex
    verify_partner_signature(payload, partner_signature(payload).upper(), PARTNER_SECRET)


@pytest.mark.unit
def test_invalid_partner_signature_is_rejected() -> None:
    payload = partner_event("booking.confirmed", "b-1", 120.0)

    with pytest.raises(AuthenticationError):
        verify_partner_signature(payload, partner_signature(payload, "wrong"), PARTNER_SECRET)
    with pytest.raises(AuthenticationError):
        verify_partner_signature(payload, None, PARTNER_SECRET)
    with pytest.raises(AuthenticationError):
        verify_partner_signature(payload, partner_signature(payload, ""), "")
