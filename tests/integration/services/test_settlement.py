"""
Integration tests for webhook settlement: signature checks, booking state
transitions, duplicate suppression and loyalty side effects.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from booking_settlement.db.readers.bookings import get_booking
from booking_settlement.db.readers.referrals import get_referral as read_referral
from booking_settlement.db.writers.bookings import transition_booking
from booking_settlement.errors import AuthenticationError, NotFoundError, ValidationError
from booking_settlement.models.loyalty import PointsTransaction
from booking_settlement.models.webhook_events import WebhookEvent
from booking_settlement.services.bookings import create_booking
from booking_settlement.services.loyalty import LoyaltyLedger
from booking_settlement.services.referrals import create_referral
from booking_settlement.services.settlement import SettlementHandler
from tests.factories import (
    NOW,
    PARTNER_SECRET,
    STRIPE_SECRET,
    FakePaymentGateway,
    hotel_request,
    intent_event,
    partner_event,
    partner_signature,
    refund_event,
    stripe_signature,
)


@pytest.fixture
def booking(seeded_engine: Engine, gateway: FakePaymentGateway) -> Any:
    """A pending 330.00 hotel booking for user-1."""
    result = create_booking(
        seeded_engine,
        gateway,
        "hotel",
        hotel_request("2030-03-01", "2030-03-04"),
        "user-1",
        now=NOW,
    )
    return result.booking


def reload(engine: Engine, booking_id: str) -> Any:
    with engine.connect() as conn:
        return get_booking(conn, booking_id)


def earn_count(engine: Engine, booking_id: str) -> int:
    with engine.connect() as conn:
        return conn.execute(
            select(func.count())
            .select_from(PointsTransaction)
            .where(
                PointsTransaction.related_booking_id == booking_id,
                PointsTransaction.type == "earn",
            )
        ).scalar_one()


def event_count(engine: Engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(WebhookEvent)).scalar_one()


def send_stripe(settlement: SettlementHandler, payload: bytes) -> Any:
    return settlement.handle_stripe(payload, stripe_signature(payload))


def send_partner(settlement: SettlementHandler, payload: bytes) -> Any:
    return settlement.handle_partner(payload, partner_signature(payload))


# =============================================================================
# Stripe
# =============================================================================


@pytest.mark.integration
def test_payment_success_confirms_and_credits_once(
    settlement: SettlementHandler, ledger: LoyaltyLedger, seeded_engine: Engine, booking: Any
) -> None:
    payload = intent_event(
        "payment_intent.succeeded", booking.payment_intent_id, 33000, event_id="evt_success_1"
    )

    first = send_stripe(settlement, payload)
    again = send_stripe(settlement, payload)

    assert first.outcome == "confirmed"
    assert first.booking_id == booking.id
    assert again.outcome == "duplicate"

    stored = reload(seeded_engine, booking.id)
    assert stored.status == "confirmed"
    assert stored.payment_status == "completed"
    assert stored.confirmed_at is not None

    assert earn_count(seeded_engine, booking.id) == 1
    account = ledger.get_account(seeded_engine, "user-1")
    assert account["points"] == 3300
    assert account["lifetime_points"] == 3300
    assert account["tier"] == "silver"


@pytest.mark.integration
def test_second_success_event_for_confirmed_booking(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    send_stripe(settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000))

    result = send_stripe(
        settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000)
    )

    assert result.outcome == "already_confirmed"
    assert earn_count(seeded_engine, booking.id) == 1
    assert event_count(seeded_engine) == 2


@pytest.mark.integration
def test_booking_found_through_metadata(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    payload = intent_event("payment_intent.succeeded", "pi_unknown", 33000, booking_id=booking.id)

    result = send_stripe(settlement, payload)

    assert result.outcome == "confirmed"
    assert reload(seeded_engine, booking.id).status == "confirmed"


@pytest.mark.integration
def test_invalid_signature_changes_nothing(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    payload = intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000)

    with pytest.raises(AuthenticationError):
        settlement.handle_stripe(payload, stripe_signature(payload, "whsec_forged"))
    with pytest.raises(AuthenticationError):
        settlement.handle_stripe(payload, None)

    assert reload(seeded_engine, booking.id).status == "pending"
    assert event_count(seeded_engine) == 0
    assert earn_count(seeded_engine, booking.id) == 0


@pytest.mark.integration
def test_unhandled_event_type_is_ignored(settlement: SettlementHandler, seeded_engine: Engine) -> None:
    payload = intent_event("customer.created", "pi_x", 0)

    result = send_stripe(settlement, payload)

    assert result.outcome == "ignored"
    assert event_count(seeded_engine) == 0


@pytest.mark.integration
def test_malformed_event_is_rejected(settlement: SettlementHandler) -> None:
    payload = b'{"id": "evt_1", "type": "payment_intent.succeeded", "data": {}}'

    with pytest.raises(ValidationError):
        send_stripe(settlement, payload)

    with pytest.raises(ValidationError):
        send_stripe(settlement, b"not json")


@pytest.mark.integration
def test_unknown_booking_is_not_found(settlement: SettlementHandler, seeded_engine: Engine) -> None:
    before = (
        REGISTRY.get_sample_value(
            "settlement_webhooks_processed_total",
            {"provider": "stripe", "event_type": "payment_intent.succeeded", "outcome": "not_found"},
        )
        or 0.0
    )

    with pytest.raises(NotFoundError):
        send_stripe(settlement, intent_event("payment_intent.succeeded", "pi_missing", 1000))

    # not recorded, so a redelivery is processed again once the booking exists
    assert event_count(seeded_engine) == 0
    after = REGISTRY.get_sample_value(
        "settlement_webhooks_processed_total",
        {"provider": "stripe", "event_type": "payment_intent.succeeded", "outcome": "not_found"},
    )
    assert after == before + 1


@pytest.mark.integration
def test_payment_failure_keeps_booking_pending(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    result = send_stripe(
        settlement, intent_event("payment_intent.payment_failed", booking.payment_intent_id, 33000)
    )

    stored = reload(seeded_engine, booking.id)
    assert result.outcome == "payment_failed"
    assert stored.status == "pending"
    assert stored.payment_status == "failed"

    # the customer retries with another card
    retry = send_stripe(
        settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000)
    )
    assert retry.outcome == "confirmed"


@pytest.mark.integration
def test_canceled_intent_cancels_booking(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    result = send_stripe(
        settlement, intent_event("payment_intent.canceled", booking.payment_intent_id, 33000)
    )

    stored = reload(seeded_engine, booking.id)
    assert result.outcome == "cancelled"
    assert stored.status == "cancelled"
    assert stored.cancelled_at is not None


@pytest.mark.integration
def test_success_after_expiry_is_flagged_not_confirmed(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    with seeded_engine.begin() as conn:
        transition_booking(conn, booking.id, ("pending",), status="cancelled")

    result = send_stripe(
        settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000)
    )

    assert result.outcome == "settlement_after_expiry"
    assert reload(seeded_engine, booking.id).status == "cancelled"
    assert earn_count(seeded_engine, booking.id) == 0


@pytest.mark.integration
def test_full_refund_without_clawback(
    settlement: SettlementHandler, ledger: LoyaltyLedger, seeded_engine: Engine, booking: Any
) -> None:
    send_stripe(settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000))

    result = send_stripe(settlement, refund_event(booking.payment_intent_id, 33000))

    stored = reload(seeded_engine, booking.id)
    assert result.outcome == "refunded"
    assert stored.status == "refunded"
    assert stored.payment_status == "refunded"
    assert ledger.get_account(seeded_engine, "user-1")["points"] == 3300


@pytest.mark.integration
def test_full_refund_with_clawback(
    ledger: LoyaltyLedger, seeded_engine: Engine, booking: Any
) -> None:
    settlement = SettlementHandler(
        seeded_engine,
        ledger,
        clawback_on_refund=True,
        stripe_secret=STRIPE_SECRET,
        partner_secret=PARTNER_SECRET,
    )
    send_stripe(settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000))

    send_stripe(settlement, refund_event(booking.payment_intent_id, 33000))

    account = ledger.get_account(seeded_engine, "user-1")
    assert account["points"] == 0
    assert account["lifetime_points"] == 0
    assert account["tier"] == "bronze"
    types = [t.type for t in ledger.list_transactions(seeded_engine, "user-1")]
    assert sorted(types) == ["adjust", "earn"]


@pytest.mark.integration
def test_partial_refund_leaves_booking_confirmed(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    send_stripe(settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000))

    result = send_stripe(settlement, refund_event(booking.payment_intent_id, 33000, refunded=False))

    assert result.outcome == "partial_refund"
    assert reload(seeded_engine, booking.id).status == "confirmed"


@pytest.mark.integration
def test_refund_of_pending_booking_is_ignored(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    result = send_stripe(settlement, refund_event(booking.payment_intent_id, 33000))

    assert result.outcome == "ignored"
    assert reload(seeded_engine, booking.id).status == "pending"


@pytest.mark.integration
def test_loyalty_failure_does_not_undo_confirmation(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any
) -> None:
    before = REGISTRY.get_sample_value("settlement_loyalty_credit_failures_total") or 0.0

    with patch.object(LoyaltyLedger, "credit_for_booking", side_effect=RuntimeError("ledger down")):
        result = send_stripe(
            settlement, intent_event("payment_intent.succeeded", booking.payment_intent_id, 33000)
        )

    assert result.outcome == "confirmed"
    assert reload(seeded_engine, booking.id).status == "confirmed"
    assert REGISTRY.get_sample_value("settlement_loyalty_credit_failures_total") == before + 1


# =============================================================================
# Travel partners
# =============================================================================


@pytest.fixture
def referral(seeded_engine: Engine) -> Any:
    """A pending trip.com referral for user-1 at the default 3% commission."""
    return create_referral(seeded_engine, "user-1", "trip.com")


@pytest.fixture
def linked_referral(seeded_engine: Engine, booking: Any) -> Any:
    return create_referral(seeded_engine, "user-1", "trip.com", booking_id=booking.id)


def reload_referral(engine: Engine, referral_id: str) -> Any:
    with engine.connect() as conn:
        return read_referral(conn, referral_id)


def commission_recorded(currency: str = "USD") -> float:
    return (
        REGISTRY.get_sample_value(
            "settlement_referral_commission_minor_total", {"currency": currency}
        )
        or 0.0
    )


@pytest.mark.integration
def test_partner_confirmation_records_commission(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    """500.00 at the default 3% is 15.00 of commission."""
    before = commission_recorded()
    payload = partner_event("booking.confirmed", referral.id, 500.0)

    first = send_partner(settlement, payload)
    again = send_partner(settlement, payload)

    stored = reload_referral(seeded_engine, referral.id)
    assert first.outcome == "confirmed"
    assert first.referral_id == referral.id
    assert first.booking_id is None
    assert first.event_id == f"{referral.id}:booking.confirmed:TRP-778899"
    assert again.outcome == "duplicate"
    assert stored.booking_status == "confirmed"
    assert stored.booking_confirmed is True
    assert stored.booking_reference == "TRP-778899"
    assert stored.partner_booking_id == "TRP-B-1001"
    assert stored.total_amount_minor == 50000
    assert stored.commission_minor == 1500
    assert stored.confirmed_at is not None
    assert commission_recorded() == before + 1500


@pytest.mark.integration
def test_partner_commission_uses_referral_rate(
    settlement: SettlementHandler, seeded_engine: Engine
) -> None:
    """123.45 at 5% is 6.1725, rounded half up to 6.17."""
    referral = create_referral(
        seeded_engine, "user-1", "trip.com", commission_rate=Decimal("0.05")
    )

    send_partner(settlement, partner_event("booking.confirmed", referral.id, 123.45))

    assert reload_referral(seeded_engine, referral.id).commission_minor == 617


@pytest.mark.integration
def test_partner_confirmation_with_new_reference_replaces_old(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    send_partner(settlement, partner_event("booking.confirmed", referral.id, 500.0))

    result = send_partner(
        settlement,
        partner_event("booking.confirmed", referral.id, 400.0, booking_reference="TRP-112233"),
    )

    stored = reload_referral(seeded_engine, referral.id)
    assert result.outcome == "confirmed"
    assert stored.booking_reference == "TRP-112233"
    assert stored.commission_minor == 1200


@pytest.mark.integration
def test_partner_cancellation_zeroes_commission(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    send_partner(settlement, partner_event("booking.confirmed", referral.id, 500.0))

    result = send_partner(settlement, partner_event("booking.cancelled", referral.id, 500.0))

    stored = reload_referral(seeded_engine, referral.id)
    assert result.outcome == "cancelled"
    assert stored.booking_status == "cancelled"
    assert stored.booking_confirmed is False
    assert stored.commission_minor == 0
    assert stored.commission_paid is False


@pytest.mark.integration
def test_partner_refund_zeroes_commission_and_is_final(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    send_partner(settlement, partner_event("booking.confirmed", referral.id, 500.0))

    refunded = send_partner(settlement, partner_event("booking.refunded", referral.id, 500.0))
    reconfirmed = send_partner(
        settlement,
        partner_event("booking.confirmed", referral.id, 500.0, booking_reference="TRP-445566"),
    )

    stored = reload_referral(seeded_engine, referral.id)
    assert refunded.outcome == "refunded"
    assert reconfirmed.outcome == "ignored"
    assert stored.booking_status == "refunded"
    assert stored.commission_minor == 0
    assert stored.booking_reference == "TRP-778899"


@pytest.mark.integration
def test_partner_event_for_unknown_referral(
    settlement: SettlementHandler, seeded_engine: Engine
) -> None:
    labels = {"provider": "partner", "event_type": "booking.confirmed", "outcome": "not_found"}
    before = REGISTRY.get_sample_value("settlement_webhooks_processed_total", labels) or 0.0

    with pytest.raises(NotFoundError) as exc_info:
        send_partner(settlement, partner_event("booking.confirmed", "no-such-referral", 500.0))

    assert exc_info.value.details == {"referral_id": "no-such-referral"}
    assert event_count(seeded_engine) == 0
    assert REGISTRY.get_sample_value("settlement_webhooks_processed_total", labels) == before + 1


@pytest.mark.integration
def test_partner_confirmation_settles_linked_booking(
    settlement: SettlementHandler,
    ledger: LoyaltyLedger,
    seeded_engine: Engine,
    booking: Any,
    linked_referral: Any,
) -> None:
    result = send_partner(settlement, partner_event("booking.confirmed", linked_referral.id, 330.0))

    stored = reload(seeded_engine, booking.id)
    assert result.outcome == "confirmed"
    assert result.booking_id == booking.id
    assert stored.status == "confirmed"
    assert stored.external_reference == "TRP-778899"
    assert ledger.get_account(seeded_engine, "user-1")["points"] == 3300
    assert reload_referral(seeded_engine, linked_referral.id).commission_minor == 990


@pytest.mark.integration
def test_partner_cancels_linked_confirmed_booking(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any, linked_referral: Any
) -> None:
    send_partner(settlement, partner_event("booking.confirmed", linked_referral.id, 330.0))

    result = send_partner(settlement, partner_event("booking.cancelled", linked_referral.id, 330.0))

    assert result.outcome == "cancelled"
    assert reload(seeded_engine, booking.id).status == "cancelled"
    assert reload_referral(seeded_engine, linked_referral.id).commission_minor == 0


@pytest.mark.integration
def test_partner_refunds_linked_booking(
    settlement: SettlementHandler, seeded_engine: Engine, booking: Any, linked_referral: Any
) -> None:
    send_partner(settlement, partner_event("booking.confirmed", linked_referral.id, 330.0))

    result = send_partner(settlement, partner_event("booking.refunded", linked_referral.id, 330.0))

    assert result.outcome == "refunded"
    assert reload(seeded_engine, booking.id).status == "refunded"


@pytest.mark.integration
def test_partner_bad_signature(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    payload = partner_event("booking.confirmed", referral.id, 500.0)

    with pytest.raises(AuthenticationError):
        settlement.handle_partner(payload, partner_signature(payload, "not-the-secret"))

    assert reload_referral(seeded_engine, referral.id).booking_status == "pending"


@pytest.mark.integration
def test_partner_unknown_event(settlement: SettlementHandler) -> None:
    payload = partner_event("booking.confirmed", "ref-1", 10.0).replace(
        b"booking.confirmed", b"booking.modified"
    )

    with pytest.raises(ValidationError):
        send_partner(settlement, payload)


@pytest.mark.integration
def test_partner_event_in_zero_decimal_currency_is_rejected(
    settlement: SettlementHandler, seeded_engine: Engine, referral: Any
) -> None:
    payload = partner_event("booking.confirmed", referral.id, 50000, currency="JPY")

    with pytest.raises(ValidationError):
        send_partner(settlement, payload)

    assert reload_referral(seeded_engine, referral.id).booking_status == "pending"
