"""
Prometheus metrics for bookings, payment intents, webhook settlement and loyalty.

All metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., bookings created)
    - Histogram: Observations bucketed by value (e.g., payment intent latency)

Example:
    >>> from booking_settlement.metrics import bookings_created, payment_intent_latency
    >>> with payment_intent_latency.time():
    ...     intent = gateway.create_payment_intent(...)
    >>> bookings_created.labels(vertical="hotel").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Booking Metrics
# =============================================================================

bookings_created = Counter(
    "settlement_bookings_created_total",
    "Total number of pending bookings created",
    ["vertical"],
)
"""
Counter for bookings persisted in ``pending`` state.

Labels:
    vertical: hotel, car, tour or transfer
"""

bookings_rejected = Counter(
    "settlement_bookings_rejected_total",
    "Total number of booking requests rejected",
    ["vertical", "reason"],
)
"""
Counter for rejected booking requests.

Labels:
    vertical: hotel, car, tour or transfer
    reason: Error code (validation_error, policy_violation, conflict, ...)
"""

bookings_expired = Counter(
    "settlement_bookings_expired_total",
    "Total number of abandoned pending bookings cancelled by the reaper",
)

# =============================================================================
# Payment Metrics
# =============================================================================

payment_intent_latency = Histogram(
    "settlement_payment_intent_latency_seconds",
    "Payment intent creation latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
"""
Histogram for payment processor round trips when creating an intent.

Buckets: 0.1s, 0.25s, 0.5s, 1s, 2.5s, 5s, 10s, +Inf
"""

payment_intent_failures = Counter(
    "settlement_payment_intent_failures_total",
    "Total number of payment intent creations rejected by the processor",
)

orphaned_payment_intents = Counter(
    "settlement_orphaned_payment_intents_total",
    "Payment intents created at the processor whose booking could not be stored",
)
"""Every increment needs manual reconciliation."""

# =============================================================================
# Webhook Metrics
# =============================================================================

webhooks_processed = Counter(
    "settlement_webhooks_processed_total",
    "Total number of webhook events processed",
    ["provider", "event_type", "outcome"],
)
"""
Counter for webhook deliveries.

Labels:
    provider: stripe or partner
    event_type: Provider event type (payment_intent.succeeded, booking.confirmed, ...)
    outcome: confirmed, duplicate, ignored, not_found, rejected, ...
"""

# =============================================================================
# Loyalty Metrics
# =============================================================================

loyalty_points_credited = Counter(
    "settlement_loyalty_points_credited_total",
    "Total loyalty points credited for settled bookings",
    ["vertical"],
)

loyalty_credit_failures = Counter(
    "settlement_loyalty_credit_failures_total",
    "Total number of loyalty credits that failed after a booking was confirmed",
)

loyalty_points_expired = Counter(
    "settlement_loyalty_points_expired_total",
    "Total loyalty points removed by the expiry sweep",
)

# =============================================================================
# Referral Metrics
# =============================================================================

referral_commission = Counter(
    "settlement_referral_commission_minor_total",
    "Commission recorded on confirmed partner referrals, in minor units",
    ["currency"],
)
"""
Counter for partner commission at confirmation time. Later cancellations and
refunds zero the referral's commission but are not subtracted here.

Labels:
    currency: ISO 4217 code reported by the partner
"""
