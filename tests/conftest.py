"""
Shared fixtures.

Every test gets its own in-memory SQLite database with the full schema, a
fake payment gateway and a small set of bookable resources. The environment
is set before any ``booking_settlement`` import because ``config`` reads it
at import time.
"""

from __future__ import annotations

import os
from typing import Generator

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ALLOWED_ORIGINS", "*")
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["PARTNER_WEBHOOK_SECRET"] = "partner_test_secret"
os.environ["CRON_SECRET"] = "cron_test_secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from booking_settlement.db.engine import build_engine  # noqa: E402
from booking_settlement.db.writers.resources import insert_resources  # noqa: E402
from booking_settlement.dependencies import get_db_engine, get_payment_gateway  # noqa: E402
from booking_settlement.main import app  # noqa: E402
from booking_settlement.models.base import Base  # noqa: E402
from booking_settlement.services.loyalty import LoyaltyLedger  # noqa: E402
from booking_settlement.services.settlement import SettlementHandler  # noqa: E402
from tests.factories import (  # noqa: E402
    PARTNER_SECRET,
    RESOURCES,
    STRIPE_SECRET,
    FakePaymentGateway,
)


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with all tables."""
    db_engine = build_engine("sqlite://")
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def seeded_engine(engine: Engine) -> Engine:
    insert_resources(engine, RESOURCES)
    return engine


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def ledger() -> LoyaltyLedger:
    return LoyaltyLedger()


@pytest.fixture
def settlement(seeded_engine: Engine, ledger: LoyaltyLedger) -> SettlementHandler:
    return SettlementHandler(
        seeded_engine,
        ledger,
        clawback_on_refund=False,
        stripe_secret=STRIPE_SECRET,
        partner_secret=PARTNER_SECRET,
    )


@pytest.fixture
def client(
    seeded_engine: Engine, gateway: FakePaymentGateway
) -> Generator[TestClient, None, None]:
    """TestClient wired to the seeded database and the fake gateway."""
    app.dependency_overrides[get_db_engine] = lambda: seeded_engine
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

