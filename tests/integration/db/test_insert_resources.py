"""
Integration tests for the resource upsert writer.
"""

from __future__ import annotations

import pytest
from sqlalchemy.engine import Engine

from booking_settlement.db.readers.resources import get_resource
from booking_settlement.db.writers.resources import insert_resources
from tests.factories import RESOURCES


@pytest.mark.integration
def test_insert_resources_writes_all_valid_rows(engine: Engine) -> None:
    assert insert_resources(engine, RESOURCES) == len(RESOURCES)

    with engine.connect() as conn:
        room = get_resource(conn, "room-101")
        closed = get_resource(conn, "room-closed")

    assert room.vertical == "hotel"
    assert room.parent_id == "hotel-1"
    assert room.rate_card["base_price"] == "100.00"
    assert closed.is_active is False


@pytest.mark.integration
def test_insert_resources_upserts_on_id(engine: Engine) -> None:
    insert_resources(engine, RESOURCES)
    changed = {**RESOURCES[0], "name": "Renamed Room", "units": 3}

    assert insert_resources(engine, [changed]) == 1

    with engine.connect() as conn:
        room = get_resource(conn, "room-101")
    assert room.name == "Renamed Room"
    assert room.units == 3


@pytest.mark.integration
def test_invalid_payloads_are_skipped(engine: Engine) -> None:
    bad_rate_card = {**RESOURCES[0], "id": "room-bad", "rate_card": {"tax_rate": "10"}}
    bad_vertical = {**RESOURCES[0], "id": "boat-1", "vertical": "boat"}

    written = insert_resources(engine, [bad_rate_card, bad_vertical, RESOURCES[1]])

    assert written == 1
    with engine.connect() as conn:
        assert get_resource(conn, "room-bad") is None
        assert get_resource(conn, "room-suite") is not None


@pytest.mark.integration
def test_dry_run_writes_nothing(engine: Engine) -> None:
    assert insert_resources(engine, RESOURCES, dry_run=True) == len(RESOURCES)

    with engine.connect() as conn:
        assert get_resource(conn, "room-101") is None
