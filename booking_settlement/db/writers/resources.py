from typing import Any

import structlog
from sqlalchemy.engine import Engine

from booking_settlement.db.writers._upsert import upsert_rows
from booking_settlement.models.resources import Resource
from booking_settlement.schemas.resources import ResourcePayload
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_resources(engine: Engine, data: list[dict[str, Any]], dry_run: bool = False) -> int:
    """
    Upsert bookable resources (rooms, vehicles, tours, transfer vehicles).

    Each payload is validated against its vertical's capacity and rate card
    schema first; invalid payloads are skipped and logged.

    Args:
        engine: SQLAlchemy Engine
        data: Raw resource payloads
        dry_run: If True, skip DB writes and log only

    Returns:
        int: number of rows written (or that would have been written)
    """
    now = utc_now()
    rows: list[dict[str, Any]] = []

    for raw in data:
        try:
            payload = ResourcePayload.model_validate(raw)
        except ValueError as e:
            logger.warning("resource_payload_invalid", resource_id=raw.get("id"), error=str(e))
            continue

        rows.append({**payload.model_dump(mode="json"), "created_at": now, "updated_at": now})

    if dry_run:
        logger.info("resources_upsert_dry_run", count=len(rows))
        return len(rows)

    if not rows:
        logger.info("resources_upsert_empty")
        return 0

    with engine.begin() as conn:
        upsert_rows(conn, Resource, rows, conflict_column="id")

    logger.info("resources_upserted", count=len(rows))
    return len(rows)
