from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_settlement.models.resources import Resource


def get_resource(conn: Connection, resource_id: str, lock: bool = False) -> Optional[Any]:
    """
    Fetch a resource row by id.

    Args:
        conn: Active database connection
        resource_id: Resource id
        lock: Take a row lock (SELECT ... FOR UPDATE) for the rest of the
            transaction. Serializes hold acquisition per resource.

    Returns:
        Optional[Row]: the resource row or None
    """
    stmt = select(Resource).where(Resource.id == resource_id)
    if lock:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).fetchone()
