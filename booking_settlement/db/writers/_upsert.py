"""
Dialect-aware upsert helper.

PostgreSQL and SQLite both support ``INSERT ... ON CONFLICT DO UPDATE`` with
the same SQLAlchemy API, so the writer only has to pick the right ``insert``
construct for the connection it is given.
"""

from typing import Any, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def dialect_insert(conn: Connection, table: type) -> Any:
    """Return an ``insert()`` for ``table`` that supports ``on_conflict_*``."""
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def upsert_rows(
    conn: Connection,
    table: type,
    rows: list[dict[str, Any]],
    conflict_column: str,
    update_columns: Optional[list[str]] = None,
) -> None:
    """
    Insert rows, updating ``update_columns`` when ``conflict_column`` already exists.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., Resource)
        rows: List of row dicts to upsert
        conflict_column: Column name for ON CONFLICT (usually "id")
        update_columns: Columns to overwrite on conflict (default: every
            column in the row except the conflict column and created_at)
    """
    if not rows:
        return

    if update_columns is None:
        update_columns = [c for c in rows[0] if c not in (conflict_column, "created_at")]

    stmt = dialect_insert(conn, table).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=[conflict_column],
        set_={col: getattr(stmt.excluded, col) for col in update_columns},
    )
    conn.execute(stmt)
