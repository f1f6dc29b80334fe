"""
SQLAlchemy engine singleton with production-ready connection pooling.

PostgreSQL is the production database. SQLite URLs are accepted for local runs
and tests: they get a single shared connection and the ``settlement`` schema
is translated away, since SQLite has no schemas.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from booking_settlement.config import DATABASE_URL, SCHEMA

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given database URL.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: configured engine (schema-translated on SQLite)
    """
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return sqlite_engine.execution_options(schema_translate_map={SCHEMA: None})

    return create_engine(
        url,
        future=True,
        # Connection pool settings
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # detect stale connections
        pool_recycle=3600,
        echo=False,
    )


engine: Engine = build_engine(DATABASE_URL)


def check_engine_health(db_engine: Engine | None = None) -> bool:
    """
    Check if the database is reachable.

    Used by the /ready endpoint before the service accepts traffic.

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
