"""
SQLAlchemy engine singleton for the booking database.

PostgreSQL gets a bounded connection pool sized for concurrent fulfillment
requests. SQLite URLs (local tooling and tests) keep SQLAlchemy's default pool.
"""

from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from resort_booking.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"future": True, "echo": False}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,  # detect connections dropped by the server
            pool_recycle=3600,
        )
    return options


engine: Engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


def check_engine_health(db_engine: Engine = engine) -> bool:
    """
    Check that the database answers a trivial query.

    Used by the /ready endpoint before the service accepts traffic.

    Returns:
        bool: True if database is reachable, False otherwise
    """
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
