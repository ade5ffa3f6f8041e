from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Connection

from resort_booking.models.enums import NotificationStatus
from resort_booking.models.outbox import NotificationOutbox


def list_pending_notifications(conn: Connection, limit: int = 100) -> list[dict[str, Any]]:
    """
    Oldest undelivered notifications first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        limit (int): Maximum rows to return.

    Returns:
        list[dict[str, Any]]: Outbox rows still in PENDING status.
    """
    stmt = (
        select(NotificationOutbox)
        .where(NotificationOutbox.status == NotificationStatus.PENDING.value)
        .order_by(NotificationOutbox.id)
        .limit(limit)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]
