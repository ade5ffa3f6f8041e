from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from resort_booking.models.enums import NotificationKind, NotificationStatus
from resort_booking.models.outbox import NotificationOutbox
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def enqueue_notification(conn: Connection, kind: NotificationKind, payload: dict[str, Any]) -> int:
    """
    Queue a notification in the caller's transaction.

    Args:
        conn (Connection): SQLAlchemy DB connection (within a transaction).
        kind (NotificationKind): Which notification to send.
        payload (dict[str, Any]): JSON-serialisable notification data.

    Returns:
        int: Outbox row ID.
    """
    result = conn.execute(
        insert(NotificationOutbox).values(
            kind=kind.value,
            payload=payload,
            status=NotificationStatus.PENDING.value,
            attempts=0,
            created_at=utc_now(),
        )
    )
    notification_id = int(result.inserted_primary_key[0])
    logger.debug("notification_enqueued", notification_id=notification_id, kind=kind.value)
    return notification_id


def mark_notification_sent(conn: Connection, notification_id: int, sent_at: datetime) -> None:
    conn.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id == notification_id)
        .values(
            status=NotificationStatus.SENT.value,
            attempts=NotificationOutbox.attempts + 1,
            sent_at=sent_at,
            last_error=None,
        )
    )


def mark_notification_failed(
    conn: Connection, notification_id: int, attempts: int, error: str, max_attempts: int
) -> None:
    """
    Record a failed delivery attempt.

    The row stays PENDING for another attempt until max_attempts is reached,
    then becomes FAILED.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        notification_id (int): Outbox row ID.
        attempts (int): Attempts made so far, this one included.
        error (str): Error message of this attempt.
        max_attempts (int): Attempts allowed before the row is marked FAILED.
    """
    status = (
        NotificationStatus.FAILED.value if attempts >= max_attempts else NotificationStatus.PENDING.value
    )
    conn.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id == notification_id)
        .values(status=status, attempts=attempts, last_error=error[:1000])
    )
