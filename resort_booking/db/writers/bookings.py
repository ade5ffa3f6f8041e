from datetime import date, datetime
from typing import Any, Optional

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from resort_booking.models.bookings import Booking, BookingUnit
from resort_booking.models.enums import BookingStatus
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_booking(conn: Connection, data: dict[str, Any]) -> int:
    """
    Insert a booking intent and return its id.

    Args:
        conn (Connection): SQLAlchemy DB connection (within a transaction).
        data (dict[str, Any]): Column values, price snapshot included.

    Returns:
        int: New booking ID.
    """
    now = utc_now()
    row = {**data, "created_at": now, "updated_at": now}
    result = conn.execute(insert(Booking).values(**row))
    booking_id = int(result.inserted_primary_key[0])
    logger.info("booking_inserted", booking_id=booking_id, status=row.get("status"))
    return booking_id


def mark_payment_received(conn: Connection, booking_id: int, payment_reference: Optional[str]) -> None:
    """
    Move a PENDING_PAYMENT booking to PAYMENT_RECEIVED.

    The WHERE clause makes a repeated confirmation a no-op.
    """
    stmt = (
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status == BookingStatus.PENDING_PAYMENT.value,
        )
        .values(
            status=BookingStatus.PAYMENT_RECEIVED.value,
            payment_reference=payment_reference,
            updated_at=utc_now(),
        )
    )
    conn.execute(stmt)


def mark_confirmed(conn: Connection, booking_id: int, confirmed_at: datetime) -> None:
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id)
        .values(
            status=BookingStatus.CONFIRMED.value,
            confirmed_at=confirmed_at,
            updated_at=confirmed_at,
        )
    )
    conn.execute(stmt)


def mark_cancelled(
    conn: Connection,
    booking_ids: list[int],
    cancelled_by: str,
    reason: Optional[str],
    cancelled_at: datetime,
) -> None:
    """
    Cancel one or more bookings, recording actor, reason and timestamp.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_ids (list[int]): Bookings to cancel.
        cancelled_by (str): User ID or system actor performing the cancellation.
        reason (Optional[str]): Free-text cancellation reason.
        cancelled_at (datetime): Cancellation timestamp.
    """
    if not booking_ids:
        return

    stmt = (
        update(Booking)
        .where(Booking.id.in_(booking_ids))
        .values(
            status=BookingStatus.CANCELLED.value,
            cancelled_at=cancelled_at,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
            updated_at=cancelled_at,
        )
    )
    conn.execute(stmt)


def insert_booking_units(
    conn: Connection,
    booking_id: int,
    unit_ids: list[int],
    stay_start: date,
    stay_end: date,
) -> None:
    """
    Allocate units to a booking with no channel reservation yet.

    stay_start/stay_end copy the booking dates for the per-unit overlap
    constraint on PostgreSQL.
    """
    now = utc_now()
    rows = [
        {
            "booking_id": booking_id,
            "unit_id": unit_id,
            "channel_reservation_id": None,
            "stay_start": stay_start,
            "stay_end": stay_end,
            "released_at": None,
            "created_at": now,
        }
        for unit_id in unit_ids
    ]
    if not rows:
        return

    conn.execute(insert(BookingUnit), rows)
    logger.info("booking_units_allocated", booking_id=booking_id, unit_ids=unit_ids)


def set_channel_reservation_ids(
    conn: Connection, booking_id: int, reservation_ids: dict[int, int]
) -> None:
    """
    Store channel reservation ids per allocated unit.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_id (int): Booking ID.
        reservation_ids (dict[int, int]): unit_id -> channel reservation id.
    """
    for unit_id, reservation_id in reservation_ids.items():
        conn.execute(
            update(BookingUnit)
            .where(BookingUnit.booking_id == booking_id, BookingUnit.unit_id == unit_id)
            .values(channel_reservation_id=reservation_id)
        )


def release_booking_units(conn: Connection, booking_ids: list[int], released_at: datetime) -> None:
    if not booking_ids:
        return

    conn.execute(
        update(BookingUnit)
        .where(BookingUnit.booking_id.in_(booking_ids), BookingUnit.released_at.is_(None))
        .values(released_at=released_at)
    )
