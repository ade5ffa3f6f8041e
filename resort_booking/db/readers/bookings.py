from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from resort_booking.models.bookings import Booking, BookingUnit
from resort_booking.models.enums import OCCUPYING_STATUSES, BookingStatus


def get_booking(conn: Connection, booking_id: int, lock: bool = False) -> Optional[dict[str, Any]]:
    """
    Fetch a booking by id.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_id (int): Booking ID.
        lock (bool): Lock the row for the rest of the transaction.

    Returns:
        Optional[dict[str, Any]]: Booking row or None if not found.
    """
    stmt = select(Booking).where(Booking.id == booking_id)
    if lock:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def get_booking_units(conn: Connection, booking_id: int) -> list[dict[str, Any]]:
    """Units allocated to a booking, in unit id order."""
    stmt = (
        select(BookingUnit)
        .where(BookingUnit.booking_id == booking_id)
        .order_by(BookingUnit.unit_id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def get_occupied_unit_ids(
    conn: Connection, unit_ids: list[int], check_in: date, check_out: date
) -> set[int]:
    """
    Units from unit_ids held by a confirmed or completed booking overlapping the stay.

    Overlap is half-open: a booking checking out on check_in does not collide.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        unit_ids (list[int]): Units to test.
        check_in (date): First night of the requested stay.
        check_out (date): Departure day of the requested stay.

    Returns:
        set[int]: Occupied unit IDs.
    """
    if not unit_ids:
        return set()

    stmt = (
        select(BookingUnit.unit_id)
        .join(Booking, Booking.id == BookingUnit.booking_id)
        .where(
            BookingUnit.unit_id.in_(unit_ids),
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
    )
    return set(conn.execute(stmt).scalars().all())


def list_occupying_stays(
    conn: Connection, unit_ids: list[int], start: date, end: date
) -> list[dict[str, Any]]:
    """
    Occupying stays touching [start, end) for the given units.

    Returns:
        list[dict[str, Any]]: Rows with unit_id, check_in and check_out.
    """
    if not unit_ids:
        return []

    stmt = (
        select(BookingUnit.unit_id, Booking.check_in, Booking.check_out)
        .join(Booking, Booking.id == BookingUnit.booking_id)
        .where(
            BookingUnit.unit_id.in_(unit_ids),
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.check_in < end,
            Booking.check_out > start,
        )
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def list_stale_pending_booking_ids(conn: Connection, created_before: datetime) -> list[int]:
    """IDs of PENDING_PAYMENT bookings created before the cutoff."""
    stmt = (
        select(Booking.id)
        .where(
            Booking.status == BookingStatus.PENDING_PAYMENT.value,
            Booking.created_at < created_before,
        )
        .order_by(Booking.id)
    )
    return list(conn.execute(stmt).scalars().all())


def reference_code_exists(conn: Connection, reference_code: str) -> bool:
    result = conn.execute(
        select(Booking.id).where(Booking.reference_code == reference_code)
    )
    return result.fetchone() is not None


def count_unsynced_booking_units(conn: Connection) -> int:
    """
    Count allocated units of confirmed bookings with no channel reservation.

    These are the rows where remote creation failed after local allocation
    and that need manual reconciliation with the channel manager.
    """
    stmt = (
        select(func.count())
        .select_from(BookingUnit)
        .join(Booking, Booking.id == BookingUnit.booking_id)
        .where(
            Booking.status == BookingStatus.CONFIRMED.value,
            BookingUnit.channel_reservation_id.is_(None),
            BookingUnit.released_at.is_(None),
        )
    )
    return int(conn.execute(stmt).scalar_one())
