from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from resort_booking.models.collections import Collection, Discount, Unit
from resort_booking.models.enums import UnitStatus


def get_active_collection(conn: Connection, collection_id: int) -> Optional[dict[str, Any]]:
    """
    Fetch pricing and capacity settings for an active collection.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        collection_id (int): Collection ID.

    Returns:
        Optional[dict[str, Any]]: Collection row or None if missing or inactive.
    """
    row = (
        conn.execute(
            select(Collection).where(
                Collection.id == collection_id, Collection.is_active.is_(True)
            )
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def list_candidate_units(
    conn: Connection, collection_id: int, lock: bool = False
) -> list[dict[str, Any]]:
    """
    List sellable units of a collection in ascending id order.

    Only AVAILABLE units linked to a channel property can be sold.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        collection_id (int): Collection ID.
        lock (bool): Take row locks (SELECT ... FOR UPDATE) inside a transaction.

    Returns:
        list[dict[str, Any]]: Rows with id, name and channel_property_id.
    """
    stmt = (
        select(Unit.id, Unit.name, Unit.channel_property_id)
        .where(
            Unit.collection_id == collection_id,
            Unit.status == UnitStatus.AVAILABLE.value,
            Unit.channel_property_id.is_not(None),
        )
        .order_by(Unit.id)
    )
    if lock:
        stmt = stmt.with_for_update()
    return [dict(row) for row in conn.execute(stmt).mappings()]


def list_active_discounts(conn: Connection, collection_id: int) -> list[dict[str, Any]]:
    """Active discount rules of a collection, oldest first."""
    stmt = (
        select(Discount)
        .where(Discount.collection_id == collection_id, Discount.is_active.is_(True))
        .order_by(Discount.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]
