from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from resort_booking.models.affiliates import AffiliateLink, AffiliateProfile, AffiliateTransaction


def get_link_by_code(conn: Connection, code: str) -> Optional[dict[str, Any]]:
    """
    Look up an affiliate link by its referral code.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        code (str): Referral code as captured by the attribution tracker.

    Returns:
        Optional[dict[str, Any]]: Link row or None if the code is unknown.
    """
    row = (
        conn.execute(select(AffiliateLink).where(AffiliateLink.code == code))
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def get_link(conn: Connection, link_id: int) -> Optional[dict[str, Any]]:
    row = (
        conn.execute(select(AffiliateLink).where(AffiliateLink.id == link_id))
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def transaction_exists_for_booking(conn: Connection, booking_id: int) -> bool:
    result = conn.execute(
        select(AffiliateTransaction.id).where(AffiliateTransaction.booking_id == booking_id)
    )
    return result.fetchone() is not None


def get_profile(conn: Connection, user_id: str) -> Optional[dict[str, Any]]:
    row = (
        conn.execute(select(AffiliateProfile).where(AffiliateProfile.user_id == user_id))
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None
