from decimal import Decimal

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from resort_booking.models.affiliates import AffiliateLink, AffiliateProfile, AffiliateTransaction
from resort_booking.models.enums import AffiliateLinkStatus
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_affiliate_transaction(
    conn: Connection,
    affiliate_link_id: int,
    booking_id: int,
    commission_amount: Decimal,
    commission_rate: Decimal,
) -> int:
    """
    Record a commission for a booking.

    The unique booking_id column rejects a second commission for the same
    booking with an IntegrityError.

    Returns:
        int: New transaction ID.
    """
    result = conn.execute(
        insert(AffiliateTransaction).values(
            affiliate_link_id=affiliate_link_id,
            booking_id=booking_id,
            commission_amount=commission_amount,
            commission_rate=commission_rate,
            is_paid=False,
            created_at=utc_now(),
        )
    )
    return int(result.inserted_primary_key[0])


def increment_profile_earnings(conn: Connection, user_id: str, amount: Decimal) -> None:
    conn.execute(
        update(AffiliateProfile)
        .where(AffiliateProfile.user_id == user_id)
        .values(total_earned=AffiliateProfile.total_earned + amount)
    )


def increment_link_conversions(conn: Connection, link_id: int) -> None:
    conn.execute(
        update(AffiliateLink)
        .where(AffiliateLink.id == link_id)
        .values(conversion_count=AffiliateLink.conversion_count + 1)
    )


def increment_link_clicks(conn: Connection, code: str) -> bool:
    """
    Count a click on an ACTIVE referral link.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        code (str): Referral code.

    Returns:
        bool: True if an active link was found and incremented.
    """
    result = conn.execute(
        update(AffiliateLink)
        .where(
            AffiliateLink.code == code,
            AffiliateLink.status == AffiliateLinkStatus.ACTIVE.value,
        )
        .values(click_count=AffiliateLink.click_count + 1)
    )
    return result.rowcount > 0
