"""Affiliate commission on confirmed bookings, recorded exactly once per booking."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from resort_booking.db.readers.affiliates import (
    get_link,
    get_profile,
    transaction_exists_for_booking,
)
from resort_booking.db.readers.bookings import get_booking
from resort_booking.db.writers.affiliates import (
    increment_link_conversions,
    increment_profile_earnings,
    insert_affiliate_transaction,
)
from resort_booking.db.writers.outbox import enqueue_notification
from resort_booking.errors import BookingNotFoundError
from resort_booking.metrics import commissions_recorded
from resort_booking.models.enums import OCCUPYING_STATUSES, NotificationKind
from resort_booking.pricing.quote import HUNDRED, round_money

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CommissionResult:
    booking_id: int
    recorded: bool
    reason: str
    transaction_id: Optional[int] = None
    amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None


def commission_base(total_price: Decimal, affiliate_discount: Optional[Decimal]) -> Decimal:
    """Pre-referral total: what the guest paid plus the referral discount they got."""
    return round_money(Decimal(str(total_price)) + Decimal(str(affiliate_discount or 0)))


def commission_amount(base: Decimal, rate: Decimal) -> Decimal:
    return round_money(Decimal(str(base)) * Decimal(str(rate)) / HUNDRED)


def record_booking_commission(engine: Engine, booking_id: int) -> CommissionResult:
    """
    Record the affiliate commission for a confirmed booking.

    Skips bookings that are not CONFIRMED/COMPLETED, have no affiliate link, or
    already have a commission. The unique booking_id on affiliate_transactions
    settles two concurrent callers: the loser gets an IntegrityError and skips.

    Args:
        engine (Engine): SQLAlchemy engine.
        booking_id (int): Booking ID.

    Returns:
        CommissionResult: Whether a commission was recorded, and why not otherwise.

    Raises:
        BookingNotFoundError: Booking does not exist.
    """
    try:
        with engine.begin() as conn:
            booking = get_booking(conn, booking_id)
            if booking is None:
                raise BookingNotFoundError(booking_id)
            if booking["status"] not in OCCUPYING_STATUSES:
                return CommissionResult(booking_id, recorded=False, reason="not_confirmed")
            link_id = booking["affiliate_link_id"]
            if link_id is None:
                return CommissionResult(booking_id, recorded=False, reason="no_affiliate")
            if transaction_exists_for_booking(conn, booking_id):
                logger.info("commission_already_recorded", booking_id=booking_id)
                return CommissionResult(booking_id, recorded=False, reason="already_recorded")

            link = get_link(conn, link_id)
            if link is None:
                logger.warning("commission_link_missing", booking_id=booking_id, link_id=link_id)
                return CommissionResult(booking_id, recorded=False, reason="link_missing")

            rate = Decimal(str(
                link["booking_commission_rate"]
                if link["booking_commission_rate"] is not None
                else link["commission_rate"]
            ))
            base = commission_base(booking["total_price"], booking["affiliate_discount"])
            amount = commission_amount(base, rate)

            transaction_id = insert_affiliate_transaction(conn, link_id, booking_id, amount, rate)
            increment_profile_earnings(conn, link["affiliate_user_id"], amount)
            increment_link_conversions(conn, link_id)

            profile = get_profile(conn, link["affiliate_user_id"])
            enqueue_notification(
                conn,
                NotificationKind.COMMISSION_EARNED,
                {
                    "affiliate_user_id": link["affiliate_user_id"],
                    "affiliate_email": profile["email"] if profile else None,
                    "booking_id": booking_id,
                    "reference_code": booking["reference_code"],
                    "commission_base": str(base),
                    "commission_rate": str(rate),
                    "commission_amount": str(amount),
                },
            )
    except IntegrityError:
        with engine.connect() as conn:
            if not transaction_exists_for_booking(conn, booking_id):
                raise
        logger.info("commission_recorded_concurrently", booking_id=booking_id)
        return CommissionResult(booking_id, recorded=False, reason="already_recorded")

    commissions_recorded.inc()
    logger.info(
        "commission_recorded",
        booking_id=booking_id,
        link_id=link_id,
        transaction_id=transaction_id,
        amount=str(amount),
        rate=str(rate),
    )
    return CommissionResult(
        booking_id,
        recorded=True,
        reason="recorded",
        transaction_id=transaction_id,
        amount=amount,
        rate=rate,
    )
