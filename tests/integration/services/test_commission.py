"""
Integration tests for exactly-once affiliate commission recording.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from resort_booking.db.readers.affiliates import get_link, get_profile
from resort_booking.db.writers.affiliates import insert_affiliate_transaction
from resort_booking.errors import BookingNotFoundError
from resort_booking.models.affiliates import AffiliateTransaction
from resort_booking.services.commission import (
    commission_amount,
    commission_base,
    record_booking_commission,
)


@pytest.fixture
def affiliate_booking(
    make_collection: Callable[..., dict[str, Any]],
    make_booking: Callable[..., int],
    make_affiliate: Callable[..., dict[str, Any]],
) -> Callable[..., tuple[int, dict[str, Any]]]:
    """Confirmed booking paid 361.00 after a 19.00 referral discount."""

    def _make(**affiliate_kwargs: Any) -> tuple[int, dict[str, Any]]:
        collection = make_collection()
        affiliate = make_affiliate(**affiliate_kwargs)
        booking_id = make_booking(
            collection["collection_id"],
            status="CONFIRMED",
            affiliate_link_id=affiliate["link_id"],
            total_price=Decimal("361.00"),
            affiliate_discount=Decimal("19.00"),
        )
        return booking_id, affiliate

    return _make


def transaction_count(engine: Engine, booking_id: int) -> int:
    with engine.connect() as conn:
        return conn.execute(
            select(func.count())
            .select_from(AffiliateTransaction)
            .where(AffiliateTransaction.booking_id == booking_id)
        ).scalar_one()


@pytest.mark.unit
def test_commission_is_computed_on_pre_referral_total() -> None:
    base = commission_base(Decimal("361.00"), Decimal("19.00"))

    assert base == Decimal("380.00")
    assert commission_amount(base, Decimal("10")) == Decimal("38.00")
    assert commission_base(Decimal("380.00"), None) == Decimal("380.00")


@pytest.mark.integration
def test_commission_recorded_once(
    sqlite_engine: Engine, affiliate_booking: Callable[..., tuple[int, dict[str, Any]]]
) -> None:
    booking_id, affiliate = affiliate_booking()

    first = record_booking_commission(sqlite_engine, booking_id)
    second = record_booking_commission(sqlite_engine, booking_id)

    assert first.recorded is True
    assert first.amount == Decimal("38.00")
    assert first.rate == Decimal("10")
    assert second.recorded is False
    assert second.reason == "already_recorded"
    assert transaction_count(sqlite_engine, booking_id) == 1

    with sqlite_engine.connect() as conn:
        profile = get_profile(conn, affiliate["user_id"])
        link = get_link(conn, affiliate["link_id"])
    assert profile is not None and link is not None
    assert profile["total_earned"] == Decimal("38.00")
    assert link["conversion_count"] == 1


@pytest.mark.integration
def test_booking_specific_rate_takes_precedence(
    sqlite_engine: Engine, affiliate_booking: Callable[..., tuple[int, dict[str, Any]]]
) -> None:
    booking_id, _ = affiliate_booking(booking_commission_rate=Decimal("12.5"))

    result = record_booking_commission(sqlite_engine, booking_id)

    assert result.rate == Decimal("12.5")
    assert result.amount == Decimal("47.50")


@pytest.mark.integration
def test_concurrent_recording_loses_on_unique_booking(
    sqlite_engine: Engine, affiliate_booking: Callable[..., tuple[int, dict[str, Any]]]
) -> None:
    """
    Another worker inserts the transaction between our check and our insert:
    the unique constraint rejects ours and the call reports already_recorded.
    """
    booking_id, affiliate = affiliate_booking()
    with sqlite_engine.begin() as conn:
        insert_affiliate_transaction(
            conn, affiliate["link_id"], booking_id, Decimal("38.00"), Decimal("10")
        )

    # The pre-check ran before the competitor committed
    with patch(
        "resort_booking.services.commission.transaction_exists_for_booking",
        side_effect=[False, True],
    ):
        result = record_booking_commission(sqlite_engine, booking_id)

    assert result.recorded is False
    assert result.reason == "already_recorded"
    assert transaction_count(sqlite_engine, booking_id) == 1


@pytest.mark.integration
def test_unrelated_integrity_error_propagates(
    sqlite_engine: Engine, affiliate_booking: Callable[..., tuple[int, dict[str, Any]]]
) -> None:
    booking_id, _ = affiliate_booking()
    error = IntegrityError("INSERT", {}, Exception("some other constraint"))

    with patch("resort_booking.services.commission.insert_affiliate_transaction", side_effect=error):
        with pytest.raises(IntegrityError):
            record_booking_commission(sqlite_engine, booking_id)


@pytest.mark.integration
def test_no_commission_before_confirmation(
    sqlite_engine: Engine,
    make_collection: Callable[..., dict[str, Any]],
    make_booking: Callable[..., int],
    make_affiliate: Callable[..., dict[str, Any]],
) -> None:
    collection = make_collection()
    affiliate = make_affiliate()
    booking_id = make_booking(
        collection["collection_id"], status="PAYMENT_RECEIVED", affiliate_link_id=affiliate["link_id"]
    )

    result = record_booking_commission(sqlite_engine, booking_id)

    assert result.reason == "not_confirmed"
    assert transaction_count(sqlite_engine, booking_id) == 0


@pytest.mark.integration
def test_no_commission_without_affiliate(
    sqlite_engine: Engine,
    make_collection: Callable[..., dict[str, Any]],
    make_booking: Callable[..., int],
) -> None:
    collection = make_collection()
    booking_id = make_booking(collection["collection_id"], status="CONFIRMED")

    assert record_booking_commission(sqlite_engine, booking_id).reason == "no_affiliate"


@pytest.mark.integration
def test_commission_for_missing_booking(sqlite_engine: Engine) -> None:
    with pytest.raises(BookingNotFoundError):
        record_booking_commission(sqlite_engine, 404)
