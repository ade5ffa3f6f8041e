"""
Integration tests for quoting and creating booking intents.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import Mock

import pytest
from sqlalchemy.engine import Engine

from resort_booking.db.readers.bookings import get_booking
from resort_booking.errors import (
    BelowMinimumStayError,
    BookingValidationError,
    CollectionNotFoundError,
    InsufficientAvailabilityError,
)
from resort_booking.services.booking_intake import (
    BookingRequest,
    IdentifiedGuest,
    PendingGuest,
    generate_reference_code,
    guest_from_row,
    initiate_booking,
    quote_booking,
)

CHECK_IN = date(2025, 7, 7)  # Monday
CHECK_OUT = date(2025, 7, 10)


@pytest.mark.integration
def test_quote_without_discounts(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection()

    quote = quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT)

    assert quote.price.total_price == Decimal("380.00")
    assert quote.payable_total == Decimal("380.00")
    assert quote.units_required == 1
    assert quote.available_units == 2
    assert quote.affiliate_link_id is None


@pytest.mark.integration
def test_quote_applies_stacked_discounts(
    sqlite_engine: Engine,
    mock_adapter: Mock,
    make_collection: Callable[..., dict[str, Any]],
    make_discount: Callable[..., int],
) -> None:
    collection = make_collection()
    make_discount(collection["collection_id"], Decimal("10"), label="Direct booking")
    make_discount(collection["collection_id"], Decimal("10"), "WEEKDAY", label="Midweek")
    make_discount(collection["collection_id"], Decimal("25"), "WEEKEND", label="Weekend")

    quote = quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT)

    assert quote.discounts.percent == Decimal("20")
    assert quote.price.nightly_rate == Decimal("80.00")
    assert quote.price.total_price == Decimal("314.00")
    assert quote.price.original_total_price == Decimal("380.00")


@pytest.mark.integration
def test_quote_with_active_affiliate_code(
    sqlite_engine: Engine,
    mock_adapter: Mock,
    make_collection: Callable[..., dict[str, Any]],
    make_affiliate: Callable[..., dict[str, Any]],
) -> None:
    collection = make_collection()
    affiliate = make_affiliate()

    quote = quote_booking(
        sqlite_engine,
        mock_adapter,
        collection["collection_id"],
        CHECK_IN,
        CHECK_OUT,
        affiliate_code=affiliate["code"],
    )

    assert quote.affiliate_link_id == affiliate["link_id"]
    assert quote.referral.referral_discount == Decimal("19.00")
    assert quote.payable_total == Decimal("361.00")


@pytest.mark.integration
@pytest.mark.parametrize("code, status", [("UNKNOWN", "ACTIVE"), ("REEF-ALICE", "PAUSED")])
def test_quote_ignores_unknown_or_inactive_codes(
    code: str,
    status: str,
    sqlite_engine: Engine,
    mock_adapter: Mock,
    make_collection: Callable[..., dict[str, Any]],
    make_affiliate: Callable[..., dict[str, Any]],
) -> None:
    collection = make_collection()
    make_affiliate(status=status)

    quote = quote_booking(
        sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT, affiliate_code=code
    )

    assert quote.affiliate_link_id is None
    assert quote.payable_total == Decimal("380.00")


@pytest.mark.integration
def test_quote_for_large_party_needs_several_units(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection(units=3, max_guests_per_unit=4)

    quote = quote_booking(
        sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT, guests=9
    )

    assert quote.units_required == 3
    assert quote.price.subtotal == Decimal("900.00")


@pytest.mark.integration
def test_party_larger_than_collection_is_a_validation_error(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection(units=2, max_guests_per_unit=4)

    with pytest.raises(BookingValidationError):
        quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT, guests=9)


@pytest.mark.integration
def test_quote_below_minimum_stay(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection(min_nights=5)

    with pytest.raises(BelowMinimumStayError) as exc_info:
        quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT)

    assert exc_info.value.min_nights == 5


@pytest.mark.integration
def test_quote_without_rate_is_rejected(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection(base_nightly_rate=None)

    with pytest.raises(BookingValidationError):
        quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT)


@pytest.mark.integration
def test_quote_for_missing_collection(sqlite_engine: Engine, mock_adapter: Mock) -> None:
    with pytest.raises(CollectionNotFoundError):
        quote_booking(sqlite_engine, mock_adapter, 404, CHECK_IN, CHECK_OUT)


@pytest.mark.integration
def test_quote_when_sold_out(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection(units=0)

    with pytest.raises(InsufficientAvailabilityError):
        quote_booking(sqlite_engine, mock_adapter, collection["collection_id"], CHECK_IN, CHECK_OUT)


@pytest.mark.integration
def test_initiate_booking_stores_price_snapshot(
    sqlite_engine: Engine,
    mock_adapter: Mock,
    make_collection: Callable[..., dict[str, Any]],
    make_affiliate: Callable[..., dict[str, Any]],
) -> None:
    collection = make_collection()
    affiliate = make_affiliate()

    booking = initiate_booking(
        sqlite_engine,
        mock_adapter,
        BookingRequest(
            collection_id=collection["collection_id"],
            check_in=CHECK_IN,
            check_out=CHECK_OUT,
            guests=2,
            guest=PendingGuest(name="Ana Lopez", email="ana@example.com"),
            phone="+34 600 000 000",
            affiliate_code=affiliate["code"],
        ),
    )

    assert booking.status == "PENDING_PAYMENT"
    assert re.fullmatch(r"BK-\d{6}-[A-Z2-9]{5}", booking.reference_code)
    with sqlite_engine.connect() as conn:
        row = get_booking(conn, booking.booking_id)
    assert row is not None
    assert row["status"] == "PENDING_PAYMENT"
    assert row["total_price"] == Decimal("361.00")
    assert row["affiliate_discount"] == Decimal("19.00")
    assert row["affiliate_link_id"] == affiliate["link_id"]
    assert row["units_required"] == 1
    assert row["guest_phone"] == "+34 600 000 000"
    assert isinstance(guest_from_row(row), PendingGuest)


@pytest.mark.integration
def test_initiate_booking_for_identified_guest(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection()

    booking = initiate_booking(
        sqlite_engine,
        mock_adapter,
        BookingRequest(
            collection_id=collection["collection_id"],
            check_in=CHECK_IN,
            check_out=CHECK_OUT,
            guests=1,
            guest=IdentifiedGuest(user_id="user-42", name="Ana Lopez", email="ana@example.com"),
        ),
    )

    with sqlite_engine.connect() as conn:
        row = get_booking(conn, booking.booking_id)
    assert row is not None
    assert row["affiliate_discount"] is None
    assert guest_from_row(row) == IdentifiedGuest(
        user_id="user-42", name="Ana Lopez", email="ana@example.com"
    )


@pytest.mark.integration
def test_initiate_booking_requires_guest_contact(
    sqlite_engine: Engine, mock_adapter: Mock, make_collection: Callable[..., dict[str, Any]]
) -> None:
    collection = make_collection()

    with pytest.raises(BookingValidationError):
        initiate_booking(
            sqlite_engine,
            mock_adapter,
            BookingRequest(
                collection_id=collection["collection_id"],
                check_in=CHECK_IN,
                check_out=CHECK_OUT,
                guests=1,
                guest=PendingGuest(name=" ", email="ana@example.com"),
            ),
        )


@pytest.mark.unit
def test_reference_code_format() -> None:
    code = generate_reference_code(datetime(2025, 7, 1, tzinfo=timezone.utc))

    assert code.startswith("BK-202507-")
    assert len(code) == len("BK-202507-") + 5
