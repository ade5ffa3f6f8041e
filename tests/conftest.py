"""
Shared fixtures for unit and integration tests.

Integration tests run against an in-memory SQLite database with the "resort"
schema attached, so no PostgreSQL server is needed. Row locks are no-ops on
SQLite; the overlap constraint and lock behaviour are PostgreSQL-only.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALLOWED_ORIGINS", "*")

from datetime import date, datetime  # noqa: E402
from decimal import Decimal  # noqa: E402
from itertools import count  # noqa: E402
from typing import Any, Callable, Generator, Optional  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, event, insert  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from resort_booking.channel.adapter import ChannelAdapter  # noqa: E402
from resort_booking.config import SCHEMA  # noqa: E402
from resort_booking.models.affiliates import (  # noqa: E402
    AffiliateLink,
    AffiliateProfile,
)
from resort_booking.models.base import Base  # noqa: E402
from resort_booking.models.bookings import Booking, BookingUnit  # noqa: E402
from resort_booking.models.collections import Collection, Discount, Unit  # noqa: E402
from resort_booking.models.outbox import NotificationOutbox  # noqa: E402, F401
from resort_booking.utils.datetime import utc_now  # noqa: E402

_reference_counter = count(1)
_property_counter = count(5000)


@pytest.fixture
def sqlite_engine() -> Generator[Engine, None, None]:
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection alive so the attached schema and its
    tables survive across engine.connect() calls and worker threads.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _attach_schema(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.execute(f"ATTACH DATABASE ':memory:' AS {SCHEMA}")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def mock_adapter() -> Mock:
    """
    Channel adapter double: every unit available, reservation ids 9001, 9002, ...
    """
    adapter = Mock(spec=ChannelAdapter)
    adapter.list_unit_day_rates.return_value = {}
    reservation_ids = count(9001)
    adapter.create_reservation.side_effect = lambda *args, **kwargs: next(reservation_ids)
    adapter.cancel_reservation.return_value = None
    return adapter


@pytest.fixture
def make_collection(sqlite_engine: Engine) -> Callable[..., dict[str, Any]]:
    """
    Factory inserting a collection with `units` sellable units.

    Returns a dict with collection_id, unit_ids and property_ids (aligned by index).
    """

    def _make(
        units: int = 2,
        base_nightly_rate: Optional[Decimal] = Decimal("100.00"),
        cleaning_fee: Decimal = Decimal("50.00"),
        service_fee_percent: Decimal = Decimal("10"),
        min_nights: int = 1,
        max_guests_per_unit: int = 6,
        is_active: bool = True,
    ) -> dict[str, Any]:
        with sqlite_engine.begin() as conn:
            collection_id = conn.execute(
                insert(Collection).values(
                    name="Reef Villas",
                    slug=f"reef-villas-{next(_property_counter)}",
                    is_active=is_active,
                    base_nightly_rate=base_nightly_rate,
                    cleaning_fee=cleaning_fee,
                    service_fee_percent=service_fee_percent,
                    min_nights=min_nights,
                    max_guests_per_unit=max_guests_per_unit,
                )
            ).inserted_primary_key[0]

            unit_ids, property_ids = [], []
            for index in range(units):
                property_id = next(_property_counter)
                unit_id = conn.execute(
                    insert(Unit).values(
                        collection_id=collection_id,
                        name=f"Villa {index + 1}",
                        status="AVAILABLE",
                        channel_property_id=property_id,
                    )
                ).inserted_primary_key[0]
                unit_ids.append(unit_id)
                property_ids.append(property_id)

        return {
            "collection_id": collection_id,
            "unit_ids": unit_ids,
            "property_ids": property_ids,
        }

    return _make


@pytest.fixture
def make_discount(sqlite_engine: Engine) -> Callable[..., int]:
    def _make(
        collection_id: int,
        percent: Decimal,
        condition_type: str = "ALWAYS",
        condition_value: Optional[dict[str, Any]] = None,
        label: str = "Discount",
    ) -> int:
        with sqlite_engine.begin() as conn:
            return conn.execute(
                insert(Discount).values(
                    collection_id=collection_id,
                    label=label,
                    percent=percent,
                    condition_type=condition_type,
                    condition_value=condition_value,
                    is_active=True,
                )
            ).inserted_primary_key[0]

    return _make


@pytest.fixture
def make_affiliate(sqlite_engine: Engine) -> Callable[..., dict[str, Any]]:
    """Factory inserting an affiliate profile and its referral link."""

    def _make(
        code: str = "REEF-ALICE",
        user_id: str = "user-alice",
        commission_rate: Decimal = Decimal("10"),
        booking_commission_rate: Optional[Decimal] = None,
        status: str = "ACTIVE",
    ) -> dict[str, Any]:
        with sqlite_engine.begin() as conn:
            conn.execute(
                insert(AffiliateProfile).values(
                    user_id=user_id, email=f"{user_id}@example.com", name="Alice", total_earned=0
                )
            )
            link_id = conn.execute(
                insert(AffiliateLink).values(
                    code=code,
                    affiliate_user_id=user_id,
                    commission_rate=commission_rate,
                    booking_commission_rate=booking_commission_rate,
                    status=status,
                    click_count=0,
                    conversion_count=0,
                )
            ).inserted_primary_key[0]
        return {"link_id": link_id, "code": code, "user_id": user_id}

    return _make


@pytest.fixture
def make_booking(sqlite_engine: Engine) -> Callable[..., int]:
    """
    Factory inserting a booking row directly, bypassing quoting.

    Defaults describe a 3-night, single-unit stay paid at 380.00.
    """

    def _make(
        collection_id: int,
        check_in: date = date(2025, 7, 1),
        check_out: date = date(2025, 7, 4),
        status: str = "PAYMENT_RECEIVED",
        created_at: Optional[datetime] = None,
        **overrides: Any,
    ) -> int:
        now = created_at or utc_now()
        row = {
            "reference_code": f"BK-TEST-{next(_reference_counter):05d}",
            "collection_id": collection_id,
            "guest_kind": "PENDING",
            "user_id": None,
            "guest_name": "Ana Lopez",
            "guest_email": "ana@example.com",
            "guest_phone": None,
            "guest_notes": None,
            "check_in": check_in,
            "check_out": check_out,
            "number_of_guests": 2,
            "units_required": 1,
            "nightly_rate": Decimal("100.00"),
            "total_nights": (check_out - check_in).days,
            "subtotal": Decimal("300.00"),
            "cleaning_fee": Decimal("50.00"),
            "service_fee": Decimal("30.00"),
            "total_price": Decimal("380.00"),
            "status": status,
            "source": "DIRECT",
            "created_at": now,
            "updated_at": now,
            **overrides,
        }
        with sqlite_engine.begin() as conn:
            return conn.execute(insert(Booking).values(**row)).inserted_primary_key[0]

    return _make


@pytest.fixture
def allocate_units(sqlite_engine: Engine) -> Callable[..., None]:
    """Factory attaching booking_units rows to a booking, covering its stay."""

    def _allocate(
        booking_id: int,
        unit_ids: list[int],
        stay_start: date = date(2025, 7, 1),
        stay_end: date = date(2025, 7, 4),
        channel_reservation_id: Optional[int] = None,
    ) -> None:
        with sqlite_engine.begin() as conn:
            conn.execute(
                insert(BookingUnit),
                [
                    {
                        "booking_id": booking_id,
                        "unit_id": unit_id,
                        "channel_reservation_id": channel_reservation_id,
                        "stay_start": stay_start,
                        "stay_end": stay_end,
                    }
                    for unit_id in unit_ids
                ],
            )

    return _allocate
