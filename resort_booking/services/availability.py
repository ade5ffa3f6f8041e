"""
Availability across the local ledger and the channel manager.

A unit is free for a stay only if neither source blocks it. When the channel
manager cannot be reached the local ledger alone decides (fail open) and the
fallback is logged and counted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from resort_booking.cache import RateCache, rate_cache
from resort_booking.channel.adapter import ChannelAdapter, DayRate
from resort_booking.db.readers.bookings import get_occupied_unit_ids, list_occupying_stays
from resort_booking.db.readers.collections import get_active_collection, list_candidate_units
from resort_booking.errors import (
    BookingValidationError,
    ChannelError,
    CollectionNotFoundError,
    InsufficientAvailabilityError,
)
from resort_booking.metrics import availability_remote_fallbacks
from resort_booking.utils.datetime import iter_nights

logger = structlog.get_logger(__name__)

MAX_CALENDAR_DAYS = 366


@dataclass(frozen=True)
class CandidateUnit:
    id: int
    name: str
    channel_property_id: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CandidateUnit":
        return cls(id=row["id"], name=row["name"], channel_property_id=row["channel_property_id"])


@dataclass(frozen=True)
class AvailabilityReport:
    """
    Result of checking one stay against both sources.

    blocked_count is the size of the union of both exclusion sets, so it is
    never below the larger of the two per-source counts.
    """

    collection_id: int
    check_in: date
    check_out: date
    candidates: list[CandidateUnit] = field(default_factory=list)
    locally_blocked: frozenset[int] = frozenset()
    remotely_blocked: frozenset[int] = frozenset()
    remote_checked: bool = True

    @property
    def blocked(self) -> frozenset[int]:
        return self.locally_blocked | self.remotely_blocked

    @property
    def blocked_count(self) -> int:
        return len(self.blocked)

    @property
    def total_units(self) -> int:
        return len(self.candidates)

    @property
    def available_units(self) -> list[CandidateUnit]:
        blocked = self.blocked
        return [unit for unit in self.candidates if unit.id not in blocked]

    @property
    def available_count(self) -> int:
        return len(self.available_units)


def validate_stay_dates(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise BookingValidationError("Check-out must be after check-in")


def remote_blocked_units(
    adapter: ChannelAdapter,
    candidates: list[CandidateUnit],
    check_in: date,
    check_out: date,
    operation: str = "availability",
) -> tuple[frozenset[int], bool]:
    """
    Ask the channel manager which candidates are blocked for any night of the stay.

    Rates are requested for the nights only (check-out day excluded). A unit
    missing from the response is not treated as blocked.

    Returns:
        tuple[frozenset[int], bool]: Blocked unit IDs and whether the remote
        check succeeded. On failure the set is empty.
    """
    if not candidates:
        return frozenset(), True

    last_night = check_out - timedelta(days=1)
    by_property = {unit.channel_property_id: unit.id for unit in candidates}
    try:
        rates = adapter.list_unit_day_rates(list(by_property), check_in, last_night)
    except ChannelError as e:
        availability_remote_fallbacks.labels(operation=operation).inc()
        logger.warning(
            "availability_remote_check_failed",
            operation=operation,
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
            error=str(e),
        )
        return frozenset(), False

    blocked = set()
    for property_id, day_rates in rates.items():
        unit_id = by_property.get(property_id)
        if unit_id is None:
            continue
        if any(
            not rate.available for rate in day_rates if check_in <= rate.day < check_out
        ):
            blocked.add(unit_id)
    return frozenset(blocked), True


def resolve_availability(
    engine: Engine,
    adapter: ChannelAdapter,
    collection_id: int,
    check_in: date,
    check_out: date,
) -> AvailabilityReport:
    """
    Determine which units of a collection are free for [check_in, check_out).

    Args:
        engine (Engine): SQLAlchemy engine.
        adapter (ChannelAdapter): Channel manager adapter.
        collection_id (int): Collection to check.
        check_in (date): First night.
        check_out (date): Departure day.

    Returns:
        AvailabilityReport: Candidates and the units blocked by each source.

    Raises:
        BookingValidationError: check_out is not after check_in.
    """
    validate_stay_dates(check_in, check_out)

    with engine.connect() as conn:
        candidates = [
            CandidateUnit.from_row(row) for row in list_candidate_units(conn, collection_id)
        ]
        local = get_occupied_unit_ids(conn, [u.id for u in candidates], check_in, check_out)

    # The remote call happens with no connection held
    remote, remote_checked = remote_blocked_units(adapter, candidates, check_in, check_out)

    report = AvailabilityReport(
        collection_id=collection_id,
        check_in=check_in,
        check_out=check_out,
        candidates=candidates,
        locally_blocked=frozenset(local),
        remotely_blocked=remote,
        remote_checked=remote_checked,
    )
    logger.info(
        "availability_resolved",
        collection_id=collection_id,
        total_units=report.total_units,
        locally_blocked=len(report.locally_blocked),
        remotely_blocked=len(report.remotely_blocked),
        available=report.available_count,
        remote_checked=remote_checked,
    )
    return report


def select_units(report: AvailabilityReport, count: int) -> list[CandidateUnit]:
    """
    Pick the first `count` free units in ascending id order.

    Raises:
        InsufficientAvailabilityError: Fewer than `count` units are free.
    """
    available = report.available_units
    if len(available) < count:
        raise InsufficientAvailabilityError(required=count, available=len(available))
    return available[:count]


@dataclass(frozen=True)
class CalendarDay:
    day: date
    available_units: int
    total_units: int
    price: Optional[Decimal]


def availability_calendar(
    engine: Engine,
    adapter: ChannelAdapter,
    collection_id: int,
    start: date,
    end: date,
    cache: RateCache = rate_cache,
) -> list[CalendarDay]:
    """
    Free-unit count and nightly price per date in [start, end), for display.

    Channel day rates come from a short-lived cache; this is never used to
    decide an allocation. If the channel manager is unreachable each date is
    counted against the local ledger only.

    Raises:
        CollectionNotFoundError: Collection missing or inactive.
        BookingValidationError: Empty or oversized window.
    """
    validate_stay_dates(start, end)
    if (end - start).days > MAX_CALENDAR_DAYS:
        raise BookingValidationError(f"Calendar window is limited to {MAX_CALENDAR_DAYS} days")

    with engine.connect() as conn:
        collection = get_active_collection(conn, collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        candidates = [
            CandidateUnit.from_row(row) for row in list_candidate_units(conn, collection_id)
        ]
        unit_ids = [u.id for u in candidates]
        stays = list_occupying_stays(conn, unit_ids, start, end)

    property_ids = [u.channel_property_id for u in candidates]
    last_day = end - timedelta(days=1)
    rates: Optional[dict[int, list[DayRate]]] = None
    if property_ids:
        rates = cache.get(property_ids, start, last_day)
        if rates is None:
            try:
                rates = adapter.list_unit_day_rates(property_ids, start, last_day)
                cache.set(property_ids, start, last_day, rates)
            except ChannelError as e:
                availability_remote_fallbacks.labels(operation="calendar").inc()
                logger.warning(
                    "calendar_remote_check_failed", collection_id=collection_id, error=str(e)
                )

    remote_unavailable: dict[date, set[int]] = {}
    if rates:
        by_property = {u.channel_property_id: u.id for u in candidates}
        for property_id, day_rates in rates.items():
            unit_id = by_property.get(property_id)
            if unit_id is None:
                continue
            for rate in day_rates:
                if not rate.available:
                    remote_unavailable.setdefault(rate.day, set()).add(unit_id)

    price = collection["base_nightly_rate"]
    days = []
    for day in iter_nights(start, end):
        blocked = {
            stay["unit_id"]
            for stay in stays
            if stay["check_in"] <= day < stay["check_out"]
        }
        blocked |= remote_unavailable.get(day, set())
        days.append(
            CalendarDay(
                day=day,
                available_units=len(candidates) - len(blocked),
                total_units=len(candidates),
                price=Decimal(str(price)) if price is not None else None,
            )
        )
    return days
