"""
Booking fulfillment orchestrator.

State machine:
    PENDING_PAYMENT -> PAYMENT_RECEIVED -> CONFIRMED -> COMPLETED
    any state except COMPLETED -> CANCELLED

Local allocation is the source of truth. Units are allocated in one
transaction that locks the booking and candidate unit rows; channel manager
calls happen afterwards with no lock held, and their failures are recorded per
unit instead of failing the booking.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from math import ceil
from typing import Any, Callable, Optional, TypeVar

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from resort_booking.channel.adapter import ChannelAdapter, ChannelGuest
from resort_booking.config import CHANNEL_MAX_CONCURRENT_REQUESTS, STALE_BOOKING_DAYS
from resort_booking.db.readers.bookings import (
    get_booking,
    get_booking_units,
    get_occupied_unit_ids,
    list_stale_pending_booking_ids,
)
from resort_booking.db.readers.collections import list_candidate_units
from resort_booking.db.writers.bookings import (
    insert_booking_units,
    mark_cancelled,
    mark_confirmed,
    mark_payment_received,
    release_booking_units,
    set_channel_reservation_ids,
)
from resort_booking.db.writers.outbox import enqueue_notification
from resort_booking.errors import (
    AllocationRaceLostError,
    BookingNotFoundError,
    InsufficientAvailabilityError,
    InvalidBookingStateError,
)
from resort_booking.metrics import (
    allocation_races,
    bookings_cancelled,
    fulfillment_outcomes,
    remote_reservation_failures,
)
from resort_booking.models.enums import OCCUPYING_STATUSES, BookingStatus, NotificationKind
from resort_booking.pricing.quote import round_money
from resort_booking.services.availability import CandidateUnit, remote_blocked_units
from resort_booking.services.commission import record_booking_commission
from resort_booking.services.notifications import Notifier, dispatch_pending_notifications
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ALLOCATION_ATTEMPTS = 2


@dataclass(frozen=True)
class AllocatedUnit:
    unit_id: int
    channel_reservation_id: Optional[int]


@dataclass(frozen=True)
class FulfillmentResult:
    booking_id: int
    status: str
    units: list[AllocatedUnit] = field(default_factory=list)
    already_fulfilled: bool = False
    remote_failures: dict[int, str] = field(default_factory=dict)

    @property
    def fully_synced(self) -> bool:
        return all(u.channel_reservation_id is not None for u in self.units)


@dataclass(frozen=True)
class CancellationResult:
    booking_id: int
    status: str
    already_cancelled: bool = False
    remote_failures: dict[int, str] = field(default_factory=dict)


def _booking_payload(booking: dict[str, Any], unit_ids: list[int]) -> dict[str, Any]:
    return {
        "booking_id": booking["id"],
        "reference_code": booking["reference_code"],
        "guest_name": booking["guest_name"],
        "guest_email": booking["guest_email"],
        "collection_id": booking["collection_id"],
        "check_in": booking["check_in"].isoformat(),
        "check_out": booking["check_out"].isoformat(),
        "number_of_guests": booking["number_of_guests"],
        "total_price": str(booking["total_price"]),
        "unit_ids": unit_ids,
    }


def _run_per_unit(
    items: dict[int, Callable[[], T]], operation: str, booking_id: int
) -> tuple[dict[int, T], dict[int, str]]:
    """
    Run one channel call per unit concurrently and collect results and failures separately.

    Args:
        items: unit_id -> zero-argument callable making the remote call.
        operation: Label for logs and metrics (create or cancel).
        booking_id: Booking being processed, for logs.

    Returns:
        Results and error messages, both keyed by unit_id.
    """
    results: dict[int, T] = {}
    failures: dict[int, str] = {}
    if not items:
        return results, failures

    workers = max(1, min(CHANNEL_MAX_CONCURRENT_REQUESTS, len(items)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(call): unit_id for unit_id, call in items.items()}
        for future in as_completed(futures):
            unit_id = futures[future]
            try:
                results[unit_id] = future.result()
            except Exception as e:
                failures[unit_id] = str(e)
                remote_reservation_failures.labels(operation=operation).inc()
                logger.warning(
                    "channel_unit_call_failed",
                    operation=operation,
                    booking_id=booking_id,
                    unit_id=unit_id,
                    error=str(e),
                )
    return results, failures


def _existing_result(conn: Connection, booking: dict[str, Any]) -> FulfillmentResult:
    units = [
        AllocatedUnit(unit_id=row["unit_id"], channel_reservation_id=row["channel_reservation_id"])
        for row in get_booking_units(conn, booking["id"])
    ]
    return FulfillmentResult(
        booking_id=booking["id"],
        status=booking["status"],
        units=units,
        already_fulfilled=True,
    )


def _dispatch(engine: Engine, notifier: Optional[Notifier]) -> None:
    if notifier is None:
        return
    try:
        dispatch_pending_notifications(engine, notifier)
    except Exception as e:
        logger.exception("notification_dispatch_failed", error=str(e))


def _record_commission(engine: Engine, booking: dict[str, Any]) -> None:
    """Record the affiliate commission; safe to repeat, a recorded one is skipped."""
    if booking["affiliate_link_id"] is None:
        return
    try:
        record_booking_commission(engine, booking["id"])
    except Exception as e:
        logger.exception("commission_recording_failed", booking_id=booking["id"], error=str(e))


def confirm_payment(
    engine: Engine,
    adapter: ChannelAdapter,
    booking_id: int,
    payment_reference: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> FulfillmentResult:
    """
    Record a successful payment and fulfill the booking.

    Safe to call repeatedly (payment provider webhooks retry): a booking that
    is already paid or confirmed is not modified again.

    Raises:
        BookingNotFoundError: Booking does not exist.
        InvalidBookingStateError: Booking was cancelled.
        InsufficientAvailabilityError: No units left; booking stays PAYMENT_RECEIVED.
    """
    with engine.begin() as conn:
        booking = get_booking(conn, booking_id, lock=True)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if booking["status"] == BookingStatus.CANCELLED.value:
            raise InvalidBookingStateError(booking_id, booking["status"])
        if booking["status"] == BookingStatus.PENDING_PAYMENT.value:
            mark_payment_received(conn, booking_id, payment_reference)
            logger.info("booking_payment_received", booking_id=booking_id)

    return fulfill_booking(engine, adapter, booking_id, notifier=notifier)


def _free_unit_count(
    engine: Engine, booking: dict[str, Any], remotely_blocked: frozenset[int]
) -> int:
    with engine.connect() as conn:
        unit_ids = [row["id"] for row in list_candidate_units(conn, booking["collection_id"])]
        occupied = get_occupied_unit_ids(conn, unit_ids, booking["check_in"], booking["check_out"])
    return len([uid for uid in unit_ids if uid not in occupied and uid not in remotely_blocked])


def _allocate(
    engine: Engine, booking_id: int, remotely_blocked: frozenset[int]
) -> Optional[tuple[dict[str, Any], list[CandidateUnit]]]:
    """
    Allocate units and confirm the booking in one transaction.

    Returns None if another request confirmed the booking first.

    Raises:
        InsufficientAvailabilityError: Not enough free units; nothing is written.
        AllocationRaceLostError: The per-unit overlap constraint rejected the insert.
    """
    try:
        with engine.begin() as conn:
            booking = get_booking(conn, booking_id, lock=True)
            if booking is None:
                raise BookingNotFoundError(booking_id)
            if booking["status"] in OCCUPYING_STATUSES:
                return None
            if booking["status"] != BookingStatus.PAYMENT_RECEIVED.value:
                raise InvalidBookingStateError(booking_id, booking["status"])

            candidates = [
                CandidateUnit.from_row(row)
                for row in list_candidate_units(conn, booking["collection_id"], lock=True)
            ]
            occupied = get_occupied_unit_ids(
                conn, [u.id for u in candidates], booking["check_in"], booking["check_out"]
            )
            free = [
                u for u in candidates if u.id not in occupied and u.id not in remotely_blocked
            ]
            required = booking["units_required"] or 1
            if len(free) < required:
                raise InsufficientAvailabilityError(required=required, available=len(free))

            chosen = free[:required]
            chosen_ids = [u.id for u in chosen]
            insert_booking_units(
                conn, booking_id, chosen_ids, booking["check_in"], booking["check_out"]
            )
            confirmed_at = utc_now()
            mark_confirmed(conn, booking_id, confirmed_at)
            enqueue_notification(
                conn,
                NotificationKind.BOOKING_CONFIRMATION,
                _booking_payload(booking, chosen_ids),
            )
    except IntegrityError as e:
        raise AllocationRaceLostError(str(e.orig)) from e

    return booking, chosen


def _cancel_orphaned_reservations(
    engine: Engine,
    adapter: ChannelAdapter,
    booking_id: int,
    chosen: list[CandidateUnit],
    reservation_ids: dict[int, int],
    notifier: Optional[Notifier],
) -> FulfillmentResult:
    """
    Cancel reservations created for a booking that was cancelled meanwhile.

    The cancellation ran while the channel calls were in flight and saw no
    remote ids, so nothing else will release these reservations.
    """
    logger.warning(
        "booking_cancelled_during_fulfillment",
        booking_id=booking_id,
        reservation_ids=reservation_ids,
    )
    calls = {
        unit_id: (lambda reservation_id=reservation_id: adapter.cancel_reservation(reservation_id))
        for unit_id, reservation_id in reservation_ids.items()
    }
    _, failures = _run_per_unit(calls, "cancel", booking_id)
    _dispatch(engine, notifier)

    fulfillment_outcomes.labels(outcome="cancelled").inc()
    return FulfillmentResult(
        booking_id=booking_id,
        status=BookingStatus.CANCELLED.value,
        units=[
            AllocatedUnit(unit_id=u.id, channel_reservation_id=reservation_ids.get(u.id))
            for u in chosen
        ],
        remote_failures=failures,
    )


def fulfill_booking(
    engine: Engine,
    adapter: ChannelAdapter,
    booking_id: int,
    notifier: Optional[Notifier] = None,
) -> FulfillmentResult:
    """
    Allocate units for a paid booking and mirror them on the channel manager.

    Steps:
        1. Return the existing allocation if the booking is already CONFIRMED/COMPLETED.
        2. Ask the channel manager which units are blocked (no transaction open).
        3. In one transaction: lock, re-check the local ledger, insert booking
           units with no remote id, mark CONFIRMED, enqueue the confirmation.
        4. Create one remote reservation per unit concurrently; failures are
           collected per unit and leave that unit's remote id null.
        5. Store the remote ids, record the affiliate commission, dispatch
           notifications. Failures in this step are logged, not raised.

    A booking cancelled while the channel calls were running gets its new
    remote reservations cancelled again instead of confirmed.

    A lost allocation race is retried once with a fresh read.

    Args:
        engine (Engine): SQLAlchemy engine.
        adapter (ChannelAdapter): Channel manager adapter.
        booking_id (int): Booking ID.
        notifier (Optional[Notifier]): If given, pending notifications are delivered at the end.

    Returns:
        FulfillmentResult: Allocated units with their channel reservation ids.

    Raises:
        BookingNotFoundError: Booking does not exist.
        InvalidBookingStateError: Booking is not PAYMENT_RECEIVED (or already confirmed).
        InsufficientAvailabilityError: Not enough free units; booking stays PAYMENT_RECEIVED.
    """
    with engine.connect() as conn:
        booking = get_booking(conn, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        existing: Optional[FulfillmentResult] = None
        candidates: list[CandidateUnit] = []
        if booking["status"] in OCCUPYING_STATUSES:
            existing = _existing_result(conn, booking)
        elif booking["status"] != BookingStatus.PAYMENT_RECEIVED.value:
            raise InvalidBookingStateError(booking_id, booking["status"])
        else:
            candidates = [
                CandidateUnit.from_row(row)
                for row in list_candidate_units(conn, booking["collection_id"])
            ]

    if existing is not None:
        fulfillment_outcomes.labels(outcome="already_fulfilled").inc()
        logger.info("booking_already_fulfilled", booking_id=booking_id)
        # A retry still reaches the commission step if the first pass never did
        _record_commission(engine, booking)
        return existing

    remotely_blocked, _ = remote_blocked_units(
        adapter, candidates, booking["check_in"], booking["check_out"], operation="fulfillment"
    )

    allocation = None
    for attempt in range(1, ALLOCATION_ATTEMPTS + 1):
        try:
            allocation = _allocate(engine, booking_id, remotely_blocked)
            break
        except InsufficientAvailabilityError:
            fulfillment_outcomes.labels(outcome="insufficient_availability").inc()
            logger.warning("booking_allocation_insufficient", booking_id=booking_id)
            raise
        except AllocationRaceLostError as e:
            allocation_races.inc()
            logger.warning(
                "booking_allocation_race_lost", booking_id=booking_id, attempt=attempt, error=str(e)
            )
            if attempt == ALLOCATION_ATTEMPTS:
                fulfillment_outcomes.labels(outcome="insufficient_availability").inc()
                required = booking["units_required"] or 1
                available = _free_unit_count(engine, booking, remotely_blocked)
                raise InsufficientAvailabilityError(required=required, available=available) from e

    if allocation is None:
        # Confirmed by a concurrent request between our read and the lock
        with engine.connect() as conn:
            existing = _existing_result(conn, get_booking(conn, booking_id) or booking)
        fulfillment_outcomes.labels(outcome="already_fulfilled").inc()
        _record_commission(engine, booking)
        return existing

    booking, chosen = allocation
    units_allocated = len(chosen)
    guests_per_unit = ceil(booking["number_of_guests"] / units_allocated)
    price_per_unit = round_money(Decimal(str(booking["total_price"])) / units_allocated)
    guest = ChannelGuest(
        name=booking["guest_name"],
        email=booking["guest_email"],
        phone=booking["guest_phone"],
        notes=booking["guest_notes"],
    )

    calls = {
        unit.id: (
            lambda unit=unit: adapter.create_reservation(
                unit.channel_property_id,
                booking["check_in"],
                booking["check_out"],
                guest,
                guests_per_unit,
                price_per_unit,
            )
        )
        for unit in chosen
    }
    reservation_ids, failures = _run_per_unit(calls, "create", booking_id)

    status = BookingStatus.CONFIRMED.value
    if reservation_ids:
        try:
            with engine.begin() as conn:
                current = get_booking(conn, booking_id, lock=True)
                set_channel_reservation_ids(conn, booking_id, reservation_ids)
                if current is not None:
                    status = current["status"]
        except Exception as e:
            # Remote reservations exist but are not linked; reconciliation picks them up
            logger.exception(
                "channel_reservation_ids_not_stored",
                booking_id=booking_id,
                reservation_ids=reservation_ids,
                error=str(e),
            )
            failures.update({uid: "remote id not stored" for uid in reservation_ids})
            reservation_ids = {}

    if status == BookingStatus.CANCELLED.value:
        return _cancel_orphaned_reservations(
            engine, adapter, booking_id, chosen, reservation_ids, notifier
        )

    _record_commission(engine, booking)
    _dispatch(engine, notifier)

    fulfillment_outcomes.labels(outcome="confirmed").inc()
    logger.info(
        "booking_confirmed",
        booking_id=booking_id,
        unit_ids=[u.id for u in chosen],
        remote_failures=len(failures),
    )
    return FulfillmentResult(
        booking_id=booking_id,
        status=BookingStatus.CONFIRMED.value,
        units=[
            AllocatedUnit(unit_id=u.id, channel_reservation_id=reservation_ids.get(u.id))
            for u in chosen
        ],
        remote_failures=failures,
    )


def _remote_cancel_calls(
    adapter: ChannelAdapter, units: list[dict[str, Any]], skip: Optional[set[int]] = None
) -> dict[int, Callable[[], None]]:
    skip = skip or set()
    return {
        row["unit_id"]: (
            lambda reservation_id=row["channel_reservation_id"]: adapter.cancel_reservation(
                reservation_id
            )
        )
        for row in units
        if row["channel_reservation_id"] is not None
        and row["released_at"] is None
        and row["unit_id"] not in skip
    }


def cancel_booking(
    engine: Engine,
    adapter: ChannelAdapter,
    booking_id: int,
    cancelled_by: str,
    reason: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> CancellationResult:
    """
    Cancel a booking and its channel reservations.

    Cancelling an already cancelled booking succeeds without any remote call.
    Remote cancellation is best effort: a failure is logged and counted, and
    the local cancellation still happens.

    Raises:
        BookingNotFoundError: Booking does not exist.
        InvalidBookingStateError: Booking is COMPLETED.
    """
    with engine.connect() as conn:
        booking = get_booking(conn, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if booking["status"] == BookingStatus.CANCELLED.value:
            logger.info("booking_already_cancelled", booking_id=booking_id)
            return CancellationResult(booking_id, booking["status"], already_cancelled=True)
        if booking["status"] == BookingStatus.COMPLETED.value:
            raise InvalidBookingStateError(booking_id, booking["status"])
        units = get_booking_units(conn, booking_id)

    calls = _remote_cancel_calls(adapter, units)
    _, failures = _run_per_unit(calls, "cancel", booking_id)

    with engine.begin() as conn:
        current = get_booking(conn, booking_id, lock=True)
        if current is None:
            raise BookingNotFoundError(booking_id)
        if current["status"] == BookingStatus.CANCELLED.value:
            return CancellationResult(booking_id, current["status"], already_cancelled=True)
        if current["status"] == BookingStatus.COMPLETED.value:
            raise InvalidBookingStateError(booking_id, current["status"])

        # Fulfillment may have stored remote ids since the snapshot above
        units = get_booking_units(conn, booking_id)
        late_calls = _remote_cancel_calls(adapter, units, skip=set(calls))

        cancelled_at = utc_now()
        mark_cancelled(conn, [booking_id], cancelled_by, reason, cancelled_at)
        release_booking_units(conn, [booking_id], cancelled_at)
        enqueue_notification(
            conn,
            NotificationKind.BOOKING_CANCELLATION,
            {**_booking_payload(current, [row["unit_id"] for row in units]), "reason": reason},
        )

    if late_calls:
        _, late_failures = _run_per_unit(late_calls, "cancel", booking_id)
        failures.update(late_failures)

    bookings_cancelled.labels(reason="manual").inc()
    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        cancelled_by=cancelled_by,
        remote_failures=len(failures),
    )
    _dispatch(engine, notifier)
    return CancellationResult(
        booking_id, BookingStatus.CANCELLED.value, remote_failures=failures
    )


def cancel_stale_bookings(
    engine: Engine,
    cancelled_by: str = "system",
    older_than_days: int = STALE_BOOKING_DAYS,
    now: Optional[datetime] = None,
) -> list[int]:
    """
    Cancel booking intents left in PENDING_PAYMENT for longer than the cutoff.

    These bookings hold no units and no channel reservations, so nothing is
    released remotely.

    Returns:
        list[int]: IDs of the cancelled bookings.
    """
    now = now or utc_now()
    cutoff = now - timedelta(days=older_than_days)
    reason = f"Payment not received within {older_than_days} days"

    with engine.begin() as conn:
        booking_ids = list_stale_pending_booking_ids(conn, cutoff)
        mark_cancelled(conn, booking_ids, cancelled_by, reason, now)

    if booking_ids:
        bookings_cancelled.labels(reason="stale").inc(len(booking_ids))
    logger.info(
        "stale_bookings_cancelled",
        count=len(booking_ids),
        cutoff=cutoff.isoformat(),
        booking_ids=booking_ids,
    )
    return booking_ids
