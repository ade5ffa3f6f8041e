"""
Booking intent creation: validation, quoting and the locked-in price snapshot.

A booking leaves this module in PENDING_PAYMENT with the price the guest was
shown. Fulfillment never re-prices it.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

import structlog
from sqlalchemy.engine import Connection, Engine

from resort_booking.channel.adapter import ChannelAdapter
from resort_booking.config import REFERRAL_DISCOUNT_PERCENT
from resort_booking.db.readers.affiliates import get_link_by_code
from resort_booking.db.readers.bookings import reference_code_exists
from resort_booking.db.readers.collections import get_active_collection, list_active_discounts
from resort_booking.db.writers.bookings import insert_booking
from resort_booking.errors import (
    BelowMinimumStayError,
    BookingValidationError,
    CollectionNotFoundError,
    InsufficientAvailabilityError,
)
from resort_booking.models.enums import (
    AffiliateLinkStatus,
    BookingSource,
    BookingStatus,
    GuestKind,
)
from resort_booking.pricing.discounts import DiscountResult, DiscountRule, evaluate_discounts
from resort_booking.pricing.quote import (
    ZERO,
    PriceBreakdown,
    ReferralAdjustedTotal,
    apply_referral_discount,
    calculate_price,
    referral_discount_amount,
    units_required,
)
from resort_booking.services.availability import resolve_availability
from resort_booking.utils.datetime import nights_between, utc_now

logger = structlog.get_logger(__name__)

REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERENCE_LENGTH = 5
REFERENCE_ATTEMPTS = 5


@dataclass(frozen=True)
class IdentifiedGuest:
    """A guest with an account."""

    user_id: str
    name: str
    email: str


@dataclass(frozen=True)
class PendingGuest:
    """A guest known only by name and e-mail; an account may be linked later."""

    name: str
    email: str


Guest = Union[IdentifiedGuest, PendingGuest]


def guest_columns(guest: Guest) -> dict[str, Any]:
    if isinstance(guest, IdentifiedGuest):
        return {
            "guest_kind": GuestKind.IDENTIFIED.value,
            "user_id": guest.user_id,
            "guest_name": guest.name,
            "guest_email": guest.email,
        }
    return {
        "guest_kind": GuestKind.PENDING.value,
        "user_id": None,
        "guest_name": guest.name,
        "guest_email": guest.email,
    }


def guest_from_row(row: dict[str, Any]) -> Guest:
    if row["guest_kind"] == GuestKind.IDENTIFIED.value:
        return IdentifiedGuest(user_id=row["user_id"], name=row["guest_name"], email=row["guest_email"])
    return PendingGuest(name=row["guest_name"], email=row["guest_email"])


def generate_reference_code(now: Optional[datetime] = None) -> str:
    """
    Human-friendly booking reference such as BK-202507-7KQ2M.

    The alphabet leaves out 0/O and 1/I so codes survive being read aloud.
    """
    now = now or utc_now()
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))
    return f"BK-{now:%Y%m}-{suffix}"


def _unique_reference_code(conn: Connection) -> str:
    for _ in range(REFERENCE_ATTEMPTS):
        code = generate_reference_code()
        if not reference_code_exists(conn, code):
            return code
    raise RuntimeError("Could not generate a unique booking reference")


@dataclass(frozen=True)
class BookingQuote:
    collection_id: int
    collection_name: str
    check_in: date
    check_out: date
    guests: int
    units_required: int
    available_units: int
    min_nights: int
    price: PriceBreakdown
    discounts: DiscountResult
    referral: ReferralAdjustedTotal
    affiliate_link_id: Optional[int] = None

    @property
    def payable_total(self) -> Decimal:
        return self.referral.payable_total


@dataclass(frozen=True)
class BookingRequest:
    collection_id: int
    check_in: date
    check_out: date
    guests: int
    guest: Guest
    phone: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None
    affiliate_code: Optional[str] = None


@dataclass(frozen=True)
class InitiatedBooking:
    booking_id: int
    reference_code: str
    status: str
    quote: BookingQuote


def quote_booking(
    engine: Engine,
    adapter: ChannelAdapter,
    collection_id: int,
    check_in: date,
    check_out: date,
    guests: int = 1,
    affiliate_code: Optional[str] = None,
) -> BookingQuote:
    """
    Price a stay after checking dates, minimum stay, capacity and availability.

    An affiliate code earns the referral discount only when its link is ACTIVE;
    unknown or inactive codes are ignored.

    Args:
        engine (Engine): SQLAlchemy engine.
        adapter (ChannelAdapter): Channel manager adapter for the availability check.
        collection_id (int): Collection to book.
        check_in (date): First night.
        check_out (date): Departure day.
        guests (int): Party size.
        affiliate_code (Optional[str]): Referral code from the attribution tracker.

    Returns:
        BookingQuote: Itemized price with discounts and referral adjustment.

    Raises:
        CollectionNotFoundError: Collection missing or inactive.
        BookingValidationError: Bad dates, no pricing or capacity exceeded.
        BelowMinimumStayError: Fewer nights than the collection minimum.
        InsufficientAvailabilityError: Not enough free units.
    """
    nights = nights_between(check_in, check_out)
    if nights <= 0:
        raise BookingValidationError("Check-out must be after check-in")

    with engine.connect() as conn:
        collection = get_active_collection(conn, collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        if collection["base_nightly_rate"] is None:
            raise BookingValidationError("Booking pricing not configured for this collection")
        rules = [DiscountRule.from_row(row) for row in list_active_discounts(conn, collection_id)]
        link = get_link_by_code(conn, affiliate_code) if affiliate_code else None

    min_nights = collection["min_nights"] or 1
    if nights < min_nights:
        raise BelowMinimumStayError(min_nights=min_nights, nights=nights)

    max_guests = collection["max_guests_per_unit"]
    units = units_required(guests, max_guests)

    report = resolve_availability(engine, adapter, collection_id, check_in, check_out)
    if 0 < report.total_units < units:
        raise BookingValidationError(
            f"Party of {guests} exceeds collection capacity of {report.total_units * max_guests} guests"
        )
    if report.available_count < units:
        raise InsufficientAvailabilityError(required=units, available=report.available_count)

    discounts = evaluate_discounts(rules, check_in, check_out)
    price = calculate_price(
        base_nightly_rate=collection["base_nightly_rate"],
        nights=nights,
        cleaning_fee=collection["cleaning_fee"],
        service_fee_percent=collection["service_fee_percent"],
        discount_percent=discounts.percent,
        units=units,
    )

    affiliate_link_id = None
    referral_amount = ZERO
    if link is not None and link["status"] == AffiliateLinkStatus.ACTIVE.value:
        affiliate_link_id = link["id"]
        referral_amount = referral_discount_amount(price.total_price, REFERRAL_DISCOUNT_PERCENT)
    elif affiliate_code:
        logger.info("affiliate_code_ignored", affiliate_code=affiliate_code)

    return BookingQuote(
        collection_id=collection_id,
        collection_name=collection["name"],
        check_in=check_in,
        check_out=check_out,
        guests=guests,
        units_required=units,
        available_units=report.available_count,
        min_nights=min_nights,
        price=price,
        discounts=discounts,
        referral=apply_referral_discount(price.total_price, referral_amount),
        affiliate_link_id=affiliate_link_id,
    )


def initiate_booking(
    engine: Engine, adapter: ChannelAdapter, request: BookingRequest
) -> InitiatedBooking:
    """
    Create a PENDING_PAYMENT booking with its price snapshot.

    The stored total_price is what the guest pays; affiliate_discount keeps
    the referral amount so commission can be computed on the pre-referral total.

    Returns:
        InitiatedBooking: New booking id, reference code and the quote it was created from.
    """
    if not request.guest.name.strip() or not request.guest.email.strip():
        raise BookingValidationError("Guest name and e-mail are required")

    quote = quote_booking(
        engine,
        adapter,
        request.collection_id,
        request.check_in,
        request.check_out,
        guests=request.guests,
        affiliate_code=request.affiliate_code,
    )
    price = quote.price

    with engine.begin() as conn:
        reference_code = _unique_reference_code(conn)
        booking_id = insert_booking(
            conn,
            {
                **guest_columns(request.guest),
                "reference_code": reference_code,
                "collection_id": request.collection_id,
                "guest_phone": request.phone,
                "guest_country": request.country,
                "guest_notes": request.notes,
                "check_in": request.check_in,
                "check_out": request.check_out,
                "number_of_guests": request.guests,
                "units_required": quote.units_required,
                "nightly_rate": price.nightly_rate,
                "total_nights": price.nights,
                "subtotal": price.subtotal,
                "cleaning_fee": price.cleaning_fee,
                "service_fee": price.service_fee,
                "total_price": quote.payable_total,
                "affiliate_discount": quote.referral.referral_discount or None,
                "status": BookingStatus.PENDING_PAYMENT.value,
                "source": BookingSource.DIRECT.value,
                "affiliate_link_id": quote.affiliate_link_id,
            },
        )

    logger.info(
        "booking_initiated",
        booking_id=booking_id,
        reference_code=reference_code,
        collection_id=request.collection_id,
        units_required=quote.units_required,
        total_price=str(quote.payable_total),
        affiliate_link_id=quote.affiliate_link_id,
    )
    return InitiatedBooking(
        booking_id=booking_id,
        reference_code=reference_code,
        status=BookingStatus.PENDING_PAYMENT.value,
        quote=quote,
    )
