"""
Internal helpers shared by the route handlers: error mapping and serialization.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import HTTPException, status

from resort_booking.errors import (
    AvailabilityError,
    BookingError,
    BookingValidationError,
    InvalidBookingStateError,
    NotFoundError,
)
from resort_booking.services.booking_intake import BookingQuote
from resort_booking.services.fulfillment import CancellationResult, FulfillmentResult


def http_error(error: BookingError) -> HTTPException:
    """
    Translate a domain error into an HTTPException.

    validation -> 400, not found -> 404, availability or invalid state -> 409.
    Anything else is a 500 and should have been logged by the caller.
    """
    if isinstance(error, BookingValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (AvailabilityError, InvalidBookingStateError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(status_code=500, detail="Internal server error")


def money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def serialize_quote(quote: BookingQuote) -> dict[str, Any]:
    price = quote.price
    return {
        "collection_id": quote.collection_id,
        "collection_name": quote.collection_name,
        "check_in": quote.check_in.isoformat(),
        "check_out": quote.check_out.isoformat(),
        "nights": price.nights,
        "guests": quote.guests,
        "units_required": quote.units_required,
        "available_units": quote.available_units,
        "min_nights": quote.min_nights,
        "nightly_rate": money(price.nightly_rate),
        "original_nightly_rate": money(price.original_nightly_rate),
        "subtotal": money(price.subtotal),
        "original_subtotal": money(price.original_subtotal),
        "cleaning_fee": money(price.cleaning_fee),
        "service_fee": money(price.service_fee),
        "total_price": money(price.total_price),
        "original_total_price": money(price.original_total_price),
        "discount_percent": str(quote.discounts.percent),
        "discount_label": quote.discounts.label,
        "discounts": [
            {"label": d.label, "percent": str(d.percent), "condition_type": d.condition_type}
            for d in quote.discounts.applied
        ],
        "affiliate_discount": money(quote.referral.referral_discount),
        "payable_total": money(quote.payable_total),
    }


def serialize_fulfillment(result: FulfillmentResult) -> dict[str, Any]:
    return {
        "booking_id": result.booking_id,
        "status": result.status,
        "already_fulfilled": result.already_fulfilled,
        "units": [
            {"unit_id": u.unit_id, "channel_reservation_id": u.channel_reservation_id}
            for u in result.units
        ],
        "unsynced_unit_ids": sorted(result.remote_failures),
    }


def serialize_cancellation(result: CancellationResult) -> dict[str, Any]:
    return {
        "booking_id": result.booking_id,
        "status": result.status,
        "already_cancelled": result.already_cancelled,
        "remote_cancel_failures": sorted(result.remote_failures),
    }
