from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from resort_booking.channel.adapter import ChannelAdapter
from resort_booking.config import STALE_BOOKING_DAYS
from resort_booking.dependencies import get_channel_adapter, get_db_engine, get_notifier
from resort_booking.errors import BookingError
from resort_booking.routes._helpers import (
    http_error,
    serialize_cancellation,
    serialize_fulfillment,
    serialize_quote,
)
from resort_booking.schemas.bookings import (
    BookingCreatePayload,
    CancelBookingPayload,
    CancelStalePayload,
    PaymentConfirmationPayload,
)
from resort_booking.services.booking_intake import (
    BookingRequest,
    IdentifiedGuest,
    PendingGuest,
    initiate_booking,
)
from resort_booking.services.fulfillment import cancel_booking, cancel_stale_bookings, confirm_payment
from resort_booking.services.notifications import Notifier

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreatePayload,
    engine: Engine = Depends(get_db_engine),
    adapter: ChannelAdapter = Depends(get_channel_adapter),
) -> dict[str, Any]:
    """
    Create a booking intent in PENDING_PAYMENT with a locked-in price.

    Args:
        payload: Stay, party and guest details, optional affiliate code

    Returns:
        dict: booking_id, reference_code, status and the quote the booking was priced with
    """
    try:
        guest = (
            IdentifiedGuest(user_id=payload.user_id, name=payload.guest_name, email=payload.guest_email)
            if payload.user_id
            else PendingGuest(name=payload.guest_name, email=payload.guest_email)
        )
        booking = initiate_booking(
            engine,
            adapter,
            BookingRequest(
                collection_id=payload.collection_id,
                check_in=payload.check_in,
                check_out=payload.check_out,
                guests=payload.number_of_guests,
                guest=guest,
                phone=payload.guest_phone,
                country=payload.guest_country,
                notes=payload.guest_notes,
                affiliate_code=payload.affiliate_code,
            ),
        )
        return {
            "booking_id": booking.booking_id,
            "reference_code": booking.reference_code,
            "status": booking.status,
            "quote": serialize_quote(booking.quote),
        }

    except HTTPException:
        raise
    except BookingError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("booking_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/cancel-stale", status_code=status.HTTP_200_OK)
def cancel_stale(
    payload: Optional[CancelStalePayload] = None,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Cancel booking intents still awaiting payment after the cutoff."""
    payload = payload or CancelStalePayload()
    try:
        booking_ids = cancel_stale_bookings(
            engine,
            cancelled_by=payload.cancelled_by,
            older_than_days=(
                payload.older_than_days
                if payload.older_than_days is not None
                else STALE_BOOKING_DAYS
            ),
        )
        return {"cancelled": len(booking_ids), "booking_ids": booking_ids}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("stale_cancellation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/{booking_id}/payment", status_code=status.HTTP_200_OK)
def confirm_booking_payment(
    booking_id: int,
    payload: PaymentConfirmationPayload,
    engine: Engine = Depends(get_db_engine),
    adapter: ChannelAdapter = Depends(get_channel_adapter),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, Any]:
    """
    Record a payment and fulfill the booking.

    Repeated calls for the same booking return the existing allocation.
    """
    try:
        result = confirm_payment(
            engine,
            adapter,
            booking_id,
            payment_reference=payload.payment_reference,
            notifier=notifier,
        )
        return serialize_fulfillment(result)

    except HTTPException:
        raise
    except BookingError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("payment_confirmation_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/{booking_id}/cancel", status_code=status.HTTP_200_OK)
def cancel_booking_endpoint(
    booking_id: int,
    payload: CancelBookingPayload,
    engine: Engine = Depends(get_db_engine),
    adapter: ChannelAdapter = Depends(get_channel_adapter),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, Any]:
    """Cancel a booking; cancelling twice is a no-op."""
    try:
        result = cancel_booking(
            engine,
            adapter,
            booking_id,
            cancelled_by=payload.cancelled_by,
            reason=payload.reason,
            notifier=notifier,
        )
        return serialize_cancellation(result)

    except HTTPException:
        raise
    except BookingError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("booking_cancellation_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
