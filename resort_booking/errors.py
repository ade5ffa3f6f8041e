"""
Exception taxonomy for the booking engine.

Validation and availability errors are raised before any unit is allocated and
are meant to reach the caller. Channel errors are raised by the adapter and are
contained by the services that call it once local allocation has succeeded.
"""

from __future__ import annotations

from typing import Optional


class BookingError(Exception):
    """Base class for every error raised by the booking engine."""


class BookingValidationError(BookingError):
    """The request is malformed: bad dates, zero nights, capacity exceeded."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AvailabilityError(BookingError):
    """The stay cannot be sold for the requested dates."""


class InsufficientAvailabilityError(AvailabilityError):
    def __init__(self, required: int, available: int) -> None:
        if required > 1:
            message = f"Need {required} units but only {available} available"
        else:
            message = "No units available for selected dates"
        super().__init__(message)
        self.required = required
        self.available = available


class BelowMinimumStayError(AvailabilityError):
    def __init__(self, min_nights: int, nights: int) -> None:
        plural = "s" if min_nights > 1 else ""
        super().__init__(f"Minimum stay is {min_nights} night{plural}")
        self.min_nights = min_nights
        self.nights = nights


class AllocationRaceLostError(AvailabilityError):
    """Another fulfillment claimed one of the selected units first."""


class NotFoundError(BookingError):
    pass


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class CollectionNotFoundError(NotFoundError):
    def __init__(self, collection_id: int) -> None:
        super().__init__(f"Collection {collection_id} not found or inactive")
        self.collection_id = collection_id


class InvalidBookingStateError(BookingError):
    def __init__(self, booking_id: int, status: str) -> None:
        super().__init__(f"Invalid booking status for booking {booking_id}: {status}")
        self.booking_id = booking_id
        self.status = status


class ChannelError(BookingError):
    """Any failure talking to the channel manager."""


class ChannelTransportError(ChannelError):
    """Timeout, connection failure, or a 5xx that survived retries."""


class ChannelRemoteError(ChannelError):
    """The channel manager rejected the request (4xx / validation)."""

    def __init__(self, status_code: int, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(f"Channel API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
