"""String enums stored in VARCHAR columns across the booking schema."""

from enum import Enum


class UnitStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    SOLD_OUT = "SOLD_OUT"
    DRAFT = "DRAFT"


class DiscountCondition(str, Enum):
    ALWAYS = "ALWAYS"
    MIN_NIGHTS = "MIN_NIGHTS"
    DATE_RANGE = "DATE_RANGE"
    WEEKEND = "WEEKEND"
    WEEKDAY = "WEEKDAY"


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses whose units occupy the local ledger
OCCUPYING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)


class BookingSource(str, Enum):
    DIRECT = "DIRECT"
    AIRBNB = "AIRBNB"
    BOOKING_COM = "BOOKING_COM"
    SMOOBU = "SMOOBU"
    OTHER = "OTHER"


class GuestKind(str, Enum):
    IDENTIFIED = "IDENTIFIED"
    PENDING = "PENDING"


class AffiliateLinkStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"


class NotificationKind(str, Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_CANCELLATION = "BOOKING_CANCELLATION"
    COMMISSION_EARNED = "COMMISSION_EARNED"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
