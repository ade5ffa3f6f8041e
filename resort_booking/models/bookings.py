"""Bookings and the units allocated to them."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from resort_booking.config import SCHEMA
from resort_booking.models.base import Base
from resort_booking.models.enums import BookingSource, BookingStatus


class Booking(Base):
    """
    ORM model for one reservation request/contract.

    The guest is either an identified user (user_id set) or a pending guest
    known only by name and e-mail; guest_kind says which, and the check
    constraint keeps user_id consistent with it. The price columns are the
    snapshot locked in when the booking intent was created.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="booking_dates_ordered"),
        CheckConstraint(
            "(guest_kind = 'IDENTIFIED' AND user_id IS NOT NULL)"
            " OR (guest_kind = 'PENDING' AND user_id IS NULL)",
            name="booking_guest_variant",
        ),
        Index("booking_collection_dates_idx", "collection_id", "check_in", "check_out"),
        Index("booking_status_idx", "status"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True)
    reference_code = Column(String(20), nullable=False, unique=True)
    collection_id = Column(
        Integer, ForeignKey(f"{SCHEMA}.collections.id"), nullable=False, index=True
    )

    # Guest identity
    guest_kind = Column(String(20), nullable=False)
    user_id = Column(String(255), nullable=True, index=True)
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=True)
    guest_country = Column(String(100), nullable=True)
    guest_notes = Column(Text, nullable=True)

    # Stay
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    number_of_guests = Column(Integer, nullable=False, default=1)
    units_required = Column(Integer, nullable=False, default=1)

    # Price snapshot
    nightly_rate = Column(Numeric(10, 2), nullable=False)
    total_nights = Column(Integer, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    cleaning_fee = Column(Numeric(10, 2), nullable=False, default=0)
    service_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False)
    affiliate_discount = Column(Numeric(10, 2), nullable=True)

    status = Column(String(50), nullable=False, default=BookingStatus.PENDING_PAYMENT.value)
    source = Column(String(50), nullable=False, default=BookingSource.DIRECT.value)
    affiliate_link_id = Column(
        Integer, ForeignKey(f"{SCHEMA}.affiliate_links.id"), nullable=True
    )
    payment_reference = Column(String(255), nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(255), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class BookingUnit(Base):
    """
    ORM model joining a booking to each physical unit allocated to it.

    channel_reservation_id stays null when the remote reservation could not be
    created; those rows need manual reconciliation. stay_start/stay_end copy the
    booking dates so PostgreSQL can enforce non-overlap per unit with an
    exclusion constraint (see the initial migration); released_at takes a row
    out of that constraint when its booking is cancelled.
    """

    __tablename__ = "booking_units"
    __table_args__ = (
        UniqueConstraint("booking_id", "unit_id", name="booking_unit_unique"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True)
    booking_id = Column(
        Integer,
        ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id = Column(Integer, ForeignKey(f"{SCHEMA}.units.id"), nullable=False, index=True)
    channel_reservation_id = Column(Integer, nullable=True)
    stay_start = Column(Date, nullable=False)
    stay_end = Column(Date, nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
