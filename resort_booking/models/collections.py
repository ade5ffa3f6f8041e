"""Property collections, their physical units and conditional discounts."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.sql import func

from resort_booking.config import SCHEMA
from resort_booking.models.base import Base, JSONType
from resort_booking.models.enums import DiscountCondition, UnitStatus


class Collection(Base):
    """
    ORM model for a property collection (a group of units sharing pricing).

    Booking pricing is managed locally, not pulled from the channel manager.
    A null base_nightly_rate means the collection is not sellable as stays yet.
    """

    __tablename__ = "collections"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    base_nightly_rate = Column(Numeric(10, 2), nullable=True)
    cleaning_fee = Column(Numeric(10, 2), nullable=False, default=50)
    service_fee_percent = Column(Numeric(5, 2), nullable=False, default=10)
    min_nights = Column(Integer, nullable=False, default=1)
    max_guests_per_unit = Column(Integer, nullable=False, default=6)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Unit(Base):
    """
    ORM model for one physical, independently bookable unit.

    channel_property_id is the apartment id on the channel manager. Units
    without it are skipped by availability and fulfillment.
    """

    __tablename__ = "units"
    __table_args__ = (
        Index("unit_collection_status_idx", "collection_id", "status"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True)
    collection_id = Column(
        Integer,
        ForeignKey(f"{SCHEMA}.collections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default=UnitStatus.AVAILABLE.value)
    channel_property_id = Column(Integer, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Discount(Base):
    """
    ORM model for a conditional price reduction owned by a collection.

    condition_value holds the type-specific payload:
    - ALWAYS / WEEKEND / WEEKDAY: null
    - MIN_NIGHTS: {"minNights": 7}
    - DATE_RANGE: {"startDate": "2025-12-20", "endDate": "2026-01-05"}
    """

    __tablename__ = "discounts"
    __table_args__ = (
        Index("discount_collection_active_idx", "collection_id", "is_active"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True)
    collection_id = Column(
        Integer,
        ForeignKey(f"{SCHEMA}.collections.id", ondelete="CASCADE"),
        nullable=False,
    )
    label = Column(String(100), nullable=False)
    percent = Column(Numeric(5, 2), nullable=False)
    condition_type = Column(String(50), nullable=False, default=DiscountCondition.ALWAYS.value)
    condition_value = Column(JSONType, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
