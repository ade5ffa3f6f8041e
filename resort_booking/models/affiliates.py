"""Affiliate profiles, referral links and commission records."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from resort_booking.config import SCHEMA
from resort_booking.models.base import Base
from resort_booking.models.enums import AffiliateLinkStatus


class AffiliateProfile(Base):
    """ORM model for an affiliate and their running commission total."""

    __tablename__ = "affiliate_profiles"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    total_earned = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AffiliateLink(Base):
    """
    ORM model for a referral code.

    booking_commission_rate overrides commission_rate for stay bookings when set.
    """

    __tablename__ = "affiliate_links"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    affiliate_user_id = Column(
        String(255),
        ForeignKey(f"{SCHEMA}.affiliate_profiles.user_id"),
        nullable=False,
        unique=True,
    )
    commission_rate = Column(Numeric(5, 2), nullable=False)
    booking_commission_rate = Column(Numeric(5, 2), nullable=True)
    status = Column(String(50), nullable=False, default=AffiliateLinkStatus.ACTIVE.value)
    click_count = Column(Integer, nullable=False, default=0)
    conversion_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AffiliateTransaction(Base):
    """
    ORM model for one commission record.

    booking_id is unique: a booking earns at most one commission.
    """

    __tablename__ = "affiliate_transactions"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True)
    affiliate_link_id = Column(
        Integer, ForeignKey(f"{SCHEMA}.affiliate_links.id"), nullable=False, index=True
    )
    booking_id = Column(
        Integer, ForeignKey(f"{SCHEMA}.bookings.id"), nullable=True, unique=True
    )
    commission_amount = Column(Numeric(10, 2), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
