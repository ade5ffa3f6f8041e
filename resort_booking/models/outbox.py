from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from resort_booking.config import SCHEMA
from resort_booking.models.base import Base, JSONType
from resort_booking.models.enums import NotificationStatus


class NotificationOutbox(Base):
    """
    ORM model for a notification waiting to be delivered.

    Rows are written in the same transaction as the state change that causes
    them and delivered afterwards, so a failed e-mail never rolls back a
    booking or a commission.
    """

    __tablename__ = "notification_outbox"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True)
    kind = Column(String(50), nullable=False)
    payload = Column(JSONType, nullable=False)
    status = Column(String(20), nullable=False, default=NotificationStatus.PENDING.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
