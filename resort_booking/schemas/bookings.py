from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class BookingCreatePayload(BaseModel):
    """
    Schema for creating a booking intent.

    user_id is set for signed-in guests; without it the booking is held for a
    pending guest identified by name and e-mail.
    """

    collection_id: int = Field(..., description="Collection to book")
    check_in: date = Field(..., description="First night (YYYY-MM-DD)")
    check_out: date = Field(..., description="Departure day (YYYY-MM-DD)")
    number_of_guests: int = Field(1, ge=1, description="Party size")
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    guest_phone: Optional[str] = Field(None, max_length=50)
    guest_country: Optional[str] = Field(None, max_length=100)
    guest_notes: Optional[str] = Field(None, description="Free-text requests for the host")
    user_id: Optional[str] = Field(None, description="Account ID of a signed-in guest")
    affiliate_code: Optional[str] = Field(None, description="Referral code from the attribution tracker")

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreatePayload":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class PaymentConfirmationPayload(BaseModel):
    payment_reference: Optional[str] = Field(None, description="Payment provider transaction ID")


class CancelBookingPayload(BaseModel):
    cancelled_by: str = Field(..., min_length=1, description="User ID or system actor")
    reason: Optional[str] = Field(None, description="Cancellation reason")


class CancelStalePayload(BaseModel):
    cancelled_by: str = Field("system", min_length=1)
    older_than_days: Optional[int] = Field(None, ge=1, description="Override the configured cutoff")
