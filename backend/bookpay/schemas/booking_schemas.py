"""Booking request/response schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from ._strict_base import StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """Booker form submission."""

    event_type_id: int = Field(..., gt=0)
    start_time: datetime
    attendee_name: str = Field(..., min_length=1, max_length=255)
    attendee_email: EmailStr
    attendee_phone: Optional[str] = Field(default=None, max_length=50)
    credential_id: Optional[int] = Field(
        default=None, description="Explicit payment credential to use, when the caller knows it"
    )

    @field_validator("start_time")
    @classmethod
    def _normalize_to_utc(cls, v: datetime) -> datetime:
        # Naive input is read as UTC. Stored times are always UTC wall clock.
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class BookingCreateResponse(StrictModel):
    id: int
    uid: str
    status: str
    paid: bool
    payment_required: bool = Field(..., serialization_alias="paymentRequired")
    payment_uid: Optional[str] = Field(default=None, serialization_alias="paymentUid")
    payment_id: Optional[int] = Field(default=None, serialization_alias="paymentId")
    client_secret: Optional[str] = Field(default=None, serialization_alias="clientSecret")
    stripe_publishable_key: Optional[str] = Field(
        default=None, serialization_alias="stripePublishableKey"
    )
    session_id: Optional[str] = Field(default=None, serialization_alias="sessionId")
