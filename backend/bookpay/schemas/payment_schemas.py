"""
Payment-related Pydantic schemas.

Defines response models for webhook processing and the payment debug view.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from ._strict_base import StrictModel


class WebhookResponse(StrictModel):
    """Response for webhook processing."""

    status: str = Field(
        ..., description="Processing status (success, ignored, duplicate, in_progress, unhandled)"
    )
    event_type: str = Field(..., description="Stripe event type")
    message: Optional[str] = Field(None, description="Additional information")


class PaymentDebugItem(StrictModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)

    id: int
    uid: str
    amount: int
    currency: str
    success: bool
    refunded: bool
    payment_option: str
    external_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class BookingPaymentDebugResponse(StrictModel):
    """Booking with all of its payment attempts."""

    booking_id: int
    uid: str
    status: str
    paid: bool
    payments: List[PaymentDebugItem]
