"""
Database models for the booking payment service.

- Organizers, teams and event types
- Bookings and their downstream references
- Payments and payment credentials
- The inbound webhook ledger
"""

from .booking import Booking
from .booking_reference import BookingReference
from .credential import AppConfig, Credential
from .event_type import EventType
from .payment import Payment
from .user import Team, User
from .webhook_event import WebhookEvent

__all__ = [
    "AppConfig",
    "Booking",
    "BookingReference",
    "Credential",
    "EventType",
    "Payment",
    "Team",
    "User",
    "WebhookEvent",
]
