"""Enumerations shared by models, schemas and services."""

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PaymentOption(str, Enum):
    """How a paid event type collects money."""

    ON_BOOKING = "ON_BOOKING"  # pay at booking, slot is held regardless
    HOLD = "HOLD"  # collect card now, charge later for no-shows
    SYNC_BOOKING = "SYNC_BOOKING"  # booking is provisional until paid

    @classmethod
    def parse(cls, value: "str | PaymentOption | None") -> "PaymentOption":
        if isinstance(value, cls):
            return value
        try:
            return cls(value or cls.ON_BOOKING.value)
        except ValueError:
            return cls.ON_BOOKING


# Allowed booking status transitions, keyed by target status.
BOOKING_TRANSITIONS: dict[BookingStatus, tuple[BookingStatus, ...]] = {
    BookingStatus.ACCEPTED: (BookingStatus.PENDING,),
    BookingStatus.REJECTED: (BookingStatus.PENDING,),
    BookingStatus.CANCELLED: (BookingStatus.PENDING, BookingStatus.ACCEPTED),
}

STRIPE_APP_SLUG = "stripe"
STRIPE_CREDENTIAL_TYPE = "stripe_payment"
