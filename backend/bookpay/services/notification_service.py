"""
Booking notifications.

Renders short Jinja2 templates and sends them through the configured email
sender. Delivery failures are logged and never propagate, so payment state
is never rolled back by a bounced email.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..core.config import settings
from ..core.exceptions import ServiceException
from ..models.booking import Booking
from ..models.payment import Payment
from .email import EmailSender

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_amount(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency.upper()}"


_environment.filters["amount"] = format_amount


class NotificationService:
    """Sends booking and payment emails to organizers and attendees."""

    def __init__(self, email_sender: EmailSender):
        self.email_sender = email_sender
        self.logger = logging.getLogger(self.__class__.__name__)

    def _context(self, booking: Booking, **extra: Any) -> Dict[str, Any]:
        organizer = booking.user
        return {
            "booking": booking,
            "organizer_name": (organizer.name or organizer.email) if organizer else "",
            "webapp_url": settings.webapp_url,
            "booking_url": f"{settings.webapp_url}/booking/{booking.uid}",
            **extra,
        }

    def _send(self, template: str, to_email: Optional[str], subject: str, context: Dict[str, Any]) -> bool:
        if not to_email:
            return False
        html = _environment.get_template(template).render(**context)
        try:
            self.email_sender.send_email(to_email, subject, html)
            return True
        except ServiceException as exc:
            self.logger.error(f"Email '{template}' to {to_email} failed: {exc.message}")
            return False

    def send_awaiting_payment(self, booking: Booking, payment: Payment) -> bool:
        payment_url = f"{settings.webapp_url}/payment/{payment.uid}"
        return self._send(
            "awaiting_payment.html",
            booking.attendee_email,
            f"Awaiting payment: {booking.title}",
            self._context(booking, payment=payment, payment_url=payment_url),
        )

    def send_booking_confirmed(self, booking: Booking) -> int:
        """Email organizer and attendee. Returns how many messages went out."""
        context = self._context(booking)
        sent = 0
        sent += self._send(
            "booking_confirmed.html", booking.attendee_email, f"Confirmed: {booking.title}", context
        )
        if booking.user is not None:
            sent += self._send(
                "booking_confirmed.html", booking.user.email, f"New booking: {booking.title}", context
            )
        return sent

    def send_confirmation_request(self, booking: Booking) -> int:
        """Ask the organizer to confirm and tell the attendee the request was sent."""
        context = self._context(booking)
        sent = 0
        if booking.user is not None:
            sent += self._send(
                "confirmation_request.html",
                booking.user.email,
                f"Action required: confirm {booking.title}",
                context,
            )
        sent += self._send(
            "booking_requested.html", booking.attendee_email, f"Request sent: {booking.title}", context
        )
        return sent
