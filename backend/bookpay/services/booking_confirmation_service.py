"""
Shared confirmation path for paid bookings.

Both the webhook reconciler and the browser return handler end up here. The
conditional writes in the repositories pick a single winner per payment; only
the winner confirms the booking, creates calendar references and sends email.
Every other caller observes the applied state and returns without side effects.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import BookingStatus, PaymentOption
from ..models.booking import Booking
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .calendar_service import CalendarService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class BookingConfirmationService(BaseService):
    """Applies payment outcomes to bookings exactly once."""

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService,
        calendar_service: Optional[CalendarService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.notification_service = notification_service
        self.calendar_service = calendar_service or CalendarService(db)

    def _requires_confirmation(self, booking: Booking) -> bool:
        return bool(booking.event_type and booking.event_type.requires_confirmation)

    def _confirm(self, booking: Booking) -> bool:
        """PENDING to ACCEPTED plus calendar reference. Must run inside a transaction."""
        accepted = self.booking_repository.transition_status(booking.id, BookingStatus.ACCEPTED)
        if accepted:
            self.calendar_service.create_event(booking)
        elif booking.status != BookingStatus.ACCEPTED.value:
            self.logger.warning(
                f"Booking {booking.id} is {booking.status} and cannot be accepted after payment"
            )
        return accepted

    @BaseService.measure_operation("handle_payment_success")
    def handle_payment_success(self, payment: Payment) -> bool:
        """
        Mark a payment successful and confirm its booking.

        Returns:
            True if this call applied the success, False if it was already applied
        """
        booking_id = payment.booking_id
        with self.transaction():
            if not self.payment_repository.mark_success(payment.id):
                self.logger.info(f"Payment {payment.id} already marked successful, nothing to do")
                return False
            self.booking_repository.mark_paid(booking_id)
            booking = self.booking_repository.get_by_id(booking_id)
            if booking is None:
                self.logger.error(f"Payment {payment.id} succeeded but booking {booking_id} is gone")
                return True
            requires_confirmation = self._requires_confirmation(booking)
            accepted = False if requires_confirmation else self._confirm(booking)

        self.log_operation("payment_succeeded", payment_id=payment.id, booking_id=booking_id)
        if requires_confirmation:
            self.notification_service.send_confirmation_request(booking)
        elif accepted:
            self.notification_service.send_booking_confirmed(booking)
        return True

    @BaseService.measure_operation("handle_setup_success")
    def handle_setup_success(self, payment: Payment, setup_intent: Dict[str, Any]) -> bool:
        """
        Card collected for a HOLD payment.

        The booking is flagged paid (the card is on file) and confirmed unless
        the event type requires manual confirmation, in which case the
        organizer is asked instead.
        """
        booking_id = payment.booking_id
        with self.transaction():
            self.payment_repository.merge_data(
                payment,
                setupIntent={"id": setup_intent.get("id"), "status": setup_intent.get("status")},
                paymentMethod=setup_intent.get("payment_method"),
                customerId=setup_intent.get("customer") or (payment.data or {}).get("customerId"),
            )
            if not self.booking_repository.mark_paid(booking_id):
                self.logger.info(f"Booking {booking_id} already has a card on file, nothing to do")
                return False
            booking = self.booking_repository.get_by_id(booking_id)
            if booking is None:
                return False
            requires_confirmation = self._requires_confirmation(booking)
            accepted = False if requires_confirmation else self._confirm(booking)

        if requires_confirmation:
            self.notification_service.send_confirmation_request(booking)
        elif accepted:
            self.notification_service.send_booking_confirmed(booking)
        return True

    @BaseService.measure_operation("handle_payment_failure")
    def handle_payment_failure(self, payment: Payment, reason: str) -> bool:
        """
        Release the slot of a SYNC_BOOKING booking whose payment failed or expired.

        A PENDING placeholder is deleted. An unpaid booking that already left
        PENDING is cancelled with ``reason`` instead. Other options keep the
        booking so the booker can retry payment.

        Returns:
            True if the booking was deleted or cancelled
        """
        if payment.option is not PaymentOption.SYNC_BOOKING:
            self.logger.info(
                f"{reason} for payment {payment.id} ({payment.payment_option}); booking {payment.booking_id} kept"
            )
            return False
        if payment.success:
            self.logger.info(f"{reason} ignored, payment {payment.id} already succeeded")
            return False

        booking_id = payment.booking_id
        with self.transaction():
            deleted = self.booking_repository.delete_unpaid(booking_id)
            cancelled = not deleted and self.booking_repository.transition_status(
                booking_id, BookingStatus.CANCELLED, reason=reason, unpaid_only=True
            )
        if deleted:
            self.log_operation("sync_booking_released", booking_id=booking_id, reason=reason)
        elif cancelled:
            self.log_operation("sync_booking_cancelled", booking_id=booking_id, reason=reason)
        else:
            self.logger.info(f"{reason}: booking {booking_id} already gone or paid")
        return deleted or cancelled
