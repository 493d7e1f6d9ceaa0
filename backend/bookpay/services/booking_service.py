# backend/bookpay/services/booking_service.py
"""
Booking creation with payment.

Order of operations for a paid event type:

1. Resolve the payment credential before anything is written, so an
   organizer without a connection never gets a stranded booking.
2. Create the booking PENDING.
3. Create the payment (checkout session, or setup intent for HOLD).
4. SYNC_BOOKING bookings are deleted again if step 3 fails, freeing the slot.
"""

from datetime import timedelta
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.enums import BookingStatus, PaymentOption
from ..core.exceptions import BookingConflictException, NotFoundException, PaymentNotCreatedException
from ..models.booking import Booking
from ..models.event_type import EventType
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..schemas.booking_schemas import BookingCreate, BookingCreateResponse
from .base import BaseService
from .booking_confirmation_service import BookingConfirmationService
from .checkout_service import CheckoutService
from .credential_resolver import CredentialResolver
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """Creates bookings and wires up their payments."""

    def __init__(
        self,
        db: Session,
        checkout_service: CheckoutService,
        confirmation_service: BookingConfirmationService,
        notification_service: NotificationService,
        credential_resolver: Optional[CredentialResolver] = None,
    ):
        super().__init__(db)
        self.checkout_service = checkout_service
        self.confirmation_service = confirmation_service
        self.notification_service = notification_service
        self.credential_resolver = credential_resolver or checkout_service.credential_resolver
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.event_type_repository = RepositoryFactory.create_event_type_repository(db)

    def _load_event_type(self, event_type_id: int) -> EventType:
        event_type = self.event_type_repository.get_with_owner(event_type_id)
        if event_type is None or event_type.owner_id is None:
            raise NotFoundException(
                "Event type not found",
                code="EVENT_TYPE_NOT_FOUND",
                details={"event_type_id": event_type_id},
            )
        return event_type

    def _insert_booking(self, data: BookingCreate, event_type: EventType, status: BookingStatus) -> Booking:
        end_time = data.start_time + timedelta(minutes=event_type.length_minutes)
        if self.booking_repository.has_conflict(event_type.owner_id, data.start_time, end_time):
            raise BookingConflictException(
                details={"start_time": data.start_time.isoformat(), "event_type_id": event_type.id}
            )
        return self.booking_repository.create(
            title=f"{event_type.title} between {event_type.owner.name or event_type.owner.email} and {data.attendee_name}",
            user_id=event_type.owner_id,
            event_type_id=event_type.id,
            start_time=data.start_time,
            end_time=end_time,
            attendee_name=data.attendee_name,
            attendee_email=str(data.attendee_email),
            attendee_phone=data.attendee_phone,
            status=status.value,
            paid=False,
        )

    @BaseService.measure_operation("create_booking")
    def create_booking(self, data: BookingCreate) -> BookingCreateResponse:
        event_type = self._load_event_type(data.event_type_id)
        if not event_type.requires_payment:
            return self._create_free_booking(data, event_type)

        credential = self.credential_resolver.resolve(
            user_id=event_type.owner_id,
            team_id=event_type.team_id,
            credential_id=data.credential_id if data.credential_id is not None else event_type.credential_id,
        )
        option = PaymentOption.parse(event_type.payment_option)

        with self.transaction():
            booking = self._insert_booking(data, event_type, BookingStatus.PENDING)

        try:
            payment = self.checkout_service.create_payment(booking, event_type, credential)
        except PaymentNotCreatedException:
            if option is PaymentOption.SYNC_BOOKING:
                with self.transaction():
                    self.booking_repository.delete_unpaid(booking.id)
                self.logger.info(f"Released SYNC_BOOKING booking {booking.id} after payment creation failed")
            raise

        if option is PaymentOption.ON_BOOKING:
            self.notification_service.send_awaiting_payment(booking, payment)

        self.log_operation("booking_created", booking_id=booking.id, payment_id=payment.id, option=option.value)
        return self._response(booking, payment)

    def _create_free_booking(self, data: BookingCreate, event_type: EventType) -> BookingCreateResponse:
        status = BookingStatus.PENDING if event_type.requires_confirmation else BookingStatus.ACCEPTED
        with self.transaction():
            booking = self._insert_booking(data, event_type, status)
            if status is BookingStatus.ACCEPTED:
                self.confirmation_service.calendar_service.create_event(booking)

        if status is BookingStatus.ACCEPTED:
            self.notification_service.send_booking_confirmed(booking)
        else:
            self.notification_service.send_confirmation_request(booking)
        return self._response(booking, None)

    def _response(self, booking: Booking, payment: Optional[Payment]) -> BookingCreateResponse:
        response = BookingCreateResponse(
            id=booking.id,
            uid=booking.uid,
            status=booking.status,
            paid=booking.paid,
            payment_required=payment is not None,
        )
        if payment is None:
            return response
        response.payment_uid = payment.uid
        response.payment_id = payment.id
        if payment.option is PaymentOption.SYNC_BOOKING:
            data = payment.data or {}
            response.client_secret = data.get("clientSecret")
            response.stripe_publishable_key = data.get("stripe_publishable_key")
            response.session_id = data.get("sessionId")
        return response
