"""
Redirect/Return Handler logic.

The browser lands here after the hosted checkout. Nothing in the query string
is trusted: the payment is located by (session id, booking id) jointly and
the session status is fetched again from Stripe before anything changes.
"""

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.enums import PaymentOption
from ..core.exceptions import NotFoundException, PaymentNotConnectedException, PaymentProviderException
from ..integrations.stripe_client import StripeClient
from ..models.booking import Booking
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..schemas.payment_schemas import BookingPaymentDebugResponse, PaymentDebugItem
from .base import BaseService
from .booking_confirmation_service import BookingConfirmationService
from .checkout_service import CheckoutService
from .credential_resolver import CredentialResolver

logger = logging.getLogger(__name__)

_SECRET_DATA_KEYS = ("clientSecret", "client_secret")


@dataclass
class ReturnResult:
    redirect_url: str
    outcome: str


def _strip_secrets(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in (data or {}).items():
        if key in _SECRET_DATA_KEYS:
            continue
        cleaned[key] = _strip_secrets(value) if isinstance(value, dict) else value
    return cleaned


class PaymentReturnService(BaseService):
    """Finalizes or releases bookings when the booker returns from checkout."""

    def __init__(
        self,
        db: Session,
        stripe_client: StripeClient,
        confirmation_service: BookingConfirmationService,
        checkout_service: CheckoutService,
        credential_resolver: Optional[CredentialResolver] = None,
    ):
        super().__init__(db)
        self.stripe_client = stripe_client
        self.confirmation_service = confirmation_service
        self.checkout_service = checkout_service
        self.credential_resolver = credential_resolver or CredentialResolver(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)

    # URLs

    def success_url(self, booking: Booking) -> str:
        return f"{settings.webapp_url}/booking/{booking.uid}?payment_status=success"

    def retry_url(self, payment: Payment, query: str) -> str:
        return f"{settings.webapp_url}/payment/{payment.uid}?{query}"

    def event_page_url(self, booking: Booking, query: str) -> str:
        event_type = booking.event_type
        if event_type is None:
            return f"{settings.webapp_url}/payment-failed?{query}"
        if event_type.team is not None:
            return f"{settings.webapp_url}/team/{event_type.team.slug}/{event_type.slug}?{query}"
        owner = event_type.owner or booking.user
        username = owner.username if owner and owner.username else str(booking.user_id)
        return f"{settings.webapp_url}/{username}/{event_type.slug}?{query}"

    # Flow

    def _load(self, booking_id: int, session_id: str) -> tuple[Optional[Booking], Optional[Payment]]:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            return None, None
        payment = self.payment_repository.get_by_external_id_and_booking(session_id, booking_id)
        if payment is None:
            self.logger.warning(f"No payment for session {session_id} on booking {booking_id}")
            raise NotFoundException(
                "Payment not found",
                code="PAYMENT_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        return booking, payment

    def _retrieve_session(self, payment: Payment, session_id: str) -> Dict[str, Any]:
        try:
            credential = self.credential_resolver.credential_for_payment(payment)
            return self.stripe_client.retrieve_checkout_session(
                session_id, options=self.stripe_client.request_options(credential)
            )
        except (stripe.StripeError, ValueError, PaymentNotConnectedException) as exc:
            self.logger.error(f"Could not verify session {session_id} for payment {payment.id}: {exc}")
            raise PaymentProviderException(
                "Payment verification failed",
                code="PAYMENT_VERIFICATION_FAILED",
                details={"booking_id": payment.booking_id},
            ) from exc

    def _finish_paid(self, booking: Booking, payment: Payment) -> ReturnResult:
        applied = self.confirmation_service.handle_payment_success(payment)
        self.logger.info(
            f"Return for booking {booking.id}: payment {payment.id} "
            f"{'confirmed' if applied else 'was already confirmed'}"
        )
        return ReturnResult(redirect_url=self.success_url(booking), outcome="success")

    def _finish_unpaid(
        self,
        booking: Booking,
        payment: Payment,
        session: Dict[str, Any],
        query: str,
        reason: str,
        *,
        expire_open: bool = False,
    ) -> ReturnResult:
        if payment.option is not PaymentOption.SYNC_BOOKING:
            if expire_open and session.get("status") == "open":
                self.checkout_service.expire_session_quietly(payment, session["id"])
            return ReturnResult(redirect_url=self.retry_url(payment, query), outcome="retry")

        # Computed before the booking (and its relationships) is deleted.
        event_page = self.event_page_url(booking, query)
        success_page = self.success_url(booking)
        if session.get("status") == "open":
            self.checkout_service.expire_session_quietly(payment, session["id"])
        deleted = self.confirmation_service.handle_payment_failure(payment, reason)
        if not deleted:
            current = self.booking_repository.get_by_id(booking.id)
            if current is not None and current.paid:
                # Paid through the webhook while this request was in flight.
                return ReturnResult(redirect_url=success_page, outcome="success")
        return ReturnResult(redirect_url=event_page, outcome="released")

    @BaseService.measure_operation("payment_success_return")
    def handle_success_return(self, booking_id: int, session_id: str) -> ReturnResult:
        booking, payment = self._load(booking_id, session_id)
        if booking is None or payment is None:
            return ReturnResult(
                redirect_url=f"{settings.webapp_url}/payment-failed?payment_status=failed",
                outcome="missing",
            )

        session = self._retrieve_session(payment, session_id)
        if session.get("payment_status") == "paid" or payment.success:
            return self._finish_paid(booking, payment)
        return self._finish_unpaid(booking, payment, session, "payment_status=failed", "Payment not completed")

    @BaseService.measure_operation("payment_cancelled_return")
    def handle_cancel_return(self, booking_id: int, session_id: str) -> ReturnResult:
        booking, payment = self._load(booking_id, session_id)
        if booking is None or payment is None:
            return ReturnResult(
                redirect_url=f"{settings.webapp_url}/payment-failed?payment_cancelled=true",
                outcome="missing",
            )
        if payment.success:
            return ReturnResult(redirect_url=self.success_url(booking), outcome="success")

        session = self._retrieve_session(payment, session_id)
        if session.get("payment_status") == "paid":
            return self._finish_paid(booking, payment)
        return self._finish_unpaid(
            booking, payment, session, "payment_cancelled=true", "Payment cancelled by user", expire_open=True
        )

    @BaseService.measure_operation("payment_debug")
    def get_payment_debug(self, booking_id: int) -> BookingPaymentDebugResponse:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id})
        payments = self.payment_repository.list_for_booking(booking_id)
        return BookingPaymentDebugResponse(
            booking_id=booking.id,
            uid=booking.uid,
            status=booking.status,
            paid=booking.paid,
            payments=[
                PaymentDebugItem(
                    id=payment.id,
                    uid=payment.uid,
                    amount=payment.amount,
                    currency=payment.currency,
                    success=payment.success,
                    refunded=payment.refunded,
                    payment_option=payment.payment_option,
                    external_id=payment.external_id,
                    data=_strip_secrets(payment.data or {}),
                    created_at=payment.created_at,
                )
                for payment in payments
            ],
        )
