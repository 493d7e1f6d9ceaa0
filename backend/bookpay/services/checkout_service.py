"""
Checkout Session Creator and payment operations.

Payment creation is two-phase. A placeholder Payment row (``external_id=""``)
is committed first, then the provider session is created and attached to it.
A provider failure therefore always leaves a row carrying the error for
diagnosis.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.enums import PaymentOption
from ..core.exceptions import (
    BusinessRuleException,
    PaymentNotConnectedException,
    PaymentNotCreatedException,
    PaymentProviderException,
    ServiceException,
)
from ..integrations.stripe_client import StripeClient
from ..models.booking import Booking
from ..models.event_type import EventType
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..schemas.credential_schemas import OAuthCredential, ResolvedCredential
from .base import BaseService
from .credential_resolver import CredentialResolver

logger = logging.getLogger(__name__)

METADATA_IDENTIFIER = "bookpay"


def calculate_application_fee(amount: int, percentage: float, fixed: int) -> int:
    return int(round(amount * percentage + fixed))


class CheckoutService(BaseService):
    """Creates, charges, refunds and removes payments for bookings."""

    def __init__(
        self,
        db: Session,
        stripe_client: StripeClient,
        credential_resolver: Optional[CredentialResolver] = None,
    ):
        super().__init__(db)
        self.stripe_client = stripe_client
        self.credential_resolver = credential_resolver or CredentialResolver(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)

    def _metadata(self, booking: Booking, event_type: EventType, payment: Payment) -> Dict[str, str]:
        organizer = booking.user
        values = {
            "identifier": METADATA_IDENTIFIER,
            "bookingId": booking.id,
            "bookingUid": booking.uid,
            "paymentUid": payment.uid,
            "organizerId": booking.user_id,
            "organizerUsername": organizer.username if organizer else None,
            "bookerName": booking.attendee_name,
            "bookerEmail": booking.attendee_email,
            "bookerPhoneNumber": booking.attendee_phone,
            "eventTitle": event_type.title,
            "bookingTitle": booking.title,
        }
        # Stripe metadata values are strings; empty keys are dropped.
        return {key: str(value) for key, value in values.items() if value not in (None, "")}

    def _currency(self, event_type: EventType, credential: ResolvedCredential) -> str:
        if event_type.currency:
            return event_type.currency.lower()
        if isinstance(credential, OAuthCredential) and credential.default_currency:
            return credential.default_currency.lower()
        return settings.stripe_currency

    def _line_item(self, event_type: EventType, currency: str) -> Dict[str, Any]:
        if event_type.stripe_price_id:
            return {"price": event_type.stripe_price_id, "quantity": 1}
        return {
            "price_data": {
                "currency": currency,
                "unit_amount": event_type.price,
                "product_data": {"name": event_type.title},
            },
            "quantity": 1,
        }

    def _create_placeholder(
        self, booking: Booking, event_type: EventType, option: PaymentOption, currency: str
    ) -> Payment:
        with self.transaction():
            return self.payment_repository.create(
                booking_id=booking.id,
                amount=event_type.price,
                fee=0,
                currency=currency,
                payment_option=option.value,
                external_id="",
                success=False,
                refunded=False,
                data={},
            )

    def _record_failure(self, payment: Payment, booking: Booking, exc: Exception) -> None:
        self.logger.error(
            f"Payment creation failed for booking {booking.id} (payment {payment.id}): "
            f"{type(exc).__name__}: {exc}"
        )
        with self.transaction():
            self.payment_repository.merge_data(
                payment,
                error={"type": type(exc).__name__, "message": str(exc)},
            )

    def _attach(self, payment: Payment, external_id: str, data: Dict[str, Any]) -> Payment:
        with self.transaction():
            if not self.payment_repository.set_external_reference(payment.id, external_id, data):
                raise ServiceException(f"Payment {payment.id} already has a provider reference")
        return payment

    @BaseService.measure_operation("create_payment")
    def create_payment(
        self,
        booking: Booking,
        event_type: EventType,
        credential: ResolvedCredential,
    ) -> Payment:
        """
        Create an embedded checkout session for ON_BOOKING and SYNC_BOOKING payments.

        Raises:
            PaymentNotCreatedException: If the provider rejected the request
        """
        option = PaymentOption.parse(event_type.payment_option)
        if option is PaymentOption.HOLD:
            return self.collect_card(booking, event_type, credential)

        currency = self._currency(event_type, credential)
        payment = self._create_placeholder(booking, event_type, option, currency)

        try:
            options = self.stripe_client.request_options(credential)
            customer = self.stripe_client.find_or_create_customer(
                email=booking.attendee_email, name=booking.attendee_name, options=options
            )
            metadata = self._metadata(booking, event_type, payment)
            params: Dict[str, Any] = {
                "mode": "payment",
                "ui_mode": "embedded",
                "customer": customer["id"],
                "line_items": [self._line_item(event_type, currency)],
                "allow_promotion_codes": True,
                "return_url": (
                    f"{settings.webapp_url}/api/booking/{booking.id}/payment-success"
                    "?session_id={CHECKOUT_SESSION_ID}"
                ),
                "metadata": metadata,
                "payment_intent_data": {"metadata": metadata},
            }
            session = self.stripe_client.create_checkout_session(params, options=options)
        except (stripe.StripeError, ValueError) as exc:
            self._record_failure(payment, booking, exc)
            raise PaymentNotCreatedException(details={"payment_uid": payment.uid}) from exc

        data = {
            "sessionId": session["id"],
            "clientSecret": session.get("client_secret"),
            "stripe_publishable_key": credential.publishable_key,
            "stripeAccount": credential.stripe_account,
            "credentialId": credential.credential_id,
            "customerId": customer["id"],
        }
        self._attach(payment, session["id"], data)
        self.logger.info(f"Created checkout session {session['id']} for booking {booking.id}")
        return payment

    @BaseService.measure_operation("collect_card")
    def collect_card(
        self,
        booking: Booking,
        event_type: EventType,
        credential: ResolvedCredential,
    ) -> Payment:
        """Create a setup intent so the card can be charged later (HOLD)."""
        currency = self._currency(event_type, credential)
        payment = self._create_placeholder(booking, event_type, PaymentOption.HOLD, currency)

        try:
            options = self.stripe_client.request_options(credential)
            customer = self.stripe_client.find_or_create_customer(
                email=booking.attendee_email, name=booking.attendee_name, options=options
            )
            setup_intent = self.stripe_client.create_setup_intent(
                {
                    "customer": customer["id"],
                    "usage": "off_session",
                    "metadata": self._metadata(booking, event_type, payment),
                },
                options=options,
            )
        except (stripe.StripeError, ValueError) as exc:
            self._record_failure(payment, booking, exc)
            raise PaymentNotCreatedException(details={"payment_uid": payment.uid}) from exc

        data = {
            "setupIntent": {"id": setup_intent["id"], "client_secret": setup_intent.get("client_secret")},
            "stripe_publishable_key": credential.publishable_key,
            "stripeAccount": credential.stripe_account,
            "credentialId": credential.credential_id,
            "customerId": customer["id"],
        }
        return self._attach(payment, setup_intent["id"], data)

    @BaseService.measure_operation("charge_card")
    def charge_card(self, payment: Payment) -> Payment:
        """Charge a held card off-session, for example after a no-show."""
        if payment.success:
            return payment
        if payment.option is not PaymentOption.HOLD:
            raise BusinessRuleException(
                "Only held cards can be charged", code="PAYMENT_NOT_HOLD", details={"payment_id": payment.id}
            )
        data = payment.data or {}
        payment_method = data.get("paymentMethod")
        customer_id = data.get("customerId")
        if not payment_method or not customer_id:
            raise BusinessRuleException(
                "No card on file for this payment",
                code="PAYMENT_METHOD_MISSING",
                details={"payment_id": payment.id},
            )

        credential = self.credential_resolver.credential_for_payment(payment)
        fee = calculate_application_fee(
            payment.amount, credential.payment_fee_percentage, credential.payment_fee_fixed
        )
        params: Dict[str, Any] = {
            "amount": payment.amount,
            "currency": payment.currency,
            "customer": customer_id,
            "payment_method": payment_method,
            "off_session": True,
            "confirm": True,
            "metadata": {"identifier": METADATA_IDENTIFIER, "paymentUid": payment.uid, "bookingId": str(payment.booking_id)},
        }
        if credential.stripe_account and fee > 0:
            params["application_fee_amount"] = fee

        try:
            intent = self.stripe_client.create_payment_intent(
                params,
                options=self.stripe_client.request_options(credential),
                idempotency_key=f"charge:{payment.uid}",
            )
        except stripe.StripeError as exc:
            self.logger.error(f"Charging held card for payment {payment.id} failed: {exc}")
            raise PaymentProviderException(
                "Card could not be charged", code="CHARGE_FAILED", details={"payment_id": payment.id}
            ) from exc

        with self.transaction():
            self.payment_repository.mark_success(payment.id)
            payment.fee = fee
            self.payment_repository.merge_data(payment, paymentIntent=intent["id"])
        self.logger.info(f"Charged held card for payment {payment.id}, intent {intent['id']}")
        return payment

    @BaseService.measure_operation("refund_payment")
    def refund(self, payment: Payment) -> Payment:
        """Refund a successful payment. Refunding twice is a no-op."""
        if payment.refunded:
            return payment
        if not payment.success:
            raise BusinessRuleException(
                "Only successful payments can be refunded",
                code="PAYMENT_NOT_SUCCESSFUL",
                details={"payment_id": payment.id},
            )

        credential = self.credential_resolver.credential_for_payment(payment)
        options = self.stripe_client.request_options(credential)
        try:
            payment_intent = (payment.data or {}).get("paymentIntent")
            if not payment_intent and payment.session_id:
                session = self.stripe_client.retrieve_checkout_session(payment.session_id, options=options)
                payment_intent = session.get("payment_intent")
            if not payment_intent:
                raise BusinessRuleException(
                    "Payment has no charge to refund",
                    code="PAYMENT_INTENT_MISSING",
                    details={"payment_id": payment.id},
                )
            refund = self.stripe_client.create_refund(
                payment_intent=payment_intent, options=options, idempotency_key=f"refund:{payment.uid}"
            )
        except stripe.StripeError as exc:
            self.logger.error(f"Refund for payment {payment.id} failed: {exc}")
            raise PaymentProviderException(
                "Refund could not be created", code="REFUND_FAILED", details={"payment_id": payment.id}
            ) from exc

        with self.transaction():
            self.payment_repository.mark_refunded(payment.id)
            self.payment_repository.merge_data(payment, paymentIntent=payment_intent, refundId=refund["id"])
        return payment

    @BaseService.measure_operation("delete_payment")
    def delete_payment(self, payment: Payment) -> bool:
        """Expire the open session (best effort) and remove the unpaid payment row."""
        if payment.success:
            raise BusinessRuleException(
                "Successful payments cannot be deleted", code="PAYMENT_SUCCEEDED", details={"payment_id": payment.id}
            )
        session_id = (payment.data or {}).get("sessionId")
        if session_id:
            self.expire_session_quietly(payment, session_id)
        with self.transaction():
            return self.payment_repository.delete(payment.id)

    def expire_session_quietly(self, payment: Payment, session_id: str) -> bool:
        """Expire a checkout session, logging instead of raising on provider errors."""
        try:
            credential = self.credential_resolver.credential_for_payment(payment)
            self.stripe_client.expire_checkout_session(
                session_id, options=self.stripe_client.request_options(credential)
            )
            return True
        except (stripe.StripeError, ValueError, PaymentNotConnectedException) as exc:
            self.logger.warning(f"Could not expire session {session_id} for payment {payment.id}: {exc}")
            return False
