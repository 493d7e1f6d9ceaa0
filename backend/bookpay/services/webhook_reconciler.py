"""
Webhook Reconciler

Applies asynchronous Stripe status changes to payments and bookings.
Handlers are keyed by event type. Each one tolerates redelivery and
tolerates racing the browser return path, because every write it makes is
conditional on the current row state.

Outcomes:
- success: the event changed local state
- ignored: recognized, but nothing to change (already applied, unknown payment)
- duplicate: this event id was already processed
- in_progress: another delivery holds a live claim on this event id; the
  route answers 409 so the provider delivers it again later
- unhandled: event type has no handler
"""

from dataclasses import dataclass
import logging
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import PaymentOption
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_confirmation_service import BookingConfirmationService
from .checkout_service import CheckoutService
from .webhook_ledger_service import COMPLETED_STATUSES, WebhookLedgerService

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "stripe"


@dataclass
class WebhookOutcome:
    status: str
    message: Optional[str] = None
    payment_id: Optional[int] = None


class WebhookReconciler(BaseService):
    """Dispatches verified provider events to payment handlers."""

    def __init__(
        self,
        db: Session,
        confirmation_service: BookingConfirmationService,
        checkout_service: CheckoutService,
        ledger_service: Optional[WebhookLedgerService] = None,
    ):
        super().__init__(db)
        self.confirmation_service = confirmation_service
        self.checkout_service = checkout_service
        self.ledger_service = ledger_service or WebhookLedgerService(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self._handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], WebhookOutcome]] = {
            "payment_intent.succeeded": self._on_payment_intent_succeeded,
            "checkout.session.completed": self._on_checkout_session_paid,
            "checkout.session.async_payment_succeeded": self._on_checkout_session_paid,
            "setup_intent.succeeded": self._on_setup_intent_succeeded,
            "payment_intent.payment_failed": self._on_payment_intent_failed,
            "checkout.session.expired": self._on_checkout_session_expired,
            "checkout.session.async_payment_failed": self._on_checkout_session_failed,
        }

    def handles(self, event_type: str) -> bool:
        return event_type in self._handlers

    @BaseService.measure_operation("handle_webhook_event")
    def handle_event(self, event: Dict[str, Any], headers: Optional[Dict[str, Any]] = None) -> WebhookOutcome:
        """
        Process a verified event.

        Raises whatever the handler raised after recording the failure in the
        ledger, so the provider retries delivery.
        """
        event_type = event.get("type", "")
        event_id = event.get("id")
        handler = self._handlers.get(event_type)
        if handler is None:
            self.logger.info(f"Unhandled webhook event type: {event_type}")
            return WebhookOutcome(status="unhandled", message=f"Unhandled event type {event_type}")

        with self.transaction():
            entry = self.ledger_service.log_received(
                source=WEBHOOK_SOURCE,
                event_type=event_type,
                payload=event,
                headers=headers,
                event_id=event_id,
                account=event.get("account"),
            )
            if entry.status in COMPLETED_STATUSES:
                self.logger.info(f"Webhook {event_id} ({event_type}) already processed")
                return WebhookOutcome(status="duplicate", message="Event already processed")
            claimed = self.ledger_service.mark_processing(entry)
        if not claimed:
            self.logger.info(f"Webhook {event_id} ({event_type}) is being processed by another delivery")
            return WebhookOutcome(status="in_progress", message="Event is being processed by another delivery")

        start = time.monotonic()
        obj = (event.get("data") or {}).get("object") or {}
        try:
            outcome = handler(obj, event)
        except Exception as exc:
            self.db.rollback()
            self.logger.error(f"Webhook {event_id} ({event_type}) failed: {type(exc).__name__}: {exc}")
            with self.transaction():
                self.ledger_service.mark_failed(
                    entry, error=str(exc), duration_ms=self.ledger_service.elapsed_ms(start)
                )
            raise

        with self.transaction():
            self.ledger_service.mark_processed(
                entry,
                status="processed" if outcome.status == "success" else "ignored",
                related_entity_type="payment" if outcome.payment_id else None,
                related_entity_id=str(outcome.payment_id) if outcome.payment_id else None,
                duration_ms=self.ledger_service.elapsed_ms(start),
            )
        self.logger.info(f"Webhook {event_id} ({event_type}) -> {outcome.status}: {outcome.message}")
        return outcome

    # Lookup helpers

    def _find_payment(self, external_id: Optional[str], metadata: Optional[Dict[str, Any]] = None) -> Optional[Payment]:
        payment = self.payment_repository.get_by_external_id(external_id or "")
        if payment is None and metadata and metadata.get("paymentUid"):
            payment = self.payment_repository.get_by_uid(metadata["paymentUid"])
        return payment

    def _account_mismatch(self, payment: Payment, event: Dict[str, Any]) -> bool:
        account = event.get("account")
        if account and payment.stripe_account and account != payment.stripe_account:
            self.logger.warning(
                f"Event {event.get('id')} from account {account} does not match payment "
                f"{payment.id} account {payment.stripe_account}"
            )
            return True
        return False

    def _missing(self, kind: str, identifier: Optional[str]) -> WebhookOutcome:
        # The booking may not exist yet, or this is a provider test event.
        self.logger.warning(f"No payment found for {kind} {identifier}")
        return WebhookOutcome(status="ignored", message=f"Payment not found for {kind} {identifier}")

    def _succeed(self, payment: Payment) -> WebhookOutcome:
        applied = self.confirmation_service.handle_payment_success(payment)
        return WebhookOutcome(
            status="success" if applied else "ignored",
            message="Payment confirmed" if applied else "Payment already confirmed",
            payment_id=payment.id,
        )

    def _release(self, payment: Payment, reason: str, *, expire_session: bool = True) -> WebhookOutcome:
        payment_id = payment.id
        if payment.option is PaymentOption.SYNC_BOOKING and not payment.success:
            session_id = (payment.data or {}).get("sessionId")
            if session_id and expire_session:
                # A provisional booking is going away; its session must not be payable afterwards.
                self.checkout_service.expire_session_quietly(payment, session_id)
        deleted = self.confirmation_service.handle_payment_failure(payment, reason)
        return WebhookOutcome(
            status="success" if deleted else "ignored",
            message=f"{reason}: booking released" if deleted else f"{reason}: booking kept",
            payment_id=payment_id,
        )

    # Handlers

    def _on_payment_intent_succeeded(self, intent: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        payment = self._find_payment(intent.get("id"), intent.get("metadata"))
        if payment is None:
            return self._missing("payment intent", intent.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        if intent.get("id") and not (payment.data or {}).get("paymentIntent"):
            with self.transaction():
                self.payment_repository.merge_data(payment, paymentIntent=intent["id"])
        return self._succeed(payment)

    def _on_checkout_session_paid(self, session: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        if session.get("payment_status") != "paid":
            return WebhookOutcome(status="ignored", message="Checkout session not paid yet")
        payment = self._find_payment(session.get("id"), session.get("metadata"))
        if payment is None:
            return self._missing("checkout session", session.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        if session.get("payment_intent") and not (payment.data or {}).get("paymentIntent"):
            with self.transaction():
                self.payment_repository.merge_data(payment, paymentIntent=session["payment_intent"])
        return self._succeed(payment)

    def _on_setup_intent_succeeded(self, setup_intent: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        payment = self._find_payment(setup_intent.get("id"), setup_intent.get("metadata"))
        if payment is None:
            return self._missing("setup intent", setup_intent.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        applied = self.confirmation_service.handle_setup_success(payment, setup_intent)
        return WebhookOutcome(
            status="success" if applied else "ignored",
            message="Card collected" if applied else "Card already collected",
            payment_id=payment.id,
        )

    def _on_payment_intent_failed(self, intent: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        payment = self._find_payment(intent.get("id"), intent.get("metadata"))
        if payment is None:
            return self._missing("payment intent", intent.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        return self._release(payment, "Payment failed")

    def _on_checkout_session_expired(self, session: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        payment = self._find_payment(session.get("id"), session.get("metadata"))
        if payment is None:
            return self._missing("checkout session", session.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        return self._release(payment, "Payment session expired", expire_session=False)

    def _on_checkout_session_failed(self, session: Dict[str, Any], event: Dict[str, Any]) -> WebhookOutcome:
        payment = self._find_payment(session.get("id"), session.get("metadata"))
        if payment is None:
            return self._missing("checkout session", session.get("id"))
        if self._account_mismatch(payment, event):
            return WebhookOutcome(status="ignored", message="Account mismatch", payment_id=payment.id)
        return self._release(payment, "Payment failed")
