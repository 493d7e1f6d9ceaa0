"""
Thin Stripe client for the booking payment flow.

One instance is built per process and handed to services through FastAPI
dependencies. Credentials are passed per call as request options, so no
module-level ``stripe.api_key`` is ever mutated.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import SecretStr
import stripe

from ..schemas.credential_schemas import OAuthCredential, PlatformCredential

logger = logging.getLogger(__name__)

Credential = PlatformCredential | OAuthCredential


def _as_dict(obj: Any) -> Dict[str, Any]:
    """Normalize SDK objects to plain dicts."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeClient:
    """Wrapper around the Stripe SDK calls used by checkout, returns and refunds."""

    def __init__(
        self,
        *,
        platform_secret_key: str | SecretStr = "",
        api_version: str = "2023-10-16",
    ) -> None:
        secret_value = (
            platform_secret_key.get_secret_value()
            if isinstance(platform_secret_key, SecretStr)
            else platform_secret_key
        )
        self._platform_secret_key = secret_value
        self._api_version = api_version

    def request_options(self, credential: Credential) -> Dict[str, Any]:
        """
        Build per-call options for a resolved credential.

        Manual platform configuration runs on its own secret. OAuth credentials
        run on the platform secret, scoped to the connected account.
        """
        options: Dict[str, Any] = {"stripe_version": self._api_version}
        if isinstance(credential, PlatformCredential):
            options["api_key"] = credential.secret_key.get_secret_value()
        else:
            if not self._platform_secret_key:
                raise ValueError("Stripe secret key must be configured for connected accounts")
            options["api_key"] = self._platform_secret_key
            options["stripe_account"] = credential.stripe_user_id
        return options

    def find_or_create_customer(
        self, *, email: str, name: Optional[str], options: Dict[str, Any]
    ) -> Dict[str, Any]:
        existing = stripe.Customer.list(email=email, limit=1, **options)
        data = _as_dict(existing).get("data") or []
        if data:
            return _as_dict(data[0])
        customer = stripe.Customer.create(email=email, name=name or None, **options)
        logger.info(f"Created Stripe customer {customer['id']} on account {options.get('stripe_account')}")
        return _as_dict(customer)

    def create_checkout_session(self, params: Dict[str, Any], *, options: Dict[str, Any]) -> Dict[str, Any]:
        return _as_dict(stripe.checkout.Session.create(**params, **options))

    def retrieve_checkout_session(self, session_id: str, *, options: Dict[str, Any]) -> Dict[str, Any]:
        return _as_dict(stripe.checkout.Session.retrieve(session_id, **options))

    def expire_checkout_session(self, session_id: str, *, options: Dict[str, Any]) -> Dict[str, Any]:
        return _as_dict(stripe.checkout.Session.expire(session_id, **options))

    def create_setup_intent(self, params: Dict[str, Any], *, options: Dict[str, Any]) -> Dict[str, Any]:
        return _as_dict(stripe.SetupIntent.create(**params, **options))

    def create_payment_intent(
        self, params: Dict[str, Any], *, options: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        if idempotency_key:
            options = {**options, "idempotency_key": idempotency_key}
        return _as_dict(stripe.PaymentIntent.create(**params, **options))

    def create_refund(
        self, *, payment_intent: str, options: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        if idempotency_key:
            options = {**options, "idempotency_key": idempotency_key}
        return _as_dict(stripe.Refund.create(payment_intent=payment_intent, **options))

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Any:
        """Verify a webhook signature. Raises ``stripe.SignatureVerificationError``."""
        return stripe.Webhook.construct_event(payload, signature, secret)


class FakeStripeClient(StripeClient):
    """
    In-memory stand-in that mimics Stripe for local runs and tests.

    Webhook signature verification is inherited unchanged since it never
    touches the network.
    """

    def __init__(self) -> None:
        super().__init__(platform_secret_key="sk_test_fake", api_version="2023-10-16")
        self._logger = logging.getLogger(self.__class__.__name__)
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.setup_intents: Dict[str, Dict[str, Any]] = {}
        self.payment_intents: Dict[str, Dict[str, Any]] = {}
        self.refunds: Dict[str, Dict[str, Any]] = {}
        self.calls: list[tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, Exception] = {}

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        self._failures[operation] = error or stripe.InvalidRequestError(
            "No such destination account", param="stripe_account"
        )

    def _record(self, operation: str, options: Dict[str, Any], **details: Any) -> None:
        self.calls.append((operation, {"stripe_account": options.get("stripe_account"), **details}))
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def _session(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get(session_id)
        if session is None:
            raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", param="id")
        return session

    def find_or_create_customer(
        self, *, email: str, name: Optional[str], options: Dict[str, Any]
    ) -> Dict[str, Any]:
        self._record("find_or_create_customer", options, email=email)
        key = f"{options.get('stripe_account')}:{email}"
        if key not in self.customers:
            self.customers[key] = {"id": f"cus_fake_{uuid4().hex[:14]}", "email": email, "name": name}
        return dict(self.customers[key])

    def create_checkout_session(self, params: Dict[str, Any], *, options: Dict[str, Any]) -> Dict[str, Any]:
        self._record("create_checkout_session", options, params=params)
        session_id = f"cs_test_{uuid4().hex[:24]}"
        session = {
            "id": session_id,
            "object": "checkout.session",
            "client_secret": f"{session_id}_secret_{uuid4().hex[:8]}",
            "status": "open",
            "payment_status": "unpaid",
            "payment_intent": None,
            "customer": params.get("customer"),
            "metadata": dict(params.get("metadata") or {}),
            "amount_total": sum(
                (item.get("price_data") or {}).get("unit_amount", 0) * item.get("quantity", 1)
                for item in params.get("line_items", [])
            ),
            "stripe_account": options.get("stripe_account"),
        }
        self.sessions[session_id] = session
        return dict(session)

    def retrieve_checkout_session(self, session_id: str, *, options: Dict[str, Any]) -> Dict[str, Any]:
        self._record("retrieve_checkout_session", options, session_id=session_id)
        return dict(self._session(session_id))

    def expire_checkout_session(self, session_id: str, *, options: Dict[str, Any]) -> Dict[str, Any]:
        self._record("expire_checkout_session", options, session_id=session_id)
        session = self._session(session_id)
        if session["status"] != "open":
            raise stripe.InvalidRequestError(
                "Only Checkout Sessions with a status in ['open'] can be expired. "
                f"This Checkout Session has a status of '{session['status']}'.",
                param="session",
            )
        session["status"] = "expired"
        return dict(session)

    def create_setup_intent(self, params: Dict[str, Any], *, options: Dict[str, Any]) -> Dict[str, Any]:
        self._record("create_setup_intent", options, params=params)
        intent_id = f"seti_fake_{uuid4().hex[:20]}"
        intent = {
            "id": intent_id,
            "object": "setup_intent",
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:8]}",
            "status": "requires_payment_method",
            "customer": params.get("customer"),
            "payment_method": None,
            "metadata": dict(params.get("metadata") or {}),
        }
        self.setup_intents[intent_id] = intent
        return dict(intent)

    def create_payment_intent(
        self, params: Dict[str, Any], *, options: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        self._record("create_payment_intent", options, params=params, idempotency_key=idempotency_key)
        intent_id = f"pi_fake_{uuid4().hex[:20]}"
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": params.get("amount"),
            "currency": params.get("currency"),
            "status": "succeeded" if params.get("confirm") else "requires_confirmation",
            "metadata": dict(params.get("metadata") or {}),
            "application_fee_amount": params.get("application_fee_amount"),
        }
        self.payment_intents[intent_id] = intent
        return dict(intent)

    def create_refund(
        self, *, payment_intent: str, options: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        self._record("create_refund", options, payment_intent=payment_intent)
        refund_id = f"re_fake_{uuid4().hex[:20]}"
        refund = {"id": refund_id, "object": "refund", "payment_intent": payment_intent, "status": "succeeded"}
        self.refunds[refund_id] = refund
        return dict(refund)

    # Test helpers

    def complete_session(self, session_id: str, *, paid: bool = True) -> Dict[str, Any]:
        """Simulate the booker finishing the hosted checkout."""
        session = self._session(session_id)
        session["status"] = "complete"
        session["payment_status"] = "paid" if paid else "unpaid"
        if paid and not session.get("payment_intent"):
            session["payment_intent"] = f"pi_fake_{uuid4().hex[:20]}"
        return dict(session)

    def calls_for(self, operation: str) -> list[Dict[str, Any]]:
        return [details for name, details in self.calls if name == operation]
