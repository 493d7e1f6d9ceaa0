"""
Tests for the Stripe webhook endpoint.

Covers signature handling, secret selection, ledger-backed deduplication
and the status codes returned to Stripe.
"""

from datetime import datetime, timedelta, timezone

from _helpers import WEBHOOK_SECRET, sign_payload, stripe_event
from pydantic import SecretStr
import pytest

from bookpay.core.config import settings
from bookpay.core.enums import BookingStatus, PaymentOption
from bookpay.models import Booking, WebhookEvent
from bookpay.services.webhook_reconciler import WebhookReconciler

WEBHOOK_URL = "/api/integrations/stripepayment/webhook"


@pytest.fixture
def paid_session(book, make_event_type, organizer_credential, fake_stripe):
    booking, payment = book(make_event_type(PaymentOption.ON_BOOKING))
    return booking, fake_stripe.complete_session(payment.external_id)


class TestSignatureHandling:
    def test_missing_signature_is_rejected(self, client):
        response = client.post(WEBHOOK_URL, content=b"{}")

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing stripe-signature header"

    def test_invalid_signature_is_rejected(self, post_webhook):
        event = stripe_event("checkout.session.completed", {"id": "cs_test_x"})

        response = post_webhook(event, secret="whsec_wrong")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook signature"

    def test_garbage_signature_header_is_rejected(self, post_webhook):
        response = post_webhook(stripe_event("charge.refunded", {"id": "ch_1"}), signature="nonsense")

        assert response.status_code == 400

    def test_malformed_body_with_valid_signature_is_rejected(self, client):
        payload = "{not json"

        response = client.post(
            WEBHOOK_URL,
            content=payload,
            headers={"stripe-signature": sign_payload(payload, WEBHOOK_SECRET)},
        )

        assert response.status_code == 400

    def test_signed_non_object_body_is_rejected(self, client, db):
        payload = "[1, 2]"

        response = client.post(
            WEBHOOK_URL,
            content=payload,
            headers={"stripe-signature": sign_payload(payload, WEBHOOK_SECRET)},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload"
        assert db.query(WebhookEvent).count() == 0

    def test_no_configured_secret_is_a_server_error(self, client, post_webhook, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(""))

        response = post_webhook(stripe_event("checkout.session.completed", {"id": "cs_test_x"}))

        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook secret not configured"

    def test_app_config_secret_is_accepted(self, post_webhook, platform_keys):
        response = post_webhook(
            stripe_event("charge.refunded", {"id": "ch_1"}), secret="whsec_from_app_config"
        )

        assert response.status_code == 202

    def test_connect_secret_is_accepted(self, post_webhook, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret_connect", SecretStr("whsec_connect"))

        response = post_webhook(stripe_event("charge.refunded", {"id": "ch_1"}), secret="whsec_connect")

        assert response.status_code == 202


class TestEventProcessing:
    def test_unhandled_event_type_is_accepted(self, post_webhook, db):
        response = post_webhook(stripe_event("charge.refunded", {"id": "ch_1"}))

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "unhandled"
        assert body["event_type"] == "charge.refunded"
        assert db.query(WebhookEvent).count() == 0

    def test_completed_session_confirms_booking(self, post_webhook, paid_session, db, email_sender):
        booking, session = paid_session
        sent_before = len(email_sender.sent)

        response = post_webhook(stripe_event("checkout.session.completed", session))

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        db.expire_all()
        confirmed = db.get(Booking, booking.id)
        assert confirmed.status == BookingStatus.ACCEPTED.value
        assert confirmed.paid is True
        assert len(email_sender.sent) == sent_before + 2

    def test_redelivered_event_is_acknowledged_as_duplicate(self, post_webhook, paid_session, db, email_sender):
        _, session = paid_session
        event = stripe_event("checkout.session.completed", session)
        post_webhook(event)
        sent_after_first = len(email_sender.sent)

        response = post_webhook(event)

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert len(email_sender.sent) == sent_after_first
        db.expire_all()
        entry = db.query(WebhookEvent).filter(WebhookEvent.event_id == event["id"]).one()
        assert entry.retry_count == 1
        assert entry.headers["stripe-signature"] == "***"

    def test_unknown_payment_is_ignored(self, post_webhook):
        session = {"id": "cs_test_unknown", "payment_status": "paid", "metadata": {}}

        response = post_webhook(stripe_event("checkout.session.completed", session))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_handler_failure_returns_500_and_allows_retry(
        self, post_webhook, paid_session, db, monkeypatch
    ):
        booking, session = paid_session
        event = stripe_event("checkout.session.completed", session)

        def _boom(self, obj, event):
            raise RuntimeError("calendar down")

        with monkeypatch.context() as patch:
            patch.setattr(WebhookReconciler, "_on_checkout_session_paid", _boom)
            failed = post_webhook(event)

        assert failed.status_code == 500
        assert failed.json()["detail"] == "Failed to process webhook"
        db.expire_all()
        entry = db.query(WebhookEvent).filter(WebhookEvent.event_id == event["id"]).one()
        assert entry.status == "failed"
        assert entry.processing_error == "calendar down"

        retried = post_webhook(event)

        assert retried.status_code == 200
        assert retried.json()["status"] == "success"
        db.expire_all()
        assert db.get(Booking, booking.id).paid is True

    def test_event_claimed_by_live_delivery_asks_for_retry(self, post_webhook, paid_session, db):
        booking, session = paid_session
        event = stripe_event("checkout.session.completed", session, event_id="evt_in_flight")
        db.add(
            WebhookEvent(
                source="stripe",
                event_type=event["type"],
                event_id=event["id"],
                payload=event,
                status="processing",
                processing_started_at=datetime.now(timezone.utc),
            )
        )
        db.commit()

        response = post_webhook(event)

        assert response.status_code == 409
        assert response.json()["status"] == "in_progress"
        db.expire_all()
        assert db.get(Booking, booking.id).paid is False

    def test_abandoned_claim_is_taken_over_by_redelivery(self, post_webhook, paid_session, db):
        booking, session = paid_session
        event = stripe_event("checkout.session.completed", session, event_id="evt_worker_died")
        db.add(
            WebhookEvent(
                source="stripe",
                event_type=event["type"],
                event_id=event["id"],
                payload=event,
                status="processing",
                processing_started_at=datetime.now(timezone.utc) - timedelta(hours=1),
            )
        )
        db.commit()

        response = post_webhook(event)

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        db.expire_all()
        assert db.get(Booking, booking.id).paid is True
        entry = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_worker_died").one()
        assert entry.status == "processed"

    def test_expired_sync_session_releases_slot(self, post_webhook, book, make_event_type, organizer_credential, db):
        booking, payment = book(make_event_type(PaymentOption.SYNC_BOOKING))
        booking_id = booking.id
        session = {"id": payment.external_id, "status": "expired", "payment_status": "unpaid", "metadata": {}}

        response = post_webhook(stripe_event("checkout.session.expired", session))

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        db.expire_all()
        assert db.query(Booking).filter(Booking.id == booking_id).first() is None
