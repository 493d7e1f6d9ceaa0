"""Browser return handling after hosted checkout."""

from _helpers import stripe_event
import pytest

from bookpay.core.config import settings
from bookpay.core.enums import BookingStatus, PaymentOption
from bookpay.core.exceptions import NotFoundException, PaymentProviderException
from bookpay.models import Booking, BookingReference


def test_return_after_webhook_does_not_resend_confirmation(
    db, book, make_event_type, organizer_credential, reconciler, return_service, email_sender, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.ON_BOOKING))
    session = fake_stripe.complete_session(payment.external_id)
    reconciler.handle_event(stripe_event("checkout.session.completed", session))
    sent_after_webhook = len(email_sender.sent)

    result = return_service.handle_success_return(booking.id, payment.external_id)

    assert result.outcome == "success"
    assert result.redirect_url == f"{settings.webapp_url}/booking/{booking.uid}?payment_status=success"
    assert len(email_sender.sent) == sent_after_webhook
    assert db.query(BookingReference).filter(BookingReference.booking_id == booking.id).count() == 1


def test_return_before_webhook_confirms_once(
    db, book, make_event_type, organizer_credential, reconciler, return_service, email_sender, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.ON_BOOKING))
    session = fake_stripe.complete_session(payment.external_id)
    awaiting_payment_emails = len(email_sender.sent)

    result = return_service.handle_success_return(booking.id, payment.external_id)
    late_webhook = reconciler.handle_event(stripe_event("checkout.session.completed", session))

    assert result.outcome == "success"
    assert late_webhook.status == "ignored"
    assert len(email_sender.sent) == awaiting_payment_emails + 2
    db.expire_all()
    confirmed = db.get(Booking, booking.id)
    assert confirmed.status == BookingStatus.ACCEPTED.value
    assert confirmed.paid is True


def test_unpaid_sync_return_expires_session_and_releases_slot(
    db, book, make_event_type, organizer_credential, return_service, fake_stripe
):
    event_type = make_event_type(PaymentOption.SYNC_BOOKING)
    booking, payment = book(event_type)
    booking_id, session_id = booking.id, payment.external_id

    result = return_service.handle_success_return(booking_id, session_id)

    assert result.outcome == "released"
    assert result.redirect_url == f"{settings.webapp_url}/olive/{event_type.slug}?payment_status=failed"
    assert fake_stripe.sessions[session_id]["status"] == "expired"
    db.expire_all()
    assert db.query(Booking).filter(Booking.id == booking_id).first() is None


def test_unpaid_sync_return_for_team_event_redirects_to_team_page(
    book, make_event_type, organizer_credential, team, return_service
):
    event_type = make_event_type(PaymentOption.SYNC_BOOKING, team_id=team.id)
    booking, payment = book(event_type)

    result = return_service.handle_success_return(booking.id, payment.external_id)

    assert result.redirect_url == f"{settings.webapp_url}/team/acme/{event_type.slug}?payment_status=failed"


def test_unpaid_on_booking_return_redirects_to_retry_page(
    db, book, make_event_type, organizer_credential, return_service, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.ON_BOOKING))

    result = return_service.handle_success_return(booking.id, payment.external_id)

    assert result.outcome == "retry"
    assert result.redirect_url == f"{settings.webapp_url}/payment/{payment.uid}?payment_status=failed"
    assert fake_stripe.sessions[payment.external_id]["status"] == "open"
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.PENDING.value


def test_cancel_return_expires_session_and_keeps_on_booking_booking(
    db, book, make_event_type, organizer_credential, return_service, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.ON_BOOKING))

    result = return_service.handle_cancel_return(booking.id, payment.external_id)

    assert result.redirect_url == f"{settings.webapp_url}/payment/{payment.uid}?payment_cancelled=true"
    assert fake_stripe.sessions[payment.external_id]["status"] == "expired"
    db.expire_all()
    assert db.get(Booking, booking.id) is not None


def test_cancel_return_releases_sync_booking(
    db, book, make_event_type, organizer_credential, return_service
):
    event_type = make_event_type(PaymentOption.SYNC_BOOKING)
    booking, payment = book(event_type)
    booking_id = booking.id

    result = return_service.handle_cancel_return(booking_id, payment.external_id)

    assert result.redirect_url == f"{settings.webapp_url}/olive/{event_type.slug}?payment_cancelled=true"
    db.expire_all()
    assert db.query(Booking).filter(Booking.id == booking_id).first() is None


def test_cancel_return_never_touches_paid_booking(
    db, book, make_event_type, organizer_credential, reconciler, return_service, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.SYNC_BOOKING))
    session = fake_stripe.complete_session(payment.external_id)
    reconciler.handle_event(stripe_event("checkout.session.completed", session))

    result = return_service.handle_cancel_return(booking.id, payment.external_id)

    assert result.outcome == "success"
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.ACCEPTED.value


def test_session_from_another_booking_is_not_found(
    book, make_event_type, organizer_credential, return_service
):
    first, first_payment = book(make_event_type(PaymentOption.ON_BOOKING))
    second, _second_payment = book(make_event_type(PaymentOption.ON_BOOKING, price=7000), offset_hours=2)

    with pytest.raises(NotFoundException) as exc_info:
        return_service.handle_success_return(second.id, first_payment.external_id)

    assert exc_info.value.code == "PAYMENT_NOT_FOUND"


def test_return_for_deleted_booking_redirects_to_failure_page(return_service):
    result = return_service.handle_success_return(424242, "cs_test_gone")

    assert result.outcome == "missing"
    assert result.redirect_url == f"{settings.webapp_url}/payment-failed?payment_status=failed"


def test_provider_error_during_verification_raises_502(
    db, book, make_event_type, organizer_credential, return_service, fake_stripe
):
    booking, payment = book(make_event_type(PaymentOption.SYNC_BOOKING))
    fake_stripe.fail_next("retrieve_checkout_session")

    with pytest.raises(PaymentProviderException) as exc_info:
        return_service.handle_success_return(booking.id, payment.external_id)

    assert exc_info.value.to_http_exception().status_code == 502
    assert exc_info.value.message == "Payment verification failed"
    db.expire_all()
    assert db.get(Booking, booking.id) is not None


def test_payment_debug_strips_client_secrets(book, make_event_type, organizer_credential, return_service):
    booking, payment = book(make_event_type(PaymentOption.SYNC_BOOKING))

    debug = return_service.get_payment_debug(booking.id)

    assert debug.booking_id == booking.id
    assert len(debug.payments) == 1
    data = debug.payments[0].data
    assert data["sessionId"] == payment.external_id
    assert "clientSecret" not in data


def test_payment_debug_for_unknown_booking(return_service):
    with pytest.raises(NotFoundException):
        return_service.get_payment_debug(424242)
