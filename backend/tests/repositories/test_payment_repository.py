"""Payment record store lookups and guarded writes."""

from datetime import timedelta

import pytest

from bookpay.core.exceptions import RepositoryException
from bookpay.models import Booking, Payment
from bookpay.repositories.factory import RepositoryFactory


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_payment_repository(db)


@pytest.fixture
def booking(db, organizer, slot_start) -> Booking:
    booking = Booking(
        title="Consultation",
        user_id=organizer.id,
        start_time=slot_start,
        end_time=slot_start + timedelta(minutes=30),
        attendee_name="Bea Booker",
        attendee_email="booker@example.com",
    )
    db.add(booking)
    db.commit()
    return booking


def _placeholder(repository, booking) -> Payment:
    return repository.create(booking_id=booking.id, amount=5000, currency="usd", external_id="")


def test_empty_external_id_never_matches(db, repository, booking):
    _placeholder(repository, booking)
    db.commit()

    assert repository.get_by_external_id("") is None
    assert repository.get_by_external_id_and_booking("", booking.id) is None


def test_several_placeholders_may_coexist(db, repository, booking):
    _placeholder(repository, booking)
    _placeholder(repository, booking)
    db.commit()

    assert len(repository.list_for_booking(booking.id)) == 2


def test_external_id_is_unique_once_set(db, repository, booking):
    repository.create(booking_id=booking.id, amount=5000, currency="usd", external_id="cs_test_dup")
    db.commit()

    with pytest.raises(RepositoryException):
        repository.create(booking_id=booking.id, amount=5000, currency="usd", external_id="cs_test_dup")


def test_set_external_reference_applies_to_placeholder_only(db, repository, booking):
    payment = _placeholder(repository, booking)

    assert repository.set_external_reference(payment.id, "cs_test_1", {"sessionId": "cs_test_1"}) is True
    assert payment.external_id == "cs_test_1"
    assert payment.data == {"sessionId": "cs_test_1"}
    assert repository.set_external_reference(payment.id, "cs_test_2", {}) is False
    assert repository.get_by_external_id_and_booking("cs_test_1", booking.id).id == payment.id


def test_lookup_by_session_requires_matching_booking(db, repository, booking):
    repository.create(booking_id=booking.id, amount=5000, currency="usd", external_id="cs_test_1")
    db.commit()

    assert repository.get_by_external_id_and_booking("cs_test_1", booking.id + 1) is None


def test_mark_success_applies_once(db, repository, booking):
    payment = _placeholder(repository, booking)

    assert repository.mark_success(payment.id) is True
    assert payment.success is True
    assert repository.mark_success(payment.id) is False


def test_refunded_payment_cannot_become_successful_again(db, repository, booking):
    payment = _placeholder(repository, booking)
    repository.mark_success(payment.id)

    assert repository.mark_refunded(payment.id) is True
    assert repository.mark_refunded(payment.id) is False
    assert payment.refunded is True


def test_merge_data_keeps_existing_keys(db, repository, booking):
    payment = _placeholder(repository, booking)
    repository.merge_data(payment, sessionId="cs_test_1")
    repository.merge_data(payment, paymentIntent="pi_1")
    db.commit()
    db.expire_all()

    assert db.get(Payment, payment.id).data == {"sessionId": "cs_test_1", "paymentIntent": "pi_1"}
