"""Conditional writes on bookings."""

from datetime import timedelta

import pytest

from bookpay.core.enums import BookingStatus
from bookpay.models import Booking, BookingReference, Payment
from bookpay.repositories.factory import RepositoryFactory


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_booking_repository(db)


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


def test_new_booking_defaults(booking):
    assert booking.status == BookingStatus.PENDING.value
    assert booking.paid is False
    assert len(booking.uid) == 26


def test_transition_applies_once(repository, booking):
    assert repository.transition_status(booking.id, BookingStatus.ACCEPTED) is True
    assert booking.status == BookingStatus.ACCEPTED.value
    assert repository.transition_status(booking.id, BookingStatus.ACCEPTED) is False


def test_accepted_booking_cannot_be_rejected(repository, booking):
    repository.transition_status(booking.id, BookingStatus.ACCEPTED)

    assert repository.transition_status(booking.id, BookingStatus.REJECTED) is False
    assert booking.status == BookingStatus.ACCEPTED.value


def test_accepted_booking_can_be_cancelled_with_reason(repository, booking):
    repository.transition_status(booking.id, BookingStatus.ACCEPTED)

    assert repository.transition_status(booking.id, BookingStatus.CANCELLED, reason="organizer ill") is True
    assert booking.status == BookingStatus.CANCELLED.value
    assert booking.cancellation_reason == "organizer ill"


def test_transition_into_pending_is_not_defined(repository, booking):
    with pytest.raises(ValueError):
        repository.transition_status(booking.id, BookingStatus.PENDING)


def test_mark_paid_applies_once(repository, booking):
    assert repository.mark_paid(booking.id) is True
    assert booking.paid is True
    assert repository.mark_paid(booking.id) is False


def test_delete_unpaid_removes_booking_and_dependents(db, repository, booking):
    db.add(Payment(booking_id=booking.id, amount=5000, currency="usd", external_id="cs_test_1"))
    db.add(BookingReference(booking_id=booking.id, type="bookpay_video", uid="ref-1"))
    db.commit()
    booking_id = booking.id

    assert repository.delete_unpaid(booking_id) is True
    db.commit()

    assert db.query(Booking).filter(Booking.id == booking_id).first() is None
    assert db.query(Payment).filter(Payment.booking_id == booking_id).count() == 0
    assert db.query(BookingReference).filter(BookingReference.booking_id == booking_id).count() == 0


def test_delete_unpaid_leaves_paid_booking(db, repository, booking):
    repository.mark_paid(booking.id)
    db.commit()

    assert repository.delete_unpaid(booking.id) is False
    assert db.get(Booking, booking.id) is not None


def test_has_conflict_ignores_cancelled_bookings(db, repository, booking, organizer, slot_start):
    overlapping_end = slot_start + timedelta(minutes=45)
    assert repository.has_conflict(organizer.id, slot_start + timedelta(minutes=15), overlapping_end)

    repository.transition_status(booking.id, BookingStatus.CANCELLED)
    db.commit()

    assert not repository.has_conflict(organizer.id, slot_start + timedelta(minutes=15), overlapping_end)


def test_delete_unpaid_leaves_accepted_booking(db, repository, booking):
    repository.transition_status(booking.id, BookingStatus.ACCEPTED)
    db.commit()

    assert repository.delete_unpaid(booking.id) is False
    assert db.get(Booking, booking.id) is not None


def test_unpaid_only_cancellation_skips_paid_booking(db, repository, booking):
    repository.transition_status(booking.id, BookingStatus.ACCEPTED)
    repository.mark_paid(booking.id)
    db.commit()

    assert (
        repository.transition_status(
            booking.id, BookingStatus.CANCELLED, reason="Payment failed", unpaid_only=True
        )
        is False
    )
    assert booking.status == BookingStatus.ACCEPTED.value
    assert booking.cancellation_reason is None
