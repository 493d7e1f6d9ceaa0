"""
Booking repository.

Every status-changing write here is a conditional UPDATE or DELETE. The
returned boolean tells the caller whether it applied the change; ``False``
means the row was already in the target state or was changed by the other
path (webhook vs. browser return).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from ..core.enums import BOOKING_TRANSITIONS, BookingStatus
from ..models.booking import Booking
from ..models.booking_reference import BookingReference
from ..models.payment import Payment
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Booking)

    def has_conflict(self, user_id: int, start_time: datetime, end_time: datetime) -> bool:
        """True when the organizer already has an active booking overlapping the range."""
        query = self._build_query().filter(
            Booking.user_id == user_id,
            Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.ACCEPTED.value]),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        return bool(self._execute_query(query.limit(1)))

    def transition_status(
        self,
        booking_id: int,
        to_status: BookingStatus,
        *,
        reason: Optional[str] = None,
        unpaid_only: bool = False,
    ) -> bool:
        """
        Move a booking to ``to_status`` if its current status allows it.

        ``reason`` is stored as the cancellation reason. With ``unpaid_only``
        a booking that got paid in the meantime is left alone.
        """
        allowed_from = BOOKING_TRANSITIONS.get(to_status)
        if not allowed_from:
            raise ValueError(f"No transition defined into {to_status.value}")
        values: dict = {"status": to_status.value}
        if reason is not None:
            values["cancellation_reason"] = reason
        conditions = [
            Booking.id == booking_id,
            Booking.status.in_([status.value for status in allowed_from]),
        ]
        if unpaid_only:
            conditions.append(Booking.paid.is_(False))
        statement = update(Booking).where(*conditions).values(**values)
        applied = self._execute_update(statement) == 1
        self._reload_cached(booking_id)
        if applied:
            self.logger.info(f"Booking {booking_id} moved to {to_status.value}")
        return applied

    def mark_paid(self, booking_id: int) -> bool:
        statement = update(Booking).where(Booking.id == booking_id, Booking.paid.is_(False)).values(paid=True)
        applied = self._execute_update(statement) == 1
        self._reload_cached(booking_id)
        return applied

    def delete_unpaid(self, booking_id: int) -> bool:
        """
        Delete a PENDING booking that was never paid, freeing its slot.

        Payments and references are removed with it. A booking that got paid
        or accepted in the meantime is left alone.
        """
        cached = self._cached_rows_for(booking_id)
        statement = delete(Booking).where(
            Booking.id == booking_id,
            Booking.paid.is_(False),
            Booking.status == BookingStatus.PENDING.value,
        )
        deleted = self._execute_update(statement) == 1
        if deleted:
            # Dependents go explicitly so the outcome does not hinge on FK enforcement.
            self._execute_update(delete(Payment).where(Payment.booking_id == booking_id))
            self._execute_update(
                delete(BookingReference).where(BookingReference.booking_id == booking_id)
            )
            for instance in cached:
                if instance in self.db:
                    self.db.expunge(instance)
            self.logger.info(f"Deleted unpaid booking {booking_id}")
        return deleted

    def _cached_rows_for(self, booking_id: int) -> list:
        """Session-held booking, payment and reference rows for one booking."""
        cached = []
        for instance in list(self.db.identity_map.values()):
            if isinstance(instance, Booking) and instance.id == booking_id:
                cached.append(instance)
            elif isinstance(instance, (Payment, BookingReference)) and instance.booking_id == booking_id:
                cached.append(instance)
        return cached
