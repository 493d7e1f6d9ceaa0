"""Payment record store."""

from typing import Any, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.payment import Payment
from .base_repository import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Lookups and guarded writes for payment records."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, Payment)

    def get_by_uid(self, uid: str) -> Optional[Payment]:
        return self.find_one_by(uid=uid)

    def get_by_external_id(self, external_id: str) -> Optional[Payment]:
        # "" marks a session still being created and must never match.
        if not external_id:
            return None
        return self.find_one_by(external_id=external_id)

    def get_by_external_id_and_booking(self, external_id: str, booking_id: int) -> Optional[Payment]:
        if not external_id:
            return None
        return self.find_one_by(external_id=external_id, booking_id=booking_id)

    def list_for_booking(self, booking_id: int) -> List[Payment]:
        query = self._build_query().filter(Payment.booking_id == booking_id).order_by(Payment.id)
        return self._execute_query(query)

    def set_external_reference(
        self, payment_id: int, external_id: str, data: dict[str, Any]
    ) -> bool:
        """Second phase of creation: attach the provider id to the placeholder row."""
        statement = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.external_id == "")
            .values(external_id=external_id, data=data)
        )
        applied = self._execute_update(statement) == 1
        self._reload_cached(payment_id)
        return applied

    def mark_success(self, payment_id: int) -> bool:
        """Flip ``success`` false to true. Returns True only for the caller that flipped it."""
        statement = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.success.is_(False), Payment.refunded.is_(False))
            .values(success=True)
        )
        applied = self._execute_update(statement) == 1
        self._reload_cached(payment_id)
        return applied

    def mark_refunded(self, payment_id: int) -> bool:
        statement = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.success.is_(True), Payment.refunded.is_(False))
            .values(refunded=True)
        )
        applied = self._execute_update(statement) == 1
        self._reload_cached(payment_id)
        return applied

    def merge_data(self, payment: Payment, **values: Any) -> Payment:
        """Merge keys into the opaque data blob. Reassigned so the JSON change is tracked."""
        payment.data = {**(payment.data or {}), **values}
        self.flush()
        return payment
