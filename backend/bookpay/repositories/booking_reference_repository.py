"""Downstream integration references for confirmed bookings."""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking_reference import BookingReference
from .base_repository import BaseRepository


class BookingReferenceRepository(BaseRepository[BookingReference]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, BookingReference)

    def get_for_booking(self, booking_id: int, ref_type: str) -> Optional[BookingReference]:
        return self.find_one_by(booking_id=booking_id, type=ref_type)

    def list_for_booking(self, booking_id: int) -> List[BookingReference]:
        return self.find_by(booking_id=booking_id)
