"""
Downstream calendar/video integration.

Records one reference per integration type for a confirmed booking. Calling
it again for the same booking returns the existing reference instead of
creating a second event.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.booking import Booking
from ..models.booking_reference import BookingReference
from ..repositories.factory import RepositoryFactory
from .base import BaseService

CALENDAR_REFERENCE_TYPE = "bookpay_video"


class CalendarService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.reference_repository = RepositoryFactory.create_booking_reference_repository(db)

    @BaseService.measure_operation("create_calendar_event")
    def create_event(self, booking: Booking) -> BookingReference:
        existing: Optional[BookingReference] = self.reference_repository.get_for_booking(
            booking.id, CALENDAR_REFERENCE_TYPE
        )
        if existing is not None:
            self.logger.info(f"Calendar reference already exists for booking {booking.id}")
            return existing

        reference = self.reference_repository.create(
            booking_id=booking.id,
            type=CALENDAR_REFERENCE_TYPE,
            uid=f"bookpay-{booking.uid}",
            meeting_url=f"{settings.webapp_url}/video/{booking.uid}",
        )
        self.logger.info(f"Created calendar reference {reference.uid} for booking {booking.id}")
        return reference
