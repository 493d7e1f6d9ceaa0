"""Downstream calendar/video references created when a booking is confirmed."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class BookingReference(Base):
    __tablename__ = "booking_references"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    uid = Column(String(255), nullable=False)
    meeting_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    booking = relationship("Booking", back_populates="references")

    # One reference per integration type keeps confirmation replays harmless.
    __table_args__ = (UniqueConstraint("booking_id", "type", name="uq_booking_references_booking_type"),)

    def __repr__(self) -> str:
        return f"<BookingReference booking={self.booking_id} type={self.type} uid={self.uid}>"
