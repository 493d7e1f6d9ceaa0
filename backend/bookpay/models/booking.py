# backend/bookpay/models/booking.py
"""
Booking model.

A booking is created PENDING when the booker submits the form. Its status and
paid flag are moved forward by the webhook reconciler and the browser return
handler, both through conditional updates in BookingRepository.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import BookingStatus
from ..database import Base


class Booking(Base):
    """A scheduled meeting between an organizer and an attendee."""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String(26), unique=True, nullable=False, default=lambda: str(ulid.ULID()))
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_type_id = Column(Integer, ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)

    attendee_name = Column(String(255), nullable=False)
    attendee_email = Column(String(255), nullable=False)
    attendee_phone = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    paid = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    user = relationship("User")
    event_type = relationship("EventType")
    payments = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.id",
    )
    references = relationship(
        "BookingReference",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_bookings_user_time", "user_id", "start_time", "end_time"),
        Index("ix_bookings_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: uid={self.uid} status={self.status} "
            f"paid={self.paid} user={self.user_id}>"
        )
