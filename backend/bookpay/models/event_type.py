"""Bookable event types and their payment settings."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import PaymentOption
from ..database import Base


class EventType(Base):
    """
    A bookable event type.

    Price is stored in minor currency units. A paid event type carries the
    payment option that decides how failures affect the booking.
    """

    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    length_minutes = Column(Integer, nullable=False, default=30)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)

    payment_enabled = Column(Boolean, nullable=False, default=False)
    price = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    payment_option = Column(String(20), nullable=False, default=PaymentOption.ON_BOOKING.value)
    stripe_price_id = Column(String(255), nullable=True)
    credential_id = Column(Integer, ForeignKey("credentials.id", ondelete="SET NULL"), nullable=True)
    requires_confirmation = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    owner = relationship("User", back_populates="event_types")
    team = relationship("Team")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_event_type_price_non_negative"),
        CheckConstraint("length_minutes > 0", name="check_event_type_length_positive"),
    )

    @property
    def requires_payment(self) -> bool:
        return bool(self.payment_enabled) and (self.price or 0) > 0

    def __repr__(self) -> str:
        return f"<EventType {self.id}: {self.slug} price={self.price} {self.currency}>"
