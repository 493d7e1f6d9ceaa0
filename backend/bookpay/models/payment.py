"""
Payment record model.

A payment is one attempt to collect money for exactly one booking. The
``external_id`` is the provider's checkout session (or setup intent) id. It is
an empty string while the session is being created, and unique once set.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON
import ulid

from ..core.enums import STRIPE_APP_SLUG, PaymentOption
from ..database import Base

if TYPE_CHECKING:
    from .booking import Booking


class Payment(Base):
    """Durable mapping from a booking to a provider-side transaction."""

    __tablename__ = "payments"

    __table_args__ = (
        sa.Index("ix_payments_booking_id", "booking_id"),
        sa.Index(
            "uq_payments_external_id_nonempty",
            "external_id",
            unique=True,
            sqlite_where=sa.text("external_id != ''"),
            postgresql_where=sa.text("external_id <> ''"),
        ),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(26), unique=True, nullable=False, default=lambda: str(ulid.ULID()))
    app_slug: Mapped[str] = mapped_column(String(50), nullable=False, default=STRIPE_APP_SLUG)
    booking_id: Mapped[int] = mapped_column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False, comment="Amount in minor units")
    fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    refunded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_option: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentOption.ON_BOOKING.value
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    @property
    def option(self) -> PaymentOption:
        return PaymentOption.parse(self.payment_option)

    @property
    def session_id(self) -> str | None:
        return (self.data or {}).get("sessionId") or self.external_id or None

    @property
    def stripe_account(self) -> str | None:
        return (self.data or {}).get("stripeAccount")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, external_id={self.external_id!r}, "
            f"success={self.success}, refunded={self.refunded})>"
        )
