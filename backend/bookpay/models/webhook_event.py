"""Ledger of inbound provider webhooks."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON
import ulid

from ..database import Base

_JSON = JSONB(astext_type=Text()).with_variant(JSON(), "sqlite")

LEDGER_STATUSES = ("received", "processing", "processed", "ignored", "failed")


class WebhookEvent(Base):
    """One row per (source, provider event id); redeliveries bump ``retry_count``."""

    __tablename__ = "webhook_events"

    __table_args__ = (
        sa.UniqueConstraint("source", "event_id", name="uq_webhook_events_source_event_id"),
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{status}'" for status in LEDGER_STATUSES) + ")",
            name="ck_webhook_events_status",
        ),
        sa.Index("ix_webhook_events_status", "status"),
        sa.Index("ix_webhook_events_related_entity", "related_entity_type", "related_entity_id"),
        sa.Index("ix_webhook_events_account", "account"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Connected account the event was sent for; None for platform events.
    account: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payload: Mapped[dict[str, Any]] = mapped_column(_JSON, nullable=False)
    headers: Mapped[dict[str, Any] | None] = mapped_column(_JSON, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="received")
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set on every claim; a claim older than the processing timeout may be taken over.
    processing_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.source}:{self.event_id} {self.event_type} status={self.status}>"
