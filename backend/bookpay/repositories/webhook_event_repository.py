"""Repository helpers for webhook event ledger."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import cast

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from ..models.webhook_event import WebhookEvent
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Statuses from which an event may be (re)claimed for processing.
_CLAIMABLE_STATUSES = ("received", "failed")


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> WebhookEvent | None:
        """Find webhook event by source and external event ID."""
        result = (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.source == source, WebhookEvent.event_id == event_id)
            .first()
        )
        return cast(WebhookEvent | None, result)

    def claim_for_processing(self, event_id: str, *, claimed_at: datetime, stale_before: datetime) -> bool:
        """
        Atomically move an event into ``processing``.

        A ``processing`` row whose claim started before ``stale_before`` (or
        carries no claim time) belongs to a delivery that died, and is taken
        over. False if a live delivery holds the event or it is finished.
        """
        abandoned = and_(
            WebhookEvent.status == "processing",
            or_(
                WebhookEvent.processing_started_at.is_(None),
                WebhookEvent.processing_started_at < stale_before,
            ),
        )
        statement = (
            update(WebhookEvent)
            .where(
                WebhookEvent.id == event_id,
                or_(WebhookEvent.status.in_(_CLAIMABLE_STATUSES), abandoned),
            )
            .values(
                status="processing",
                processing_started_at=claimed_at,
                processing_error=None,
                processed_at=None,
            )
        )
        claimed = self._execute_update(statement) == 1
        self._reload_cached(event_id)
        return claimed

    def list_events_for_related_entity(
        self,
        *,
        related_entity_id: str,
        related_entity_type: str | None = None,
    ) -> list[WebhookEvent]:
        """Return webhook events for a related entity, ordered oldest to newest."""
        query = self._build_query().filter(WebhookEvent.related_entity_id == related_entity_id)
        if related_entity_type:
            query = query.filter(WebhookEvent.related_entity_type == related_entity_type)
        query = query.order_by(WebhookEvent.received_at.asc())
        return self._execute_query(query)
