"""
Inbound webhook ledger.

Every verified Stripe event is recorded before its handler runs. The ledger
row is both an audit trail and the idempotency guard: a redelivery of an
event that already reached a terminal status is answered as a duplicate,
and a failed event can be claimed again by the next delivery.

    received   -> processing -> processed | ignored | failed
    failed     -> processing   (redelivery)
    processing -> processing   (redelivery after the claim timed out)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import time
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..models.webhook_event import WebhookEvent
from ..repositories.factory import RepositoryFactory
from .base import BaseService

# Never persisted in clear text.
_REDACTED_HEADERS = frozenset({"authorization", "cookie", "stripe-signature", "x-admin-token"})

COMPLETED_STATUSES = frozenset({"processed", "ignored"})


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
    return {key: "***" if key.lower() in _REDACTED_HEADERS else value for key, value in headers.items()}


class WebhookLedgerService(BaseService):
    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.repository = RepositoryFactory.create_webhook_event_repository(db)

    @BaseService.measure_operation("webhook_ledger.log_received")
    def log_received(
        self,
        *,
        source: str,
        event_type: str,
        payload: dict[str, Any],
        headers: dict[str, Any] | None = None,
        event_id: str | None = None,
        account: str | None = None,
    ) -> WebhookEvent:
        """
        Record a delivery. A known ``event_id`` counts as a redelivery of the
        existing row instead of a new entry.
        """
        safe_headers = redact_headers(headers) if headers else None
        if event_id:
            existing = self.repository.find_by_source_and_event_id(source, event_id)
            if existing is not None:
                return self._count_redelivery(existing, safe_headers)

        try:
            return self.repository.create(
                source=source,
                event_type=event_type or "unknown",
                event_id=event_id,
                account=account,
                payload=payload,
                headers=safe_headers,
                status="received",
                received_at=_now_utc(),
                retry_count=0,
            )
        except RepositoryException as exc:
            # A concurrent delivery of the same event inserted first.
            if not (event_id and isinstance(exc.__cause__, IntegrityError)):
                raise
            existing = self.repository.find_by_source_and_event_id(source, event_id)
            if existing is None:
                raise
            return self._count_redelivery(existing, safe_headers)

    def _count_redelivery(self, event: WebhookEvent, safe_headers: dict[str, Any] | None) -> WebhookEvent:
        event.retry_count = (event.retry_count or 0) + 1
        event.last_retry_at = _now_utc()
        if safe_headers is not None:
            event.headers = safe_headers
        self.repository.flush()
        self.logger.info(f"Redelivery #{event.retry_count} of {event.source} event {event.event_id} ({event.status})")
        return event

    def mark_processing(self, event: WebhookEvent) -> bool:
        """
        Claim the event for this delivery.

        False when it is finished or another delivery claimed it less than
        ``webhook_processing_timeout_seconds`` ago. Older claims are taken over
        so a worker that died mid-event does not swallow it.
        """
        now = _now_utc()
        stale_before = now - timedelta(seconds=settings.webhook_processing_timeout_seconds)
        return self.repository.claim_for_processing(event.id, claimed_at=now, stale_before=stale_before)

    def mark_processed(
        self,
        event: WebhookEvent,
        *,
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
        duration_ms: int | None = None,
        status: str = "processed",
    ) -> WebhookEvent:
        if status not in COMPLETED_STATUSES:
            raise ValueError(f"{status!r} is not a completed ledger status")
        return self._finish(
            event,
            status=status,
            duration_ms=duration_ms,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )

    def mark_failed(self, event: WebhookEvent, *, error: str, duration_ms: int | None = None) -> WebhookEvent:
        return self._finish(event, status="failed", duration_ms=duration_ms, processing_error=error)

    def _finish(self, event: WebhookEvent, *, status: str, duration_ms: int | None, **fields: Any) -> WebhookEvent:
        event.status = status
        event.processed_at = _now_utc()
        event.processing_duration_ms = duration_ms
        for name, value in fields.items():
            setattr(event, name, value)
        self.repository.flush()
        return event

    def list_events_for_payment(self, payment_id: int) -> list[WebhookEvent]:
        return self.repository.list_events_for_related_entity(
            related_entity_id=str(payment_id), related_entity_type="payment"
        )

    @staticmethod
    def elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
