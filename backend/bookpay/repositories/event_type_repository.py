"""Event type lookups."""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..models.event_type import EventType
from .base_repository import BaseRepository


class EventTypeRepository(BaseRepository[EventType]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, EventType)

    def get_with_owner(self, event_type_id: int) -> Optional[EventType]:
        query = (
            self._build_query()
            .options(joinedload(EventType.owner), joinedload(EventType.team))
            .filter(EventType.id == event_type_id)
        )
        results = self._execute_query(query.limit(1))
        return results[0] if results else None
