# backend/bookpay/repositories/base_repository.py
"""
Base repository.

Repositories flush but never commit; services own the transaction. Plain
CRUD goes through the ORM. State changes that two callers can race on
(webhook vs. browser return) go through ``_execute_update``, a bulk
statement whose row count says whether this caller won.
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: Any) -> Optional[T]:
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to load {self.model.__name__}") from e

    def create(self, **kwargs) -> T:
        """Add and flush a new row so its id is available. Does not commit."""
        entity = self.model(**kwargs)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.warning(f"Integrity error creating {self.model.__name__}: {e.orig}")
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated for {self.model.__name__}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}") from e
        return entity

    def update(self, id: Any, **kwargs) -> Optional[T]:
        """Set the given attributes on an existing row. None when the row is missing."""
        entity = self.get_by_id(id)
        if entity is None:
            return None
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.flush()
        return entity

    def delete(self, id: Any) -> bool:
        entity = self.get_by_id(id)
        if entity is None:
            return False
        self.db.delete(entity)
        self.flush()
        return True

    def flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error flushing {self.model.__name__} changes: {str(e)}")
            raise RepositoryException(f"Failed to save {self.model.__name__}") from e

    def find_by(self, **kwargs) -> List[T]:
        return self._execute_query(self._build_query().filter_by(**kwargs))

    def find_one_by(self, **kwargs) -> Optional[T]:
        results = self._execute_query(self._build_query().filter_by(**kwargs).limit(1))
        return results[0] if results else None

    # Helpers for subclasses

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error querying {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Query on {self.model.__name__} failed") from e

    def _execute_update(self, statement: Any) -> int:
        """
        Run a bulk UPDATE/DELETE and return the matched row count.

        Pending ORM changes are flushed first so the WHERE clause sees them.
        The session is not synchronized; use ``_reload_cached`` for instances
        the caller holds.
        """
        try:
            self.db.flush()
            result = self.db.execute(statement.execution_options(synchronize_session=False))
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error executing conditional write on {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Conditional write on {self.model.__name__} failed") from e

    def _reload_cached(self, id: Any) -> Optional[T]:
        """Refresh the session's copy of a row after a bulk write, if it holds one."""
        instance = self.db.identity_map.get(self.db.identity_key(self.model, id))
        if instance is not None:
            self.db.refresh(instance)
        return instance
