# backend/bookpay/services/base.py
"""
Base class for payment and booking services.

Every service gets a session, a class-named logger, a commit-or-rollback
``transaction()`` block and the ``measure_operation`` decorator, which
records per-operation timings in process (``get_metrics``).
Services never commit outside ``transaction()``; repositories only flush.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 1.0

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    # Operation timings per service class name, shared by all instances.
    _class_metrics: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back on any error.

        SQLAlchemy errors are re-raised as ``ServiceException`` so routes
        answer 500 without leaking driver messages. Anything else (domain
        exceptions, provider errors) propagates unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException("Database operation failed") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service method, record the timing per service class and warn
        when it is slow.

        Usage:
            @BaseService.measure_operation("create_payment")
            def create_payment(self, booking, event_type, credential):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start = time.monotonic()
                succeeded = False
                try:
                    result = func(self, *args, **kwargs)
                    succeeded = True
                    return result
                finally:
                    elapsed = time.monotonic() - start
                    self._record_metric(operation_name, elapsed, succeeded)
                    outcome = "ok" if succeeded else "error"
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(f"Slow operation: {operation_name} took {elapsed:.2f}s ({outcome})")
                    else:
                        self.logger.debug(f"{operation_name} finished in {elapsed * 1000:.1f}ms ({outcome})")

            return cast(F, wrapper)

        return decorator

    def _record_metric(self, operation: str, elapsed: float, succeeded: bool) -> None:
        per_operation = BaseService._class_metrics.setdefault(self.__class__.__name__, {})
        stats = per_operation.setdefault(
            operation,
            {"count": 0, "failures": 0, "total_time": 0.0, "max_time": 0.0},
        )
        stats["count"] += 1
        stats["total_time"] += elapsed
        stats["max_time"] = max(stats["max_time"], elapsed)
        if not succeeded:
            stats["failures"] += 1

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Timings recorded for this service class, keyed by operation name."""
        result: Dict[str, Dict[str, Any]] = {}
        for operation, stats in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            result[operation] = {
                **stats,
                "avg_time": stats["total_time"] / stats["count"],
            }
        return result

    @classmethod
    def reset_metrics(cls) -> None:
        BaseService._class_metrics.clear()

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a business event with structured context."""
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
