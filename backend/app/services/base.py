# backend/app/services/base.py
"""
Base Service Pattern for the reservation engine.

Provides common functionality for all service classes including:
- Transaction management
- Clock injection
- Operation timing, exported to Prometheus and kept per class in memory

Conflicts (``ConflictException`` and subclasses) are expected outcomes of
booking, so measured operations report them as ``rejected`` rather than
``error``.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.exceptions import ConflictException, PersistenceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


@dataclass
class OperationStats:
    """Running timing totals for one measured operation."""

    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0

    def record(self, elapsed: float, success: bool) -> None:
        self.count += 1
        self.total_time += elapsed
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1

    def summary(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "avg_time": self.total_time / self.count,
            "min_time": self.min_time,
            "max_time": self.max_time,
            "total_time": self.total_time,
            "success_rate": self.success_count / self.count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }


def _outcome(error: Optional[BaseException]) -> str:
    if error is None:
        return "success"
    if isinstance(error, ConflictException):
        return "rejected"
    return "error"


class BaseService:
    """
    Base class for the reservation services.

    Subclasses get ``self.db``, ``self.clock`` and a class-named logger.
    """

    # class name -> operation name -> stats
    _class_metrics: Dict[str, Dict[str, OperationStats]] = {}

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock: Clock = clock or system_clock
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on success, roll back on any error.

        Store errors surface as PersistenceException; everything else
        propagates unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(
                "transaction_failed", extra={"error": str(e), "error_type": type(e).__name__}
            )
            self.db.rollback()
            raise PersistenceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator timing a service method.

        Usage:
            @BaseService.measure_operation("create_reservation")
            def create(self, tenant_id, request):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                started = time.perf_counter()
                error: Optional[BaseException] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error = e
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    self._record_metric(operation_name, elapsed, error is None)

                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            "slow_operation",
                            extra={"operation": operation_name, "elapsed_seconds": elapsed},
                        )

                    outcome = _outcome(error)
                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status=outcome,
                            error_type=type(error).__name__ if outcome == "error" else None,
                        )
                    except Exception:
                        # Metrics must never break the operation
                        logger.debug("metrics_record_failed", exc_info=True)

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            wrapper._is_measured = True  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Structured info log for a completed operation."""
        self.logger.info(operation, extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        per_class = BaseService._class_metrics.setdefault(self.__class__.__name__, {})
        per_class.setdefault(operation, OperationStats()).record(elapsed, success)

    def get_metrics(self) -> Dict[str, Any]:
        """Timing summary for every measured operation of this service class."""
        per_class = BaseService._class_metrics.get(self.__class__.__name__, {})
        return {op: stats.summary() for op, stats in per_class.items() if stats.count}

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
