# backend/courseledger/services/base.py
"""
Base Service Pattern for the course ledger.

Provides common functionality for all service classes including:
- Transaction management with domain error translation
- Logging
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, TypeVar, cast

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import (
    ConflictRetryableException,
    DomainException,
    RepositoryException,
    StorageFailureException,
)
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, db: Session):
        """
        Initialize base service.

        Args:
            db: Database session
        """
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Commits on success and rolls back on any error. Domain errors pass
        through untouched; a uniqueness conflict or optimistic version mismatch becomes
        ConflictRetryableException and any other SQLAlchemy or repository
        failure becomes StorageFailureException.

        Usage:
            with self.transaction():
                booking.mark_cancelled(...)
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except DomainException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.logger.info(f"Uniqueness conflict: {str(e.orig)}")
            self.db.rollback()
            raise ConflictRetryableException(details={"reason": "integrity_conflict"}) from e
        except StaleDataError as e:
            self.logger.info(f"Concurrent modification detected: {str(e)}")
            self.db.rollback()
            raise ConflictRetryableException(details={"reason": "stale_version"}) from e
        except (SQLAlchemyError, RepositoryException) as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise StorageFailureException(
                "Storage temporarily unavailable",
                code="STORAGE_FAILURE",
                details={"error_type": type(e).__name__},
            ) from e
        except Exception as e:
            self.logger.error(f"Unexpected error in transaction: {str(e)}")
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("booking.cancel")
            def cancel_booking(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time
                    self._record_metric(operation_name, elapsed, success)

                    # Only log if it's actually slow
                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="success" if success else "error",
                            error_type=error_type,
                        )
                    except Exception as metrics_error:
                        # Don't let metrics collection break the operation
                        self.logger.debug(f"Metrics recording failed: {metrics_error}")

            setattr(wrapper, "_operation_name", operation_name)
            setattr(wrapper, "_is_measured", True)
            return cast(F, wrapper)

        return decorator

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})

        if operation not in metrics:
            metrics[operation] = {
                "count": 0,
                "total_time": 0.0,
                "success_count": 0,
                "failure_count": 0,
                "min_time": float("inf"),
                "max_time": 0.0,
            }

        metric_data = metrics[operation]
        metric_data["count"] += 1
        metric_data["total_time"] += elapsed
        metric_data["min_time"] = min(metric_data["min_time"], elapsed)
        metric_data["max_time"] = max(metric_data["max_time"], elapsed)

        if success:
            metric_data["success_count"] += 1
        else:
            metric_data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get performance metrics for this service.

        Returns:
            Dictionary with metrics for each measured operation
        """
        class_name = self.__class__.__name__
        result: Dict[str, Any] = {}

        for operation, data in BaseService._class_metrics.get(class_name, {}).items():
            count = int(data["count"])
            if count == 0:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "min_time": data["min_time"],
                "max_time": data["max_time"],
                "success_rate": data["success_count"] / count,
                "success_count": int(data["success_count"]),
                "failure_count": int(data["failure_count"]),
            }

        return result

    def reset_metrics(self) -> None:
        """Reset all metrics for this service."""
        BaseService._class_metrics.pop(self.__class__.__name__, None)
