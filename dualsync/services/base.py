"""
Service Layer Base Definitions

Shared exception hierarchy and retry helper for the replication services.

Error taxonomy:
- TargetUnavailableError: transient connectivity, retried only while a
  connection is being established, never per record
- RecordWriteError: per-record transform/write failure, tallied by callers
- UnresolvedReference: a required foreign reference is not yet in the target;
  the record is deferred, not failed
- FatalMigrationError: missing privileges or configuration; aborts the run
  for one schema only
"""

import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError

logger = structlog.get_logger(__name__)

T = TypeVar('T')


class SyncError(Exception):
    """
    Base exception class for all replication errors.

    Carries the originating exception and, where known, the entity type the
    failure belongs to so callers can key counters and samples by it.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None,
                 entity_type: Optional[str] = None):
        self.message = message
        self.original_error = original_error
        self.entity_type = entity_type
        super().__init__(self.message)


class ConfigurationError(SyncError):
    """Raised when required settings are missing or malformed."""
    pass


class UnresolvedReference(SyncError):
    """Raised by a transformer when a required foreign reference has no target row yet."""

    def __init__(self, entity_type: str, field: str, referenced_type: str,
                 referenced_id: Optional[str]):
        self.field = field
        self.referenced_type = referenced_type
        self.referenced_id = referenced_id
        super().__init__(
            f"{entity_type}.{field} references missing {referenced_type} {referenced_id!r}",
            entity_type=entity_type,
        )


class RecordWriteError(SyncError):
    """Raised when a single record cannot be written to the target store."""

    def __init__(self, message: str, original_error: Optional[Exception] = None,
                 entity_type: Optional[str] = None, source_id: Optional[str] = None):
        self.source_id = source_id
        super().__init__(message, original_error=original_error, entity_type=entity_type)


class TargetUnavailableError(SyncError):
    """Raised when the target store cannot be reached."""
    pass


class FatalMigrationError(SyncError):
    """Raised when a schema run cannot proceed at all."""

    def __init__(self, message: str, original_error: Optional[Exception] = None,
                 schema: Optional[str] = None):
        self.schema = schema
        super().__init__(message, original_error=original_error)


def retry_with_linear_backoff(max_attempts: int = 5, backoff: float = 3.0,
                              exceptions: Tuple[Type[BaseException], ...] = (OperationalError, DBAPIError),
                              sleep: Callable[[float], Any] = time.sleep):
    """
    Decorator retrying a connection-establishment call.

    The delay before attempt ``n + 1`` is ``n * backoff`` seconds. After the
    last attempt the final exception is wrapped in TargetUnavailableError.

    Args:
        max_attempts: Total number of attempts including the first
        backoff: Seconds added to the delay after each failed attempt
        exceptions: Exception types considered transient
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    logger.warning(
                        "connection_attempt_failed",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        error=str(e)[:80],
                    )
                    if attempt == max_attempts:
                        break
                    delay = attempt * backoff
                    logger.info("connection_retry_scheduled", delay_seconds=delay)
                    sleep(delay)

            raise TargetUnavailableError(
                f"{func.__name__} failed after {max_attempts} attempts",
                original_error=last_exception,
            )

        return wrapper

    return decorator
