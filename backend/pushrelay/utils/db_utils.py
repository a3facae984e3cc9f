"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

from .backoff import ExponentialBackoff

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSIENT_ERROR_MARKERS = (
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
    "database is locked",
)

DEFAULT_BACKOFF = ExponentialBackoff(base_delay=0.1, max_delay=2.0, max_attempts=3)


def is_transient_db_error(error: Exception) -> bool:
    """Whether a driver error looks like a connection blip worth retrying."""
    if not isinstance(error, (OperationalError, InterfaceError)):
        return False
    error_str = str(error).lower()
    return any(msg in error_str for msg in TRANSIENT_ERROR_MARKERS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    backoff: Optional[ExponentialBackoff] = None,
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Handles PostgreSQL transient connection errors under load and SQLite
    lock contention.

    Args:
        coro_func: Async function to call (should be a callable that returns a coroutine)
        backoff: Retry schedule, DEFAULT_BACKOFF if not given

    Returns:
        The result of the coroutine function

    Raises:
        OperationalError: If all retries fail or error is not transient
    """
    backoff = backoff or DEFAULT_BACKOFF
    for attempt in range(backoff.max_attempts):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient_db_error(e) or attempt == backoff.max_attempts - 1:
                raise
            delay = backoff.delay(attempt)
            logger.warning(
                f"Database transient error, retrying in {delay}s "
                f"(attempt {attempt + 1}/{backoff.max_attempts})"
            )
            await asyncio.sleep(delay)
