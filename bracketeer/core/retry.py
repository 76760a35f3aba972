"""
Retry-with-exponential-backoff for calls against the match store.

Every attempt is bounded by a timeout. Only transient failures (timeouts,
dropped connections, operational database errors) are retried; constraint
violations and programming errors fail on the first attempt.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc

from bracketeer.core.config import settings
from bracketeer.core.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    sa_exc.OperationalError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, sa_exc.IntegrityError):
        return False
    if isinstance(error, RETRYABLE_ERRORS):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return False


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number ``attempt + 1``: base, 2*base, 4*base, ..."""
    return base_delay * (2 ** attempt)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    timeout: Optional[float] = None,
    description: str = "store operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Runs ``operation`` (a zero-argument coroutine factory) until it succeeds.

    Raises PersistenceError with the last underlying error attached when the
    error is not retryable or when every attempt has failed.
    """
    attempts = attempts if attempts is not None else settings.PERSISTENCE_RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.PERSISTENCE_RETRY_BASE_DELAY
    timeout = timeout if timeout is not None else settings.PERSISTENCE_TIMEOUT
    attempts = max(1, attempts)

    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except Exception as e:
            last_error = e
            if not is_retryable(e):
                raise PersistenceError(f"{description} failed: {e}", last_error=e, retryable=False) from e
            if attempt < attempts - 1:
                delay = backoff_delay(attempt, base_delay)
                logger.warning(
                    "Retrying %s (attempt %d/%d) after %.2fs: %r",
                    description, attempt + 2, attempts, delay, e,
                )
                await sleep(delay)

    raise PersistenceError(
        f"{description} failed after {attempts} attempts: {last_error}",
        last_error=last_error,
        retryable=True,
    ) from last_error
