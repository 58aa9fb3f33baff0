"""Retrying store reads that fail for transient reasons."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from utils.errors import MutationRejectedError, StoreError

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when every attempt failed with a transient error."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def is_transient(e: Exception) -> bool:
    """Whether a store failure may succeed if the call is repeated.

    Timeouts, connection failures and 5xx answers are transient. A rejected
    mutation or any other 4xx answer will fail the same way again.
    """
    if isinstance(e, MutationRejectedError):
        return False
    if isinstance(e, StoreError):
        return e.status_code is None or e.status_code >= 500
    return isinstance(e, (asyncio.TimeoutError, ConnectionError, OSError))


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    should_retry: Callable[[Exception], bool] = is_transient,
    operation: str | None = None,
    **kwargs: Any,
) -> Any:
    """Call ``func`` until it succeeds, doubling the delay after each failure.

    Exceptions that ``should_retry`` rejects propagate from the first attempt.

    Raises:
        RetryExhausted: If all ``max_attempts`` attempts fail transiently
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    label = operation or getattr(func, "__name__", "call")
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not should_retry(e):
                raise
            if attempt == max_attempts:
                raise RetryExhausted(attempt, e) from e

            logger.warning(
                f"{label} attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)
