"""Error handling utilities for the calendar engine.

Provides structured error types so that failures surfaced to presentation
layers carry a category and an actionable recovery suggestion.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of errors for appropriate handling."""

    TIMEOUT = "timeout"
    STAY_NOT_FOUND = "stay_not_found"
    MOVE_IN_PROGRESS = "move_in_progress"
    MUTATION_REJECTED = "mutation_rejected"
    INVALID_INPUT = "invalid_input"
    STORE_ERROR = "store_error"
    FETCH_FAILED = "fetch_failed"
    CHANNEL_ERROR = "channel_error"
    INTERNAL_ERROR = "internal_error"


@dataclass
class EngineError:
    """Structured error returned to callers of engine operations."""

    category: ErrorCategory
    message: str
    stay_id: str | None = None
    request_id: str | None = None
    recovery: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to response dict."""
        result: dict[str, Any] = {
            "error": self.message,
            "error_category": self.category.value,
        }
        if self.request_id:
            result["request_id"] = self.request_id
        if self.stay_id:
            result["stay_id"] = self.stay_id
        if self.recovery:
            result["recovery"] = self.recovery
        if self.details:
            result["details"] = self.details
        return result


RECOVERY_SUGGESTIONS = {
    ErrorCategory.TIMEOUT: "The reservation service did not answer in time. Try again.",
    ErrorCategory.STAY_NOT_FOUND: "The reservation is no longer in view. Refresh the calendar.",
    ErrorCategory.MOVE_IN_PROGRESS: "Wait for the previous change to this reservation to finish.",
    ErrorCategory.MUTATION_REJECTED: "The change was refused, usually because of a conflicting stay. The reservation was restored.",
    ErrorCategory.INVALID_INPUT: "Check the dates and room and try again.",
    ErrorCategory.STORE_ERROR: "The reservation service returned an error. Try again in a moment.",
    ErrorCategory.FETCH_FAILED: "Calendar data could not be loaded. Showing the last known data.",
    ErrorCategory.CHANNEL_ERROR: "Live updates are unavailable. Reconnect to resume them.",
    ErrorCategory.INTERNAL_ERROR: "An unexpected error occurred. Please try again.",
}


def get_recovery_suggestion(category: ErrorCategory) -> str:
    """Get recovery suggestion for an error category."""
    return RECOVERY_SUGGESTIONS.get(category, "Please try again.")


class StayNotFoundError(Exception):
    """Raised when a stay id is not in the cache or the store."""

    def __init__(self, stay_id: str):
        self.stay_id = stay_id
        super().__init__(f"Stay {stay_id} not found")


class MoveInProgressError(Exception):
    """Raised when a stay already has a pending move."""

    def __init__(self, stay_id: str):
        self.stay_id = stay_id
        super().__init__(f"Stay {stay_id} already has a change in flight")


class StoreError(Exception):
    """General stay record store error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MutationRejectedError(StoreError):
    """Raised when the store refuses a mutation (e.g. conflicting stay)."""

    def __init__(self, stay_id: str, reason: str, status_code: int | None = None):
        self.stay_id = stay_id
        self.reason = reason
        super().__init__(f"Update of stay {stay_id} rejected: {reason}", status_code)


class StoreTimeoutError(StoreError):
    """Raised when a store call times out."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Store {operation} timed out after {timeout}s")


class FetchError(Exception):
    """Raised when baseline calendar data cannot be fetched."""

    def __init__(self, what: str, cause: Exception | None = None):
        self.what = what
        self.cause = cause
        msg = f"Failed to fetch {what}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg)


class ChannelError(Exception):
    """Raised by a change channel subscription when the channel fails."""

    pass


def generate_request_id() -> str:
    """Generate a short unique request ID for tracing."""
    return str(uuid.uuid4())[:8]


def classify_exception(e: Exception, stay_id: str | None = None) -> EngineError:
    """Classify an exception into a structured error.

    Args:
        e: The exception to classify
        stay_id: Optional stay ID for context

    Returns:
        EngineError with appropriate category and recovery suggestion
    """
    if isinstance(e, StoreTimeoutError):
        category = ErrorCategory.TIMEOUT
        message = str(e)
    elif isinstance(e, asyncio.TimeoutError):
        category = ErrorCategory.TIMEOUT
        message = "Operation timed out"
    elif isinstance(e, StayNotFoundError):
        category = ErrorCategory.STAY_NOT_FOUND
        message = str(e)
        stay_id = e.stay_id
    elif isinstance(e, MoveInProgressError):
        category = ErrorCategory.MOVE_IN_PROGRESS
        message = str(e)
        stay_id = e.stay_id
    elif isinstance(e, MutationRejectedError):
        category = ErrorCategory.MUTATION_REJECTED
        message = str(e)
        stay_id = e.stay_id
    elif isinstance(e, StoreError):
        category = ErrorCategory.STORE_ERROR
        message = str(e)
    elif isinstance(e, FetchError):
        category = ErrorCategory.FETCH_FAILED
        message = str(e)
    elif isinstance(e, ChannelError):
        category = ErrorCategory.CHANNEL_ERROR
        message = str(e) or "Change channel failed"
    elif isinstance(e, ValueError):
        category = ErrorCategory.INVALID_INPUT
        message = str(e)
    elif isinstance(e, ConnectionError):
        category = ErrorCategory.STORE_ERROR
        message = f"Connection error: {e}"
    else:
        category = ErrorCategory.INTERNAL_ERROR
        message = f"Unexpected error: {e}"

    return EngineError(
        category=category,
        message=message,
        stay_id=stay_id,
        recovery=get_recovery_suggestion(category),
    )


DEFAULT_STORE_TIMEOUT = 10.0


async def execute_with_timeout(
    coro: Any,
    timeout: float = DEFAULT_STORE_TIMEOUT,
    operation: str = "operation",
) -> Any:
    """Execute a store coroutine with a timeout.

    Raises:
        StoreTimeoutError: If the operation times out
    """
    try:
        async with asyncio.timeout(timeout):
            return await coro
    except asyncio.TimeoutError:
        raise StoreTimeoutError(operation, timeout)
