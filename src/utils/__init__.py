"""Utility modules for the calendar engine."""

from utils.errors import (
    ChannelError,
    EngineError,
    ErrorCategory,
    FetchError,
    MoveInProgressError,
    MutationRejectedError,
    StayNotFoundError,
    StoreError,
    StoreTimeoutError,
    classify_exception,
    execute_with_timeout,
)
from utils.retry import RetryExhausted, is_transient, retry_async

__all__ = [
    "ChannelError",
    "EngineError",
    "ErrorCategory",
    "FetchError",
    "MoveInProgressError",
    "MutationRejectedError",
    "RetryExhausted",
    "StayNotFoundError",
    "StoreError",
    "StoreTimeoutError",
    "classify_exception",
    "execute_with_timeout",
    "is_transient",
    "retry_async",
]
