"""Tests for robustness features: errors, timeouts and retries."""

import asyncio
from unittest.mock import AsyncMock

import pytest

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
    generate_request_id,
    get_recovery_suggestion,
)
from utils.retry import RetryExhausted, is_transient, retry_async


class TestErrorClassification:
    """Tests for error classification utilities."""

    def test_classify_timeout_error(self):
        """Test classification of asyncio timeout errors."""
        error = classify_exception(asyncio.TimeoutError())
        assert error.category == ErrorCategory.TIMEOUT
        assert "timed out" in error.message.lower()

    def test_classify_store_timeout_error(self):
        exc = StoreTimeoutError("update_stay", 10.0)
        error = classify_exception(exc, stay_id="A")
        assert error.category == ErrorCategory.TIMEOUT
        assert error.stay_id == "A"
        assert "update_stay" in error.message

    def test_classify_stay_not_found(self):
        error = classify_exception(StayNotFoundError("A"))
        assert error.category == ErrorCategory.STAY_NOT_FOUND
        assert error.stay_id == "A"

    def test_classify_move_in_progress(self):
        error = classify_exception(MoveInProgressError("A"))
        assert error.category == ErrorCategory.MOVE_IN_PROGRESS
        assert error.stay_id == "A"

    def test_classify_mutation_rejected(self):
        """Rejections take precedence over the generic store error."""
        exc = MutationRejectedError("A", "overlaps stay B", 409)
        error = classify_exception(exc)
        assert error.category == ErrorCategory.MUTATION_REJECTED
        assert exc.status_code == 409
        assert "overlaps stay B" in error.message

    def test_classify_store_error(self):
        error = classify_exception(StoreError("HTTP error 500", status_code=500))
        assert error.category == ErrorCategory.STORE_ERROR

    def test_classify_fetch_error(self):
        exc = FetchError("calendar data", ConnectionError("refused"))
        error = classify_exception(exc)
        assert error.category == ErrorCategory.FETCH_FAILED
        assert "refused" in error.message

    def test_classify_channel_error(self):
        error = classify_exception(ChannelError())
        assert error.category == ErrorCategory.CHANNEL_ERROR
        assert error.message

    def test_classify_value_error(self):
        """Test classification of value errors as invalid input."""
        error = classify_exception(ValueError("Check-out must be after check-in"))
        assert error.category == ErrorCategory.INVALID_INPUT

    def test_classify_connection_error(self):
        error = classify_exception(ConnectionError("failed to connect"))
        assert error.category == ErrorCategory.STORE_ERROR

    def test_classify_unknown_error(self):
        """Test classification of unknown errors."""
        error = classify_exception(RuntimeError("something went wrong"))
        assert error.category == ErrorCategory.INTERNAL_ERROR

    def test_every_category_has_recovery(self):
        for category in ErrorCategory:
            assert get_recovery_suggestion(category)


class TestEngineError:
    """Tests for EngineError serialization."""

    def test_to_dict_minimal(self):
        error = EngineError(category=ErrorCategory.TIMEOUT, message="Operation timed out")
        result = error.to_dict()
        assert result == {"error": "Operation timed out", "error_category": "timeout"}

    def test_to_dict_full(self):
        error = EngineError(
            category=ErrorCategory.MUTATION_REJECTED,
            message="rejected",
            stay_id="A",
            request_id="abc123",
            recovery="Try another room",
            details={"room_id": "R102"},
        )
        result = error.to_dict()
        assert result["stay_id"] == "A"
        assert result["request_id"] == "abc123"
        assert result["recovery"] == "Try another room"
        assert result["details"]["room_id"] == "R102"


class TestRequestId:
    def test_generate_request_id_is_short_and_unique(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 8 for i in ids)


class TestExecuteWithTimeout:
    """Tests for execute_with_timeout utility."""

    @pytest.mark.asyncio
    async def test_successful_execution(self):
        async def fast_operation():
            return "success"

        result = await execute_with_timeout(fast_operation(), timeout=1.0, operation="test")
        assert result == "success"

    @pytest.mark.asyncio
    async def test_timeout_raises_store_timeout_error(self):
        async def slow_operation():
            await asyncio.sleep(10)

        with pytest.raises(StoreTimeoutError) as exc_info:
            await execute_with_timeout(slow_operation(), timeout=0.01, operation="fetch_stays")

        assert exc_info.value.operation == "fetch_stays"
        assert exc_info.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self):
        async def failing_operation():
            raise StoreError("boom")

        with pytest.raises(StoreError):
            await execute_with_timeout(failing_operation(), timeout=1.0)


class TestRetry:
    """Tests for retry utilities."""

    @pytest.mark.asyncio
    async def test_retry_success_first_try(self):
        mock_func = AsyncMock(return_value="success")

        result = await retry_async(mock_func, max_attempts=3, initial_delay=0.01)

        assert result == "success"
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_retry_success_after_failures(self):
        mock_func = AsyncMock(side_effect=[StoreError("a"), StoreError("b", 503), "success"])

        result = await retry_async(mock_func, max_attempts=3, initial_delay=0.01)

        assert result == "success"
        assert mock_func.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_exhausted(self, caplog):
        mock_func = AsyncMock(side_effect=StoreTimeoutError("fetch_stays", 10.0))

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_async(mock_func, max_attempts=3, initial_delay=0.01, operation="calendar fetch")

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, StoreTimeoutError)
        assert mock_func.call_count == 3
        assert "calendar fetch attempt 1/3 failed" in caplog.text

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        mock_func = AsyncMock(side_effect=StoreError("bad filter", 400))

        with pytest.raises(StoreError):
            await retry_async(mock_func, max_attempts=3, initial_delay=0.01)
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_programming_errors_propagate(self):
        mock_func = AsyncMock(side_effect=TypeError("not retryable"))

        with pytest.raises(TypeError):
            await retry_async(mock_func, max_attempts=3, initial_delay=0.01)
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        mock_func = AsyncMock(side_effect=[KeyError("x"), "ok"])

        result = await retry_async(
            mock_func,
            max_attempts=2,
            initial_delay=0.01,
            should_retry=lambda e: isinstance(e, KeyError),
        )
        assert result == "ok"

    @pytest.mark.asyncio
    async def test_passes_arguments(self):
        mock_func = AsyncMock(return_value=1)
        await retry_async(mock_func, "a", max_attempts=1, key="b")
        mock_func.assert_awaited_once_with("a", key="b")

    @pytest.mark.asyncio
    async def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            await retry_async(AsyncMock(), max_attempts=0)


class TestIsTransient:
    def test_classification(self):
        assert is_transient(StoreError("down"))
        assert is_transient(StoreError("unavailable", 503))
        assert is_transient(StoreTimeoutError("fetch_rooms", 1.0))
        assert is_transient(asyncio.TimeoutError())
        assert is_transient(ConnectionResetError())
        assert not is_transient(StoreError("not found", 404))
        assert not is_transient(MutationRejectedError("A", "conflict", 409))
        assert not is_transient(ValueError("bad"))
