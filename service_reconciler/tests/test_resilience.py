"""
Unit tests for the retry decorator and circuit breaker used by the clients.
"""

import pytest
from unittest.mock import AsyncMock

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.retry import RetryConfig, RetryError, retry_on_exception

NO_DELAY = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


class TestRetry:

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        func = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])
        func.__name__ = "fetch"

        result = await retry_on_exception((ConnectionError,), config=NO_DELAY)(func)()

        assert result == "ok"
        assert func.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted(self):
        func = AsyncMock(side_effect=ConnectionError("reset"))
        func.__name__ = "fetch"

        with pytest.raises(RetryError) as exc_info:
            await retry_on_exception((ConnectionError,), config=NO_DELAY)(func)()

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_other_exceptions_not_retried(self):
        func = AsyncMock(side_effect=ValueError("bad payload"))
        func.__name__ = "fetch"

        with pytest.raises(ValueError):
            await retry_on_exception((ConnectionError,), config=NO_DELAY)(func)()

        assert func.call_count == 1


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, name="ledger")
        failing = AsyncMock(side_effect=ConnectionError("refused"))

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(AsyncMock(return_value="ok"))
        assert failing.call_count == 2

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0, name="ledger")

        with pytest.raises(ConnectionError):
            await breaker.call(AsyncMock(side_effect=ConnectionError("refused")))

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert not breaker.is_open()
