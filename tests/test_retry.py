"""Tests for the bounded retry policy."""

from unittest.mock import AsyncMock

import pytest

from codejudge.core.exceptions import CompletionError
from codejudge.core.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy.execute."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        sleep = AsyncMock()
        policy = RetryPolicy(sleep=sleep)
        operation = AsyncMock(return_value="ok")

        assert await policy.execute(operation) == "ok"
        operation.assert_awaited_once_with(1)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_attempts=3, backoff_seconds=2.0, sleep=sleep)
        operation = AsyncMock(side_effect=[CompletionError("a"), CompletionError("b"), "ok"])

        assert await policy.execute(operation) == "ok"
        assert [c.args[0] for c in operation.await_args_list] == [1, 2, 3]
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error_without_final_sleep(self):
        sleep = AsyncMock()
        failures = []
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        operation = AsyncMock(
            side_effect=[CompletionError("1"), CompletionError("2"), CompletionError("3")]
        )

        with pytest.raises(CompletionError, match="3"):
            await policy.execute(operation, on_failure=lambda n, e: failures.append(n))

        assert operation.await_count == 3
        assert sleep.await_count == 2
        assert failures == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self):
        sleep = AsyncMock()
        policy = RetryPolicy(sleep=sleep, retry_on=(CompletionError,))
        operation = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await policy.execute(operation)
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    def test_backoff_is_fixed(self):
        policy = RetryPolicy(backoff_seconds=1.5)
        assert policy.backoff(1) == policy.backoff(2) == 1.5

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
