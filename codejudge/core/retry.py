"""Retry policy with fixed backoff for test case generation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..constants import GENERATION_BACKOFF_SECONDS, GENERATION_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Bounded retry helper for async operations.

    Attempts are counted from 1. The policy sleeps between attempts, never
    after the last one, and re-raises the final exception once
    ``max_attempts`` is exhausted. ``sleep`` is injectable so tests do not
    wait for real.
    """

    max_attempts: int
    backoff_seconds: float
    sleep: Callable[[float], Awaitable[None]]

    def __init__(
        self,
        max_attempts: int = GENERATION_MAX_ATTEMPTS,
        backoff_seconds: float = GENERATION_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep or asyncio.sleep
        self.retry_on = retry_on

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after a failed *attempt* (fixed delay)."""
        return self.backoff_seconds

    async def execute(
        self,
        operation: Callable[[int], Awaitable[T]],
        on_failure: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Run *operation* until it succeeds or attempts run out.

        Args:
            operation: Coroutine factory receiving the 1-based attempt number.
            on_failure: Optional callback invoked after each failed attempt.

        Returns:
            The first successful result.

        Raises:
            The exception raised by the final attempt.
        """
        attempt = 1
        while True:
            try:
                return await operation(attempt)
            except self.retry_on as exc:
                if on_failure is not None:
                    on_failure(attempt, exc)
                if attempt >= self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.debug(
                    f"Attempt {attempt}/{self.max_attempts} failed ({exc}); "
                    f"retrying in {delay}s"
                )
                attempt += 1
                await self.sleep(delay)
