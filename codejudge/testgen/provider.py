"""Test case providers.

A provider turns a snippet into a list of test cases. The language model
provider retries through a ``RetryPolicy`` and raises
``TestGenerationFailed`` once attempts run out; deciding what to do then
(the single degenerate case) belongs to the analysis engine.
"""

import logging
import time
from abc import ABC, abstractmethod

from ..clients.llm_client import CompletionClient
from ..core.exceptions import TestGenerationFailed
from ..core.retry import RetryPolicy
from ..logging_config import get_analysis_logger
from ..models import TestCase
from .parsing import parse_test_cases
from .prompts import build_test_case_prompt

logger = logging.getLogger(__name__)

DEGENERATE_DESCRIPTION = "Execution check (no generated test cases available) - fallback"


def degenerate_test_case() -> TestCase:
    """The single no-argument case used when generation fails."""
    return TestCase(input=[], expected_output=None, description=DEGENERATE_DESCRIPTION)


class TestCaseProvider(ABC):
    """Source of test cases for a snippet."""

    __test__ = False

    @abstractmethod
    async def generate(self, code: str, count: int) -> list[TestCase]:
        """Return up to *count* test cases for *code*.

        Raises:
            TestGenerationFailed: If no usable test case can be produced.
        """


class StaticTestCaseProvider(TestCaseProvider):
    """Returns a fixed list of cases regardless of the code."""

    def __init__(self, cases: list[TestCase] | None = None):
        self.cases = list(cases or [])

    async def generate(self, code: str, count: int) -> list[TestCase]:
        return list(self.cases[:count])


class LLMTestCaseProvider(TestCaseProvider):
    """Asks a language model for test cases, with bounded retries."""

    def __init__(self, client: CompletionClient, retry_policy: RetryPolicy | None = None):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.events = get_analysis_logger()

    async def generate(self, code: str, count: int) -> list[TestCase]:
        prompt = build_test_case_prompt(code, count)
        started = time.monotonic()

        async def attempt(number: int) -> list[TestCase]:
            completion = await self.client.complete(prompt)
            cases = parse_test_cases(completion)
            self._log_attempt(number, "succeeded", started)
            return cases[:count]

        def on_failure(number: int, error: BaseException) -> None:
            logger.warning(
                f"Test generation attempt {number}/{self.retry_policy.max_attempts} "
                f"via {self.client.name} failed: {error}"
            )
            self._log_attempt(number, "retrying", started, error)

        try:
            return await self.retry_policy.execute(attempt, on_failure=on_failure)
        except Exception as e:
            self._log_attempt(self.retry_policy.max_attempts, "failed", started, e)
            raise TestGenerationFailed(
                f"no test cases after {self.retry_policy.max_attempts} attempts: {e}",
                attempts=self.retry_policy.max_attempts,
                last_error=e,
            ) from e

    def _log_attempt(
        self,
        number: int,
        status: str,
        started: float,
        error: BaseException | None = None,
    ) -> None:
        extra = {
            "event": "test_generation",
            "phase": self.client.name,
            "status": status,
            "attempt": number,
            "max_attempts": self.retry_policy.max_attempts,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
        }
        if error is not None:
            extra["error"] = error
        self.events.info(f"Test generation {status} (attempt {number})", extra=extra)
