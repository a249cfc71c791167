"""Analysis engine: the inbound ``analyze`` entry point.

One analysis runs the shape analyzer, then three branches concurrently:
test generation followed by sandbox execution, the metrics analyzer and
the security analyzer. The scoring aggregator waits for all three. The
only outbound side effect is the report handed to an ``AnalysisSink``.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable

from .clients.llm_client import create_completion_client
from .constants import DEFAULT_MAX_CONCURRENT_SANDBOXES, DEFAULT_TEST_CASE_COUNT
from .core.exceptions import CodeNotFoundError, TestGenerationFailed
from .core.retry import RetryPolicy
from .core.settings import EngineSettings
from .logging_config import configure_analysis_logging, get_analysis_logger
from .models import (
    AnalysisReport,
    CodeUnit,
    CompleteAnalysis,
    ExecutionAnalysis,
    SecurityAnalysis,
    TestCase,
)
from .sandbox.docker_engine import DockerContainerEngine
from .sandbox.orchestrator import SandboxOrchestrator
from .scanners.metrics_analyzer import MetricsAnalyzer
from .scanners.security_analyzer import SecurityAnalyzer
from .scanners.shape_analyzer import ShapeAnalyzer
from .scoring import ScoringAggregator
from .testgen.provider import LLMTestCaseProvider, TestCaseProvider, degenerate_test_case

logger = logging.getLogger(__name__)


class CodeRepository(ABC):
    """Looks up stored snippets by identifier."""

    @abstractmethod
    async def get_code(self, code_id: str | int) -> str | None:
        """Return the snippet stored under *code_id*, or ``None``."""


class AnalysisSink(ABC):
    """Receives every finished analysis (persistence is the caller's)."""

    @abstractmethod
    async def publish(self, report: AnalysisReport) -> None:
        ...


class AnalysisEngine:
    """Analyzes untrusted JavaScript snippets.

    Args:
        orchestrator: Runs code units in sandbox containers.
        test_provider: Source of test cases when the caller supplies none.
            Without one every analysis uses the degenerate fallback case.
        repository: Resolves ``code_id`` values to source text.
        sink: Receives one ``AnalysisReport`` per analysis.
        test_case_count: Number of cases requested from the provider.
        max_concurrent_sandboxes: Upper bound on concurrent sandbox runs.
    """

    def __init__(
        self,
        orchestrator: SandboxOrchestrator,
        test_provider: TestCaseProvider | None = None,
        repository: CodeRepository | None = None,
        sink: AnalysisSink | None = None,
        shape_analyzer: ShapeAnalyzer | None = None,
        metrics_analyzer: MetricsAnalyzer | None = None,
        security_analyzer: SecurityAnalyzer | None = None,
        scorer: ScoringAggregator | None = None,
        test_case_count: int = DEFAULT_TEST_CASE_COUNT,
        max_concurrent_sandboxes: int = DEFAULT_MAX_CONCURRENT_SANDBOXES,
    ):
        self.orchestrator = orchestrator
        self.test_provider = test_provider
        self.repository = repository
        self.sink = sink
        self.shape_analyzer = shape_analyzer or ShapeAnalyzer()
        self.metrics_analyzer = metrics_analyzer or MetricsAnalyzer()
        self.security_analyzer = security_analyzer or SecurityAnalyzer()
        self.scorer = scorer or ScoringAggregator()
        self.test_case_count = test_case_count
        self._sandbox_slots = asyncio.Semaphore(max_concurrent_sandboxes)
        self.events = get_analysis_logger()

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        repository: CodeRepository | None = None,
        sink: AnalysisSink | None = None,
    ) -> "AnalysisEngine":
        """Default stack: Docker sandbox plus the configured test provider."""
        settings = settings or EngineSettings.from_env()
        if settings.log_file:
            configure_analysis_logging(
                settings.log_file, settings.log_level, enable_console=False
            )

        orchestrator = SandboxOrchestrator(
            DockerContainerEngine(base_url=settings.docker_base_url),
            base_image=settings.sandbox_base_image,
        )

        provider: TestCaseProvider | None = None
        client = create_completion_client(settings)
        if client is not None:
            provider = LLMTestCaseProvider(
                client,
                RetryPolicy(
                    max_attempts=settings.generation_max_attempts,
                    backoff_seconds=settings.generation_backoff_seconds,
                ),
            )

        return cls(
            orchestrator,
            test_provider=provider,
            repository=repository,
            sink=sink,
            test_case_count=settings.test_case_count,
            max_concurrent_sandboxes=settings.max_concurrent_sandboxes,
        )

    async def analyze(
        self,
        code: str | None = None,
        *,
        code_id: str | int | None = None,
        test_cases: list[TestCase] | None = None,
    ) -> CompleteAnalysis:
        """Run a full analysis of one snippet.

        Either *code* or *code_id* must be given. Sandbox and generation
        failures never propagate; they show up as ``execution_skipped`` or
        ``reduced_confidence`` on the result.

        Raises:
            CodeNotFoundError: If *code_id* does not resolve to a snippet.
            ValueError: If neither *code* nor *code_id* is given.
        """
        started = time.monotonic()
        raw_code = await self._resolve_code(code, code_id)
        code_unit = self.shape_analyzer.analyze(raw_code)
        if code_unit.degraded_reason:
            logger.info(f"Snippet {code_id or ''} wrapped: {code_unit.degraded_reason}")

        execution, metrics, security = await asyncio.gather(
            self._execute(code_unit, test_cases),
            asyncio.to_thread(self.metrics_analyzer.analyze, raw_code),
            asyncio.to_thread(self.security_analyzer.analyze, raw_code),
        )
        analysis = self.scorer.aggregate(execution, metrics, security, code_id=code_id)

        if self.sink is not None:
            await self.sink.publish(
                self._report(analysis, execution, security, code_unit)
            )

        self.events.info(
            f"Analysis completed with score {analysis.total_score}",
            extra={
                "event": "analysis_completed",
                "code_id": code_id,
                "status": "skipped" if analysis.execution_skipped else "executed",
                "total_score": analysis.total_score,
                "reduced_confidence": analysis.reduced_confidence,
                "skip_reason": analysis.skip_reason,
                "test_count": execution.total_tests,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return analysis

    async def analyze_many(self, codes: Iterable[str]) -> list[CompleteAnalysis]:
        """Analyze independent snippets in parallel, results in input order.

        Sandbox runs are still bounded by ``max_concurrent_sandboxes``.
        """
        return list(await asyncio.gather(*(self.analyze(code) for code in codes)))

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def _resolve_code(self, code: str | None, code_id: str | int | None) -> str:
        if code is not None:
            return code
        if code_id is None:
            raise ValueError("analyze() needs either code or code_id")
        if self.repository is None:
            raise CodeNotFoundError(f"no code repository configured to resolve {code_id!r}")
        stored = await self.repository.get_code(code_id)
        if stored is None:
            raise CodeNotFoundError(f"no code stored under {code_id!r}")
        return stored

    async def _execute(
        self, code_unit: CodeUnit, test_cases: list[TestCase] | None
    ) -> ExecutionAnalysis:
        cases, reduced_confidence = await self._test_cases(code_unit, test_cases)
        async with self._sandbox_slots:
            return await self.orchestrator.execute(code_unit, cases, reduced_confidence)

    async def _test_cases(
        self, code_unit: CodeUnit, supplied: list[TestCase] | None
    ) -> tuple[list[TestCase], bool]:
        """Caller cases, else generated cases, else one degenerate case."""
        if supplied:
            return list(supplied), False
        if self.test_provider is None:
            logger.info("No test case provider configured, using fallback case")
            return [degenerate_test_case()], True

        try:
            generated = await self.test_provider.generate(
                code_unit.raw_code, self.test_case_count
            )
        except TestGenerationFailed as e:
            logger.warning(f"Falling back to a single test case: {e.describe()}")
            return [degenerate_test_case()], True

        if not generated:
            logger.warning("Test case provider returned no cases, using fallback case")
            return [degenerate_test_case()], True
        return generated, False

    @staticmethod
    def _report(
        analysis: CompleteAnalysis,
        execution: ExecutionAnalysis,
        security: SecurityAnalysis,
        code_unit: CodeUnit,
    ) -> AnalysisReport:
        return AnalysisReport(
            analysis=analysis,
            test_results=execution.test_results,
            findings=security.issues,
            code_unit=code_unit,
        )
