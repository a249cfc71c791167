"""Pydantic models shared by the analyzers, the sandbox and the scorer.

Models that cross a JSON boundary (harness output, language model output,
persisted analyses) accept and emit camelCase aliases, so
``model_dump(by_alias=True)`` yields the wire shape while Python code uses
snake_case names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


# ---------------------------------------------------------------------------
# Code shape
# ---------------------------------------------------------------------------


class CodeShape(str, Enum):
    """Structural form of a snippet, decided once by the shape analyzer."""

    FUNCTION_DECLARATION = "function_declaration"
    ARROW_ASSIGNMENT = "arrow_assignment"
    BARE_STATEMENTS = "bare_statements"


class ModuleFormat(str, Enum):
    """How the normalized module exposes its entry point."""

    ESM = "esm"
    COMMONJS = "commonjs"

    @property
    def filename(self) -> str:
        return "code.mjs" if self is ModuleFormat.ESM else "code.cjs"


class DependencySet(_FrozenCamelModel):
    """Ordered, de-duplicated capability tags detected in a snippet.

    Tags name capabilities (``fetch``, ``filesystem``, ``child-process``)
    or imported package names (``axios``, ``lodash``).
    """

    tags: tuple[str, ...] = ()

    def __contains__(self, tag: object) -> bool:
        return tag in self.tags

    def __len__(self) -> int:
        return len(self.tags)

    @property
    def is_empty(self) -> bool:
        return not self.tags


class CodeUnit(_FrozenCamelModel):
    """A snippet after shape analysis.

    Attributes:
        raw_code: The snippet exactly as submitted.
        shape: Detected structural form.
        entry_name: Name of the callable the harness invokes.
        normalized_code: Module source with a single exported entry point.
        module_format: ESM or CommonJS export form of ``normalized_code``.
        dependencies: Capability tags found in ``raw_code``.
        is_self_contained: ``False`` when any dependency tag was found.
        degraded_reason: Set when the generic wrapper fallback was used.
    """

    raw_code: str
    shape: CodeShape
    entry_name: str
    normalized_code: str
    module_format: ModuleFormat = ModuleFormat.ESM
    dependencies: DependencySet = Field(default_factory=DependencySet)
    is_self_contained: bool = True
    degraded_reason: str | None = None


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestCase(_CamelModel):
    """One positional-argument invocation and its expected result."""

    __test__ = False

    input: list[Any] = Field(default_factory=list)
    expected_output: Any = None
    description: str = "Test case"


class ExecutionResult(_CamelModel):
    """Outcome of a single test case inside the sandbox."""

    passed: bool = False
    input: list[Any] = Field(default_factory=list)
    expected_output: Any = None
    actual_output: Any = None
    execution_time_ms: float = Field(default=0.0, alias="executionTime")
    error: str | None = None


class ComplexityClass(int, Enum):
    """Coarse algorithmic complexity estimated from timing variance."""

    CONSTANT = 1
    LINEAR = 2
    QUADRATIC_OR_WORSE = 3

    @property
    def score(self) -> int:
        return {1: 100, 2: 80, 3: 60}[self.value]


class ExecutionAnalysis(_FrozenCamelModel):
    """Decoded result of one sandbox run (or of a skipped run).

    Attributes:
        pass_rate: Percentage of test cases that passed (0-100).
        error_handling_score: Static heuristic score of the code (0-100).
        runtime_error_rate: Percentage of test cases that threw (0-100).
        avg_execution_time_ms: Mean per-test execution time.
        memory_usage_mb: Heap used at the end of the run.
        complexity_class: Estimated algorithmic complexity.
        test_results: One entry per test case, in order.
        execution_skipped: ``True`` when the sandbox did not produce a result.
        skip_reason: Kind-prefixed reason when skipped.
        failure_reason: Set when the run reported ``success=false``.
        reduced_confidence: Set when the test cases are a degenerate fallback.
    """

    pass_rate: float = 0.0
    error_handling_score: float = 0.0
    runtime_error_rate: float = 100.0
    avg_execution_time_ms: float = 0.0
    memory_usage_mb: float = 0.0
    complexity_class: ComplexityClass = ComplexityClass.CONSTANT
    test_results: list[ExecutionResult] = Field(default_factory=list)
    total_tests: int = 0
    passed_tests: int = 0
    execution_skipped: bool = False
    skip_reason: str | None = None
    failure_reason: str | None = None
    reduced_confidence: bool = False
    executed_in_sandbox: bool = True


# ---------------------------------------------------------------------------
# Static analysis
# ---------------------------------------------------------------------------


class VulnerabilityType(str, Enum):
    XSS = "xss"
    INJECTION = "injection"
    SECRETS = "secrets"
    UNSAFE = "unsafe"


class Severity(str, Enum):
    """Severity levels for security findings."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Fixed mapping from finding type to severity
SEVERITY_BY_TYPE: dict[VulnerabilityType, Severity] = {
    VulnerabilityType.INJECTION: Severity.CRITICAL,
    VulnerabilityType.XSS: Severity.HIGH,
    VulnerabilityType.SECRETS: Severity.HIGH,
    VulnerabilityType.UNSAFE: Severity.MEDIUM,
}


class SecurityFinding(_CamelModel):
    """A single security finding from the linter or the pattern pass.

    Attributes:
        type: Vulnerability category.
        severity: Derived from ``type``.
        line_number: 1-based line, when known.
        message: Human-readable description.
        pattern_matched: Source text or regex that triggered the finding.
        rule_id: Identifier of the lint rule or pattern.
        source: ``"linter"`` or ``"pattern"``.
    """

    type: VulnerabilityType
    severity: Severity
    line_number: int | None = None
    message: str = ""
    pattern_matched: str | None = None
    rule_id: str = ""
    source: Literal["linter", "pattern"] = "pattern"


class SecurityAnalysis(_CamelModel):
    xss_vulnerabilities: int = 0
    injection_vulnerabilities: int = 0
    hardcoded_secrets: int = 0
    unsafe_operations: int = 0
    issues: list[SecurityFinding] = Field(default_factory=list)
    security_score: float = 100.0
    linter_ran: bool = True


class CodeMetrics(_CamelModel):
    """Static maintainability metrics for a snippet."""

    cyclomatic_complexity: int = 1
    lines_of_code: int = 0
    nesting_depth: int = 1
    cohesion_score: float = 100.0
    number_of_functions: int = 1
    maintainability_index: float = 100.0
    used_fallback: bool = False


# ---------------------------------------------------------------------------
# Aggregated analysis
# ---------------------------------------------------------------------------


class CorrectionScores(_CamelModel):
    pass_rate: float
    error_handling_score: float
    runtime_error_rate: float
    category_score: float


class EfficiencyScores(_CamelModel):
    avg_execution_time: float
    memory_usage: float
    algorithmic_complexity: ComplexityClass
    category_score: float


class MaintainabilityScores(_CamelModel):
    cyclomatic_complexity: int
    lines_of_code: int
    nesting_depth: int
    cohesion_score: float
    category_score: float


class SecurityScores(_CamelModel):
    xss_vulnerabilities: int
    injection_vulnerabilities: int
    hardcoded_secrets: int
    unsafe_operations: int
    category_score: float


class CompleteAnalysis(_CamelModel):
    """Final weighted analysis of one snippet."""

    code_id: str | int | None = None
    correction: CorrectionScores
    efficiency: EfficiencyScores
    maintainability: MaintainabilityScores
    security: SecurityScores
    total_score: float
    weights_version: str
    reduced_confidence: bool = False
    execution_skipped: bool = False
    skip_reason: str | None = None
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AnalysisReport(BaseModel):
    """Everything handed to the persistence collaborator for one analysis."""

    analysis: CompleteAnalysis
    test_results: list[ExecutionResult] = Field(default_factory=list)
    findings: list[SecurityFinding] = Field(default_factory=list)
    code_unit: CodeUnit
