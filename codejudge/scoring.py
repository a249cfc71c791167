"""Weighted scoring of execution, maintainability and security signals.

All functions here are pure. Inputs are clamped to ``[0, 100]`` before
they are weighted, so the total always lands in the same range no matter
what the sandbox or the analyzers reported.
"""

from .models import (
    CodeMetrics,
    CompleteAnalysis,
    ComplexityClass,
    CorrectionScores,
    EfficiencyScores,
    ExecutionAnalysis,
    MaintainabilityScores,
    SecurityAnalysis,
    SecurityScores,
)

WEIGHTS_VERSION = "2024.1"

CATEGORY_WEIGHTS = {
    "correction": 0.40,
    "efficiency": 0.25,
    "maintainability": 0.20,
    "security": 0.15,
}

CORRECTION_WEIGHTS = {"pass_rate": 0.6, "error_handling": 0.3, "error_free": 0.1}
EFFICIENCY_WEIGHTS = {"time": 0.4, "memory": 0.3, "complexity": 0.3}
MAINTAINABILITY_WEIGHTS = {
    "complexity": 0.35,
    "lines_of_code": 0.15,
    "nesting": 0.25,
    "cohesion": 0.25,
}


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, float(value)))


# =============================================================================
# Sub-scores
# =============================================================================

def time_score(avg_execution_time_ms: float) -> float:
    """100 for instant runs, minus 10 points per millisecond."""
    return clamp(100 - max(0.0, avg_execution_time_ms) * 10)


def memory_score(memory_usage_mb: float) -> float:
    return clamp(100 - max(0.0, memory_usage_mb) * 5)


def complexity_score(cyclomatic_complexity: int) -> float:
    return clamp(100 - (max(1, cyclomatic_complexity) - 1) * 10)


def nesting_score(nesting_depth: int) -> float:
    return clamp(100 - (max(1, nesting_depth) - 1) * 20)


def lines_of_code_score(lines_of_code: int) -> float:
    if lines_of_code < 10:
        return 100.0
    if lines_of_code < 20:
        return 90.0
    if lines_of_code < 50:
        return 80.0
    return 70.0


# =============================================================================
# Category scores
# =============================================================================

def scored_pass_rate(execution: ExecutionAnalysis) -> float:
    """Pass rate that counts toward correction.

    Zero test cases, or only the degenerate fallback case, say nothing about
    correctness and score 0.
    """
    if execution.total_tests == 0 or execution.reduced_confidence:
        return 0.0
    return clamp(execution.pass_rate)


def correction_score(execution: ExecutionAnalysis) -> float:
    w = CORRECTION_WEIGHTS
    return clamp(
        scored_pass_rate(execution) * w["pass_rate"]
        + clamp(execution.error_handling_score) * w["error_handling"]
        + (100 - clamp(execution.runtime_error_rate)) * w["error_free"]
    )


def efficiency_score(execution: ExecutionAnalysis) -> float:
    w = EFFICIENCY_WEIGHTS
    return clamp(
        time_score(execution.avg_execution_time_ms) * w["time"]
        + memory_score(execution.memory_usage_mb) * w["memory"]
        + ComplexityClass(execution.complexity_class).score * w["complexity"]
    )


def maintainability_score(metrics: CodeMetrics) -> float:
    w = MAINTAINABILITY_WEIGHTS
    return clamp(
        complexity_score(metrics.cyclomatic_complexity) * w["complexity"]
        + lines_of_code_score(metrics.lines_of_code) * w["lines_of_code"]
        + nesting_score(metrics.nesting_depth) * w["nesting"]
        + clamp(metrics.cohesion_score) * w["cohesion"]
    )


def total_score(
    correction: float, efficiency: float, maintainability: float, security: float
) -> float:
    w = CATEGORY_WEIGHTS
    return clamp(
        clamp(correction) * w["correction"]
        + clamp(efficiency) * w["efficiency"]
        + clamp(maintainability) * w["maintainability"]
        + clamp(security) * w["security"]
    )


class ScoringAggregator:
    """Combines the three analysis branches into a ``CompleteAnalysis``."""

    weights_version = WEIGHTS_VERSION

    def aggregate(
        self,
        execution: ExecutionAnalysis,
        metrics: CodeMetrics,
        security: SecurityAnalysis,
        code_id: str | int | None = None,
    ) -> CompleteAnalysis:
        correction = round(correction_score(execution), 2)
        efficiency = round(efficiency_score(execution), 2)
        maintainability = round(maintainability_score(metrics), 2)
        security_total = round(clamp(security.security_score), 2)

        return CompleteAnalysis(
            code_id=code_id,
            correction=CorrectionScores(
                pass_rate=scored_pass_rate(execution),
                error_handling_score=clamp(execution.error_handling_score),
                runtime_error_rate=clamp(execution.runtime_error_rate),
                category_score=correction,
            ),
            efficiency=EfficiencyScores(
                avg_execution_time=max(0.0, execution.avg_execution_time_ms),
                memory_usage=max(0.0, execution.memory_usage_mb),
                algorithmic_complexity=execution.complexity_class,
                category_score=efficiency,
            ),
            maintainability=MaintainabilityScores(
                cyclomatic_complexity=metrics.cyclomatic_complexity,
                lines_of_code=metrics.lines_of_code,
                nesting_depth=metrics.nesting_depth,
                cohesion_score=clamp(metrics.cohesion_score),
                category_score=maintainability,
            ),
            security=SecurityScores(
                xss_vulnerabilities=security.xss_vulnerabilities,
                injection_vulnerabilities=security.injection_vulnerabilities,
                hardcoded_secrets=security.hardcoded_secrets,
                unsafe_operations=security.unsafe_operations,
                category_score=security_total,
            ),
            total_score=round(
                total_score(correction, efficiency, maintainability, security_total), 2
            ),
            weights_version=self.weights_version,
            reduced_confidence=execution.reduced_confidence,
            execution_skipped=execution.execution_skipped,
            skip_reason=execution.skip_reason,
        )
