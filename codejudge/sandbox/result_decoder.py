"""Decoding of raw sandbox output into ``ExecutionAnalysis`` objects.

The container engine may hand back either plain text or Docker's
multiplexed log stream, where every chunk is prefixed with an 8-byte
header ``[stream, 0, 0, 0, size (big-endian uint32)]``. The decoder
strips those headers, looks for the harness summary line and turns it
into an analysis that always carries one result per test case.
"""

from __future__ import annotations

import json
import logging
import re
import statistics
import struct
from typing import Any

from pydantic import ValidationError

from ..constants import (
    COMPLEXITY_CONSTANT_VARIANCE,
    COMPLEXITY_LINEAR_VARIANCE,
    SANDBOX_OUTPUT_SCAN_LIMIT,
)
from ..core.exceptions import SandboxOutputUnparseable
from ..models import ComplexityClass, ExecutionAnalysis, ExecutionResult, TestCase

logger = logging.getLogger(__name__)

_FRAME_HEADER = struct.Struct(">BxxxL")
_STREAM_TYPES = (0, 1, 2)

RESULT_KEY = "success"

# Static error-handling heuristic
_TRY_CATCH = re.compile(r"try\s*{[\s\S]*catch")
_INPUT_VALIDATION = re.compile(r"if\s*\(.*(?:null|undefined|!|===|!==)")
_THROWS_ERROR = re.compile(r"throw\s+new\s+\w*Error")


def demultiplex(raw: bytes | str) -> str:
    """Strip Docker stream frame headers and merge the streams in order.

    Input that does not start with a valid frame header is returned as is.
    A truncated final frame keeps whatever bytes it has.
    """
    if isinstance(raw, str):
        return raw
    if not _looks_framed(raw):
        return raw.decode("utf-8", errors="replace")

    chunks: list[bytes] = []
    offset = 0
    while offset < len(raw):
        if len(raw) - offset < _FRAME_HEADER.size or not _looks_framed(raw[offset:]):
            chunks.append(raw[offset:])
            break
        _stream, size = _FRAME_HEADER.unpack_from(raw, offset)
        start = offset + _FRAME_HEADER.size
        chunks.append(raw[start:start + size])
        offset = start + size

    return b"".join(chunks).decode("utf-8", errors="replace")


def _looks_framed(data: bytes) -> bool:
    return (
        len(data) >= _FRAME_HEADER.size
        and data[0] in _STREAM_TYPES
        and data[1:4] == b"\x00\x00\x00"
    )


def extract_result_payload(text: str, key: str = RESULT_KEY) -> dict[str, Any] | None:
    """First balanced JSON object in *text* that contains *key*.

    Logs and other noise around the payload are ignored. Only the last
    ``SANDBOX_OUTPUT_SCAN_LIMIT`` characters are searched, and a line
    nested too deeply to decode is skipped as a whole.
    """
    if len(text) > SANDBOX_OUTPUT_SCAN_LIMIT:
        text = text[-SANDBOX_OUTPUT_SCAN_LIMIT:]

    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            value, _end = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            value = None
        except RecursionError:
            line_end = text.find("\n", index)
            if line_end == -1:
                return None
            index = text.find("{", line_end)
            continue
        if isinstance(value, dict) and key in value:
            return value
        index = text.find("{", index + 1)
    return None


def estimate_complexity(execution_times: list[float]) -> ComplexityClass:
    """Coarse complexity class from the variance of per-test times.

    This is a heuristic: it only says how much run time moved across the
    test inputs.
    """
    if len(execution_times) < 2:
        return ComplexityClass.CONSTANT
    variance = statistics.pvariance(execution_times)
    if variance < COMPLEXITY_CONSTANT_VARIANCE:
        return ComplexityClass.CONSTANT
    if variance < COMPLEXITY_LINEAR_VARIANCE:
        return ComplexityClass.LINEAR
    return ComplexityClass.QUADRATIC_OR_WORSE


def error_handling_score(code: str) -> float:
    """Static score for how defensively *code* handles errors."""
    score = 50
    if _TRY_CATCH.search(code):
        score += 25
    if _INPUT_VALIDATION.search(code):
        score += 15
    if _THROWS_ERROR.search(code):
        score += 10
    return float(min(score, 100))


def pad_results(
    results: list[ExecutionResult],
    test_cases: list[TestCase],
    reason: str,
) -> list[ExecutionResult]:
    """One result per test case; cases without a result failed with *reason*."""
    padded = list(results[: len(test_cases)])
    for test_case in test_cases[len(padded):]:
        padded.append(
            ExecutionResult(
                passed=False,
                input=test_case.input,
                expected_output=test_case.expected_output,
                actual_output=None,
                execution_time_ms=0.0,
                error=reason,
            )
        )
    return padded


def skipped_analysis(
    reason: str,
    test_cases: list[TestCase],
    code: str = "",
    reduced_confidence: bool = False,
) -> ExecutionAnalysis:
    """Analysis for a run that produced no usable result."""
    return ExecutionAnalysis(
        pass_rate=0.0,
        error_handling_score=error_handling_score(code),
        runtime_error_rate=100.0,
        avg_execution_time_ms=0.0,
        memory_usage_mb=0.0,
        complexity_class=ComplexityClass.CONSTANT,
        test_results=pad_results([], test_cases, f"not executed: {reason}"),
        total_tests=len(test_cases),
        passed_tests=0,
        execution_skipped=True,
        skip_reason=reason,
        reduced_confidence=reduced_confidence,
        executed_in_sandbox=False,
    )


class ResultDecoder:
    """Turns raw container output into an ``ExecutionAnalysis``."""

    def decode(
        self,
        raw: bytes | str,
        test_cases: list[TestCase],
        code: str = "",
        reduced_confidence: bool = False,
    ) -> ExecutionAnalysis:
        """Decode harness output.

        Raises:
            SandboxOutputUnparseable: If no result payload can be found.
        """
        text = demultiplex(raw)
        payload = extract_result_payload(text)
        if payload is None:
            raise SandboxOutputUnparseable(_tail(text))
        return self.from_payload(payload, test_cases, code, reduced_confidence)

    def from_payload(
        self,
        payload: dict[str, Any],
        test_cases: list[TestCase],
        code: str = "",
        reduced_confidence: bool = False,
    ) -> ExecutionAnalysis:
        reported = self._parse_results(payload.get("testResults"))
        failure_reason: str | None = None
        if not payload.get("success"):
            kind = payload.get("errorKind") or "run_failed"
            failure_reason = f"{kind}: {payload.get('error') or 'unknown error'}"
        results = pad_results(reported, test_cases, failure_reason or "no result reported")

        total = len(test_cases)
        passed = sum(1 for r in results if r.passed)
        errored = sum(1 for r in results if r.error is not None)
        times = [r.execution_time_ms for r in reported[:total]]

        return ExecutionAnalysis(
            pass_rate=_percent(passed, total, empty=0.0),
            error_handling_score=error_handling_score(code),
            runtime_error_rate=_percent(errored, total, empty=100.0),
            avg_execution_time_ms=_number(payload.get("avgExecutionTime")),
            memory_usage_mb=_number(payload.get("memoryUsage")),
            complexity_class=estimate_complexity(times),
            test_results=results,
            total_tests=total,
            passed_tests=passed,
            failure_reason=failure_reason,
            reduced_confidence=reduced_confidence,
        )

    @staticmethod
    def _parse_results(raw_results: Any) -> list[ExecutionResult]:
        results: list[ExecutionResult] = []
        if not isinstance(raw_results, list):
            return results
        for item in raw_results:
            try:
                results.append(ExecutionResult.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Dropping malformed test result: {e}")
                results.append(ExecutionResult(passed=False, error="malformed test result"))
        return results


def _percent(count: int, total: int, empty: float) -> float:
    if total <= 0:
        return empty
    return count / total * 100


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, float(value))


def _tail(text: str, limit: int = 200) -> str:
    text = text.strip()
    if not text:
        return "container produced no output"
    return f"no result payload in output: ...{text[-limit:]}"
