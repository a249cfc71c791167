"""Tests for decoding sandbox output."""

import pytest
from fakes import frame, harness_output, passing_result

from codejudge.constants import SANDBOX_OUTPUT_SCAN_LIMIT
from codejudge.core.exceptions import SandboxOutputUnparseable
from codejudge.models import ComplexityClass, TestCase
from codejudge.sandbox.result_decoder import (
    ResultDecoder,
    demultiplex,
    error_handling_score,
    estimate_complexity,
    extract_result_payload,
    skipped_analysis,
)


@pytest.fixture
def decoder():
    return ResultDecoder()


@pytest.fixture
def cases():
    return [
        TestCase(input=[2, 3], expected_output=5),
        TestCase(input=[0, 0], expected_output=0),
    ]


class TestDemultiplex:
    """Tests for stripping Docker log framing."""

    def test_plain_text_passes_through(self):
        assert demultiplex(b"hello\n") == "hello\n"

    def test_frames_are_merged_in_order(self):
        raw = frame(b"warn: x\n", stream=2) + frame(b'{"success": true}\n', stream=1)
        assert demultiplex(raw) == 'warn: x\n{"success": true}\n'

    def test_truncated_frame_keeps_available_bytes(self):
        raw = frame(b"complete\n") + b"\x01\x00\x00\x00\x00\x00\x00\x20partial"
        assert demultiplex(raw).startswith("complete\npartial")

    def test_str_input(self):
        assert demultiplex("already text") == "already text"


class TestExtractPayload:
    """Tests for locating the summary object."""

    def test_skips_noise_and_other_objects(self):
        text = 'loading {broken\n{"level": "info"}\n{"success": true, "passRate": 100}\n'
        assert extract_result_payload(text) == {"success": True, "passRate": 100}

    def test_first_matching_object_wins(self):
        text = '{"success": false}\n{"success": true}'
        assert extract_result_payload(text) == {"success": False}

    def test_deeply_nested_line_is_skipped(self):
        nested = '{"a": ' + "[" * 500_000
        text = nested + '\n{"success": true}'
        assert extract_result_payload(text) == {"success": True}

    def test_deeply_nested_last_line(self):
        assert extract_result_payload('{"a": ' + "[" * 500_000) is None

    def test_only_output_tail_is_searched(self):
        text = '{"success": true}\n' + "x" * SANDBOX_OUTPUT_SCAN_LIMIT
        assert extract_result_payload(text) is None

    def test_none_when_missing(self):
        assert extract_result_payload("no json here") is None


class TestHeuristics:
    """Tests for complexity and error handling heuristics."""

    def test_complexity_classes(self):
        assert estimate_complexity([0.1]) == ComplexityClass.CONSTANT
        assert estimate_complexity([0.1, 0.12, 0.11]) == ComplexityClass.CONSTANT
        assert estimate_complexity([0.1, 1.0, 1.5]) == ComplexityClass.LINEAR
        assert estimate_complexity([0.1, 5.0, 20.0]) == ComplexityClass.QUADRATIC_OR_WORSE

    def test_error_handling_score(self):
        assert error_handling_score("return a + b;") == 50.0
        code = (
            "if (a === null) throw new TypeError('a');\n"
            "try { run(); } catch (e) { log(e); }"
        )
        assert error_handling_score(code) == 100.0


class TestResultDecoder:
    """Tests for turning payloads into analyses."""

    def test_successful_run(self, decoder, cases):
        raw = frame(harness_output([
            passing_result([2, 3], 5),
            passing_result([0, 0], 0),
        ]))
        analysis = decoder.decode(raw, cases, "function sum(a,b){return a+b;}")
        assert analysis.pass_rate == 100.0
        assert analysis.runtime_error_rate == 0.0
        assert analysis.total_tests == 2
        assert analysis.passed_tests == 2
        assert analysis.memory_usage_mb == 4.2
        assert analysis.failure_reason is None
        assert not analysis.execution_skipped
        assert analysis.test_results[0].actual_output == 5

    def test_failed_test_with_error(self, decoder, cases):
        thrown = {
            "passed": False, "input": [0, 0], "expectedOutput": 0,
            "actualOutput": None, "executionTime": 0.2, "error": "boom",
        }
        raw = harness_output([passing_result([2, 3], 5), thrown])
        analysis = decoder.decode(raw, cases)
        assert analysis.pass_rate == 50.0
        assert analysis.runtime_error_rate == 50.0
        assert analysis.test_results[1].error == "boom"

    def test_partial_results_are_padded(self, decoder, cases):
        """A fatal harness error keeps what ran and pads the rest."""
        raw = harness_output(
            [passing_result([2, 3], 5)],
            success=False, errorKind="harness_failed", error="out of memory",
        )
        analysis = decoder.decode(raw, cases)
        assert analysis.failure_reason == "harness_failed: out of memory"
        assert len(analysis.test_results) == len(cases)
        assert analysis.passed_tests == 1
        assert analysis.test_results[1].error == "harness_failed: out of memory"
        assert not analysis.execution_skipped

    def test_module_load_failure(self, decoder, cases):
        raw = harness_output(
            [], success=False, errorKind="module_load_failed",
            error="Cannot find package 'left-pad-unknown'",
        )
        analysis = decoder.decode(raw, cases)
        assert analysis.failure_reason.startswith("module_load_failed:")
        assert analysis.pass_rate == 0.0
        assert analysis.runtime_error_rate == 100.0

    def test_malformed_result_entries(self, decoder, cases):
        raw = harness_output([{"passed": "maybe", "executionTime": "slow"}])
        analysis = decoder.decode(raw, cases)
        assert len(analysis.test_results) == 2
        assert analysis.test_results[0].error == "malformed test result"

    def test_unparseable_output_raises(self, decoder, cases):
        with pytest.raises(SandboxOutputUnparseable):
            decoder.decode(b"Segmentation fault\n", cases)

    def test_deeply_nested_output_raises(self, decoder, cases):
        raw = ('{"a":' * 100_000).encode("utf-8")
        with pytest.raises(SandboxOutputUnparseable):
            decoder.decode(raw, cases)

    def test_deeply_nested_noise_before_summary(self, decoder, cases):
        noise = ('{"a": ' + "[" * 500_000 + "\n").encode("utf-8")
        raw = noise + harness_output([passing_result([2, 3], 5), passing_result([0, 0], 0)])
        analysis = decoder.decode(raw, cases)
        assert analysis.pass_rate == 100.0

    def test_empty_output_raises(self, decoder, cases):
        with pytest.raises(SandboxOutputUnparseable, match="no output"):
            decoder.decode(b"", cases)


class TestSkippedAnalysis:
    """Tests for the skipped run shape."""

    def test_one_result_per_case(self, cases):
        analysis = skipped_analysis("sandbox_timeout: too slow", cases)
        assert analysis.execution_skipped
        assert analysis.skip_reason == "sandbox_timeout: too slow"
        assert analysis.pass_rate == 0.0
        assert analysis.runtime_error_rate == 100.0
        assert len(analysis.test_results) == len(cases)
        assert all(not r.passed for r in analysis.test_results)
        assert not analysis.executed_in_sandbox
