"""Tests for the sandbox orchestrator, driven by a fake container engine."""

import asyncio
import re

import pytest
from fakes import FakeContainerEngine, harness_output, passing_result

from codejudge.constants import SANDBOX_LABEL, SANDBOX_MEMORY_LIMIT_MB, SANDBOX_NETWORK_MODE
from codejudge.models import TestCase
from codejudge.sandbox.orchestrator import SandboxOrchestrator, new_execution_id
from codejudge.scanners.shape_analyzer import ShapeAnalyzer


@pytest.fixture(scope="module")
def sum_unit():
    return ShapeAnalyzer().analyze("function sum(a,b){return a+b;}")


@pytest.fixture
def sum_cases():
    return [TestCase(input=[2, 3], expected_output=5, description="adds")]


def _assert_cleaned_up(engine: FakeContainerEngine):
    """No container, image or workspace survives the run."""
    assert engine.containers == {}
    assert engine.images == {}
    for context_dir in engine.context_dirs:
        assert not context_dir.exists()


class TestExecutionIds:
    """Tests for execution id generation."""

    def test_format(self):
        assert re.fullmatch(r"exec-\d+-[0-9a-f]{8}", new_execution_id())

    def test_unique(self):
        assert len({new_execution_id() for _ in range(200)}) == 200


class TestSuccessfulRuns:
    """Tests for runs that produce a result."""

    @pytest.mark.asyncio
    async def test_passing_run(self, sum_unit, sum_cases):
        """A passing harness summary becomes a full analysis."""
        engine = FakeContainerEngine(logs=harness_output([passing_result([2, 3], 5)]))
        orchestrator = SandboxOrchestrator(engine, id_factory=lambda: "exec-1-abcdef01")

        analysis = await orchestrator.execute(sum_unit, sum_cases)

        assert analysis.pass_rate == 100.0
        assert analysis.total_tests == 1
        assert analysis.passed_tests == 1
        assert not analysis.execution_skipped
        assert engine.call_names == [
            "build_image", "create_container", "start_container",
            "wait_container", "container_logs", "remove_container", "remove_image",
        ]
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_resources_named_after_execution_id(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=harness_output([passing_result([2, 3], 5)]))
        orchestrator = SandboxOrchestrator(engine, id_factory=lambda: "exec-1-abcdef01")

        await orchestrator.execute(sum_unit, sum_cases)

        spec = engine.specs[0]
        assert spec.image == "codejudge-sandbox:exec-1-abcdef01"
        assert spec.name == "codejudge-exec-exec-1-abcdef01"
        assert spec.labels == {SANDBOX_LABEL: "exec-1-abcdef01"}
        assert spec.limits.memory_mb == SANDBOX_MEMORY_LIMIT_MB
        assert spec.limits.network_mode == SANDBOX_NETWORK_MODE
        assert "exec-1-abcdef01" in engine.context_dirs[0].name

    @pytest.mark.asyncio
    async def test_build_context_contents(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=harness_output([passing_result([2, 3], 5)]))
        await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)
        assert engine.built_files["code.mjs"] == sum_unit.normalized_code
        assert "harness.mjs" in engine.built_files

    @pytest.mark.asyncio
    async def test_module_load_failure_is_a_failure_reason(self, sum_cases):
        """An unknown package fails inside the sandbox, not in the orchestrator."""
        unit = ShapeAnalyzer().analyze(
            "import leftPad from 'left-pad-unknown';\n"
            "export default function pad(s) { return leftPad(s, 5); }"
        )
        engine = FakeContainerEngine(
            logs=harness_output(
                [], success=False, errorKind="module_load_failed",
                error="Cannot find package 'left-pad-unknown'",
            ),
            exit_code=1,
        )
        analysis = await SandboxOrchestrator(engine).execute(unit, sum_cases)

        assert not analysis.execution_skipped
        assert analysis.failure_reason.startswith("module_load_failed:")
        assert "npm install" not in engine.built_files["Dockerfile"]
        assert engine.specs[0].limits.network_mode == "none"
        _assert_cleaned_up(engine)


class TestSkippedRuns:
    """Tests for failures normalized to execution_skipped."""

    @pytest.mark.asyncio
    async def test_timeout_exit_status(self, sum_unit, sum_cases):
        """The in-container timeout kills node with status 124 and no output."""
        engine = FakeContainerEngine(logs=b"", exit_code=124)
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.execution_skipped
        assert analysis.skip_reason == (
            "sandbox_timeout: execution exceeded 30s (exit status 124)"
        )
        assert analysis.runtime_error_rate == 100.0
        assert len(analysis.test_results) == 1
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_memory_limit_kill(self, sum_unit, sum_cases):
        """Status 137 with the OOM flag set is a memory failure, not a timeout."""
        engine = FakeContainerEngine(logs=b"", exit_code=137, oom_killed=True)
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason == (
            "sandbox_memory_exceeded: container exceeded 512 MiB (exit status 137)"
        )
        assert "oom_killed" in engine.call_names
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_sigkill_without_oom_is_a_timeout(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=b"", exit_code=137)
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason == (
            "sandbox_timeout: execution exceeded 30s (exit status 137)"
        )

    @pytest.mark.asyncio
    async def test_oom_inspect_failure_falls_back_to_timeout(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=b"", exit_code=137, fail_on={"oom_killed"})
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_timeout:")
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_deeply_nested_log_line_before_summary(self, sum_unit, sum_cases):
        """A log line too deep to decode does not hide the summary after it."""
        noise = ('{"a": ' + "[" * 500_000 + "\n").encode("utf-8")
        engine = FakeContainerEngine(logs=noise + harness_output([passing_result([2, 3], 5)]))
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert not analysis.execution_skipped
        assert analysis.pass_rate == 100.0
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_deeply_nested_output_only(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=('{"a": ' + "[" * 500_000).encode("utf-8"))
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_output_unparseable:")
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_outer_timeout_kills_container(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(wait_timeout=True)
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_timeout:")
        assert "kill_container" in engine.call_names
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_build_failure(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(fail_on={"build_image"})
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_build_failed:")
        assert "create_container" not in engine.call_names
        assert "remove_image" in engine.call_names
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_launch_failure(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(fail_on={"start_container"})
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_launch_failed:")
        assert engine.find_resources("anything") == []
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_unparseable_output(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=b"Segmentation fault\n", exit_code=139)
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.skip_reason.startswith("sandbox_output_unparseable:")
        assert "exit status 139" in analysis.skip_reason
        _assert_cleaned_up(engine)

    @pytest.mark.asyncio
    async def test_no_test_cases(self, sum_unit):
        """Nothing to run means nothing is built."""
        engine = FakeContainerEngine()
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, [])

        assert analysis.execution_skipped
        assert analysis.skip_reason.startswith("no_test_cases:")
        assert analysis.pass_rate == 0.0
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_cleanup_errors_do_not_escape(self, sum_unit, sum_cases):
        """A failing remove is logged; the analysis is still returned."""
        engine = FakeContainerEngine(
            logs=harness_output([passing_result([2, 3], 5)]),
            fail_on={"remove_container"},
        )
        analysis = await SandboxOrchestrator(engine).execute(sum_unit, sum_cases)

        assert analysis.pass_rate == 100.0
        assert "remove_image" in engine.call_names
        assert engine.images == {}


class TestCancellation:
    """Tests for cleanup when the caller cancels."""

    @pytest.mark.asyncio
    async def test_cancel_during_wait_still_cleans_up(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(
            logs=harness_output([passing_result([2, 3], 5)]), block_wait=True
        )
        orchestrator = SandboxOrchestrator(engine, id_factory=lambda: "exec-2-cafebabe")
        task = asyncio.create_task(orchestrator.execute(sum_unit, sum_cases))

        while not engine.wait_started.is_set():
            await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.sleep(0.05)
        engine.release_wait.set()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.find_resources("exec-2-cafebabe") == []
        assert "remove_container" in engine.call_names
        assert "remove_image" in engine.call_names
        _assert_cleaned_up(engine)


class TestConcurrentRuns:
    """Tests for isolation between concurrent runs."""

    @pytest.mark.asyncio
    async def test_parallel_runs_use_distinct_resources(self, sum_unit, sum_cases):
        engine = FakeContainerEngine(logs=harness_output([passing_result([2, 3], 5)]))
        orchestrator = SandboxOrchestrator(engine)

        results = await asyncio.gather(
            *(orchestrator.execute(sum_unit, sum_cases) for _ in range(4))
        )

        assert all(r.pass_rate == 100.0 for r in results)
        assert len({spec.name for spec in engine.specs}) == 4
        assert len(set(engine.context_dirs)) == 4
        _assert_cleaned_up(engine)
