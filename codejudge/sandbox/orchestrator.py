"""Sandbox orchestration: one isolated container per execution.

Every run gets a fresh execution id from which its workspace directory,
image tag and container name are derived, so concurrent runs never share
a resource. Whatever happens (success, failure, timeout or cancellation of
the calling task) the container, the image and the workspace are removed
before ``execute`` returns or propagates.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from ..constants import (
    DEFAULT_SANDBOX_BASE_IMAGE,
    SANDBOX_CONTAINER_PREFIX,
    SANDBOX_IMAGE_REPOSITORY,
    SANDBOX_KILLED_EXIT_CODE,
    SANDBOX_LABEL,
    SANDBOX_MEMORY_LIMIT_MB,
    SANDBOX_OUTER_TIMEOUT_SECONDS,
    SANDBOX_TIMEOUT_EXIT_CODES,
    SANDBOX_WALL_CLOCK_SECONDS,
    SANDBOX_WORKSPACE_PREFIX,
)
from ..core.exceptions import (
    ContainerEngineError,
    SandboxBuildFailed,
    SandboxError,
    SandboxLaunchFailed,
    SandboxMemoryExceeded,
    SandboxOutputUnparseable,
    SandboxTimeout,
)
from ..logging_config import get_analysis_logger
from ..models import CodeUnit, ExecutionAnalysis, TestCase
from .build_context import write_build_context
from .container_engine import ContainerEngine, ContainerSpec
from .result_decoder import ResultDecoder, skipped_analysis

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_execution_id() -> str:
    """Timestamp plus random suffix; unique across concurrent runs."""
    return f"exec-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass
class SandboxRun:
    """Resources owned by one execution."""

    execution_id: str
    workspace: Path | None = None
    image_requested: bool = False
    container_requested: bool = False
    pending: asyncio.Future[Any] | None = field(default=None, repr=False)

    @property
    def image_tag(self) -> str:
        return f"{SANDBOX_IMAGE_REPOSITORY}:{self.execution_id}"

    @property
    def container_name(self) -> str:
        return f"{SANDBOX_CONTAINER_PREFIX}{self.execution_id}"

    @property
    def labels(self) -> dict[str, str]:
        return {SANDBOX_LABEL: self.execution_id}


class SandboxOrchestrator:
    """Runs normalized code against test cases inside a container.

    ``execute`` never raises for sandbox failures: build errors, launch
    errors, timeouts and unreadable output all become an
    ``ExecutionAnalysis`` with ``execution_skipped=True``.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        decoder: ResultDecoder | None = None,
        base_image: str = DEFAULT_SANDBOX_BASE_IMAGE,
        outer_timeout: float = SANDBOX_OUTER_TIMEOUT_SECONDS,
        id_factory: Callable[[], str] = new_execution_id,
    ):
        self.engine = engine
        self.decoder = decoder or ResultDecoder()
        self.base_image = base_image
        self.outer_timeout = outer_timeout
        self.id_factory = id_factory
        self.events = get_analysis_logger()

    async def execute(
        self,
        code_unit: CodeUnit,
        test_cases: list[TestCase],
        reduced_confidence: bool = False,
    ) -> ExecutionAnalysis:
        if not test_cases:
            return skipped_analysis(
                "no_test_cases: nothing to execute",
                test_cases,
                code_unit.raw_code,
                reduced_confidence,
            )

        run = SandboxRun(execution_id=self.id_factory())
        started = time.monotonic()
        try:
            raw, exit_code, oom_killed = await self._run(run, code_unit, test_cases)
            analysis = self._decode(
                raw, exit_code, oom_killed, code_unit, test_cases, reduced_confidence
            )
            self._log_run(run, started, "completed", analysis)
            return analysis
        except SandboxError as e:
            logger.warning(f"Sandbox run {run.execution_id} skipped: {e.describe()}")
            analysis = skipped_analysis(
                e.describe(), test_cases, code_unit.raw_code, reduced_confidence
            )
            self._log_run(run, started, "skipped", analysis)
            return analysis
        finally:
            await self._cleanup(run)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _run(
        self, run: SandboxRun, code_unit: CodeUnit, test_cases: list[TestCase]
    ) -> tuple[bytes, int, bool]:
        try:
            run.workspace = Path(
                tempfile.mkdtemp(prefix=f"{SANDBOX_WORKSPACE_PREFIX}{run.execution_id}_")
            )
            write_build_context(run.workspace, code_unit, test_cases, self.base_image)
        except OSError as e:
            raise SandboxBuildFailed(f"could not write build context: {e}") from e

        run.image_requested = True
        try:
            await self._call(run, self.engine.build_image, run.workspace, run.image_tag, run.labels)
        except ContainerEngineError as e:
            raise SandboxBuildFailed(str(e)) from e

        spec = ContainerSpec(image=run.image_tag, name=run.container_name, labels=run.labels)
        run.container_requested = True
        try:
            await self._call(run, self.engine.create_container, spec)
            await self._call(run, self.engine.start_container, run.container_name)
        except ContainerEngineError as e:
            raise SandboxLaunchFailed(str(e)) from e

        try:
            exit_code = await self._call(
                run, self.engine.wait_container, run.container_name, self.outer_timeout
            )
        except TimeoutError as e:
            try:
                await self._call(run, self.engine.kill_container, run.container_name)
            except ContainerEngineError as kill_error:
                logger.warning(f"Could not kill {run.container_name}: {kill_error}")
            raise SandboxTimeout(
                f"execution exceeded {SANDBOX_WALL_CLOCK_SECONDS}s"
            ) from e
        except ContainerEngineError as e:
            raise SandboxLaunchFailed(str(e)) from e

        try:
            raw = await self._call(run, self.engine.container_logs, run.container_name)
        except ContainerEngineError as e:
            raise SandboxOutputUnparseable(f"could not read container output: {e}") from e

        oom_killed = False
        if exit_code == SANDBOX_KILLED_EXIT_CODE:
            try:
                oom_killed = await self._call(run, self.engine.oom_killed, run.container_name)
            except ContainerEngineError as e:
                logger.warning(f"Could not inspect {run.container_name}: {e}")
        return raw, exit_code, oom_killed

    def _decode(
        self,
        raw: bytes,
        exit_code: int,
        oom_killed: bool,
        code_unit: CodeUnit,
        test_cases: list[TestCase],
        reduced_confidence: bool,
    ) -> ExecutionAnalysis:
        try:
            return self.decoder.decode(raw, test_cases, code_unit.raw_code, reduced_confidence)
        except SandboxOutputUnparseable as e:
            if oom_killed:
                raise SandboxMemoryExceeded(
                    f"container exceeded {SANDBOX_MEMORY_LIMIT_MB} MiB (exit status {exit_code})"
                ) from e
            if exit_code in SANDBOX_TIMEOUT_EXIT_CODES:
                raise SandboxTimeout(
                    f"execution exceeded {SANDBOX_WALL_CLOCK_SECONDS}s (exit status {exit_code})"
                ) from e
            raise SandboxOutputUnparseable(f"{e} (exit status {exit_code})") from e

    async def _call(self, run: SandboxRun, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking engine call in a worker thread.

        The call is shielded: cancelling the caller does not abandon an
        in-flight engine operation, cleanup waits for it instead.
        """
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        run.pending = task
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def _cleanup(self, run: SandboxRun) -> None:
        """Release every resource of *run*; cannot be cancelled midway."""
        task = asyncio.ensure_future(self._release_after_pending(run))
        cancelled = False
        while not task.done():
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                cancelled = True
        if cancelled:
            raise asyncio.CancelledError()

    async def _release_after_pending(self, run: SandboxRun) -> None:
        pending = run.pending
        if pending is not None:
            await asyncio.wait([pending])
            if not pending.cancelled():
                # Mark the outcome as retrieved; the caller already saw it
                pending.exception()
        await asyncio.to_thread(self.release, run)

    def release(self, run: SandboxRun) -> None:
        """Blocking cleanup. Each step runs even if an earlier one failed."""
        if run.container_requested:
            try:
                self.engine.remove_container(run.container_name)
            except ContainerEngineError as e:
                logger.error(f"Failed to remove container {run.container_name}: {e}")
        if run.image_requested:
            try:
                self.engine.remove_image(run.image_tag)
            except ContainerEngineError as e:
                logger.error(f"Failed to remove image {run.image_tag}: {e}")
        if run.workspace is not None:
            shutil.rmtree(run.workspace, ignore_errors=True)

    def _log_run(
        self,
        run: SandboxRun,
        started: float,
        status: str,
        analysis: ExecutionAnalysis,
    ) -> None:
        self.events.info(
            f"Sandbox run {run.execution_id} {status}",
            extra={
                "event": "sandbox_run",
                "execution_id": run.execution_id,
                "status": status,
                "skip_reason": analysis.skip_reason,
                "failure_reason": analysis.failure_reason,
                "test_count": analysis.total_tests,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
