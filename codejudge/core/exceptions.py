"""Custom exception hierarchy for codejudge.

Engine-level failure kinds carry a stable ``kind`` string. The orchestrator
and the analysis engine use it to prefix ``skip_reason`` values so callers
can tell a timeout from a failed build without parsing free text.
"""


class CodeJudgeError(Exception):
    """Base exception for all codejudge errors.

    All custom exceptions should inherit from this class to allow
    callers to catch all codejudge-specific errors with a single
    except clause when appropriate.
    """

    kind = "codejudge_error"

    def describe(self) -> str:
        """Return ``"<kind>: <message>"`` for use as a skip or failure reason."""
        message = str(self)
        return f"{self.kind}: {message}" if message else self.kind


# =============================================================================
# Static Analysis Errors
# =============================================================================

class DependencyAnalysisDegraded(CodeJudgeError):
    """Shape detection fell back to the generic wrapper.

    Non-fatal: the code is still normalized and analyzed, the reason is
    recorded on the resulting code unit.
    """

    kind = "dependency_analysis_degraded"


class StaticParseFailed(CodeJudgeError):
    """The snippet could not be parsed into a clean syntax tree."""

    kind = "static_parse_failed"


# =============================================================================
# Test Generation Errors
# =============================================================================

class CompletionError(CodeJudgeError):
    """A language model request failed or returned nothing usable."""

    kind = "completion_error"


class TestGenerationFailed(CodeJudgeError):
    """The test case provider exhausted its retries."""

    __test__ = False
    kind = "test_generation_failed"

    def __init__(self, message: str, attempts: int = 0, last_error: Exception | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# Sandbox Errors
# =============================================================================

class SandboxError(CodeJudgeError):
    """Base exception for sandbox execution failures."""

    kind = "sandbox_error"


class SandboxBuildFailed(SandboxError):
    """The sandbox image could not be built."""

    kind = "sandbox_build_failed"


class SandboxLaunchFailed(SandboxError):
    """The sandbox container could not be created or started."""

    kind = "sandbox_launch_failed"


class SandboxTimeout(SandboxError):
    """The sandbox run exceeded its wall-clock limit."""

    kind = "sandbox_timeout"


class SandboxMemoryExceeded(SandboxError):
    """The sandbox container was killed by its memory limit."""

    kind = "sandbox_memory_exceeded"


class SandboxOutputUnparseable(SandboxError):
    """The container output held no result payload."""

    kind = "sandbox_output_unparseable"


class ContainerEngineError(CodeJudgeError):
    """Low-level container engine failure (daemon, API, build log)."""

    kind = "container_engine_error"


# =============================================================================
# Configuration & Lookup Errors
# =============================================================================

class ConfigurationError(CodeJudgeError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid or missing."""
    pass


class CodeNotFoundError(CodeJudgeError):
    """No code is stored under the requested identifier."""

    kind = "code_not_found"
