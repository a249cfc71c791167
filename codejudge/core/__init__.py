"""Core utilities: exceptions, settings and the retry policy."""

from .exceptions import (
    CodeJudgeError,
    CodeNotFoundError,
    CompletionError,
    ConfigurationError,
    ContainerEngineError,
    DependencyAnalysisDegraded,
    InvalidConfigError,
    SandboxBuildFailed,
    SandboxError,
    SandboxLaunchFailed,
    SandboxMemoryExceeded,
    SandboxOutputUnparseable,
    SandboxTimeout,
    StaticParseFailed,
    TestGenerationFailed,
)
from .retry import RetryPolicy
from .settings import EngineSettings

__all__ = [
    # Settings
    "EngineSettings",
    # Retry
    "RetryPolicy",
    # Exceptions
    "CodeJudgeError",
    "DependencyAnalysisDegraded",
    "StaticParseFailed",
    "CompletionError",
    "TestGenerationFailed",
    "SandboxError",
    "SandboxBuildFailed",
    "SandboxLaunchFailed",
    "SandboxTimeout",
    "SandboxMemoryExceeded",
    "SandboxOutputUnparseable",
    "ContainerEngineError",
    "ConfigurationError",
    "InvalidConfigError",
    "CodeNotFoundError",
]
