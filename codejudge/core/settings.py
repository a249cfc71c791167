"""Runtime settings for the analysis engine."""

import os
from typing import Literal

from pydantic import BaseModel, Field

from ..constants import (
    DEFAULT_MAX_CONCURRENT_SANDBOXES,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_OPENROUTER_MODEL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_SANDBOX_BASE_IMAGE,
    DEFAULT_TEST_CASE_COUNT,
    GENERATION_BACKOFF_SECONDS,
    GENERATION_MAX_ATTEMPTS,
)
from .exceptions import InvalidConfigError

TestProvider = Literal["openrouter", "ollama", "none"]


class EngineSettings(BaseModel):
    """Settings for test generation, the sandbox and logging.

    Sandbox resource caps are not settings; see ``codejudge.constants``.
    """

    test_provider: TestProvider = Field(
        default="openrouter", description="Backend used to generate test cases"
    )
    test_case_count: int = Field(
        default=DEFAULT_TEST_CASE_COUNT, ge=1, le=50,
        description="Number of test cases requested per snippet",
    )
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key")
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    generation_max_attempts: int = Field(default=GENERATION_MAX_ATTEMPTS, ge=1)
    generation_backoff_seconds: float = Field(default=GENERATION_BACKOFF_SECONDS, ge=0)
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    sandbox_base_image: str = Field(
        default=DEFAULT_SANDBOX_BASE_IMAGE, description="Base image for sandbox builds"
    )
    docker_base_url: str | None = Field(
        default=None, description="Docker daemon URL; environment defaults when unset"
    )
    max_concurrent_sandboxes: int = Field(default=DEFAULT_MAX_CONCURRENT_SANDBOXES, ge=1)
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineSettings":
        """Build settings from environment variables.

        Unset variables keep their defaults. Malformed numbers raise
        ``InvalidConfigError``.
        """
        env = os.environ if environ is None else environ
        mapping = {
            "test_provider": "CODEJUDGE_TEST_PROVIDER",
            "test_case_count": "AI_TEST_CASES_COUNT",
            "openrouter_api_key": "OPENROUTER_API_KEY",
            "openrouter_base_url": "OPENROUTER_BASE_URL",
            "openrouter_model": "AI_TEST_MODEL",
            "ollama_base_url": "OLLAMA_BASE_URL",
            "ollama_model": "OLLAMA_TEST_MODEL",
            "generation_max_attempts": "CODEJUDGE_GENERATION_MAX_ATTEMPTS",
            "generation_backoff_seconds": "CODEJUDGE_GENERATION_BACKOFF_SECONDS",
            "request_timeout_seconds": "CODEJUDGE_REQUEST_TIMEOUT",
            "sandbox_base_image": "CODEJUDGE_SANDBOX_IMAGE",
            "docker_base_url": "DOCKER_HOST",
            "max_concurrent_sandboxes": "CODEJUDGE_MAX_CONCURRENT_SANDBOXES",
            "log_level": "CODEJUDGE_LOG_LEVEL",
            "log_file": "CODEJUDGE_LOG_FILE",
        }
        values = {field: env[var] for field, var in mapping.items() if env.get(var)}

        # Without an OpenRouter key the local Ollama backend is the only option
        if "test_provider" not in values and "openrouter_api_key" not in values:
            values["test_provider"] = "ollama" if env.get("OLLAMA_BASE_URL") else "none"

        try:
            return cls.model_validate(values)
        except ValueError as e:
            raise InvalidConfigError(f"Invalid engine settings: {e}") from e
