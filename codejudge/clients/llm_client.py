"""Completion clients for the language models that propose test cases.

Both clients return the raw completion text; parsing it is the test case
provider's job. Transport and HTTP errors are converted to
``CompletionError`` so the retry policy has one exception to handle.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..constants import GENERATION_MAX_TOKENS, GENERATION_TEMPERATURE
from ..core.exceptions import CompletionError, InvalidConfigError
from ..core.settings import EngineSettings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a test case generator. Always respond with valid JSON only, "
    "no markdown and no explanations."
)


class CompletionClient(ABC):
    """Sends one prompt and returns the completion text."""

    name: str = "completion"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        ...


class OpenRouterClient(CompletionClient):
    """OpenAI-compatible chat completions (OpenRouter by default)."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 60.0,
    ):
        if not api_key:
            raise InvalidConfigError("OpenRouter client requires an API key")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": SYSTEM_PROMPT},
                            {"role": "user", "content": prompt},
                        ],
                        "temperature": GENERATION_TEMPERATURE,
                        "max_tokens": GENERATION_MAX_TOKENS,
                    },
                    timeout=self.timeout,
                )
                response.raise_for_status()
                result: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CompletionError(f"OpenRouter request failed: {e}") from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionError("OpenRouter response has no message content") from e
        if isinstance(content, list):
            # Content part form: [{"type": "text", "text": "..."}]
            content = "".join(
                str(part.get("text") or "") for part in content
                if isinstance(part, dict) and part.get("type", "text") == "text"
            )
        if not content:
            raise CompletionError("OpenRouter returned an empty completion")
        return str(content)


class OllamaClient(CompletionClient):
    """Local Ollama server through ``/api/generate``."""

    name = "ollama"

    def __init__(self, base_url: str, model: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/api/generate",
                    json={
                        "model": self.model,
                        "prompt": f"{SYSTEM_PROMPT}\n\n{prompt}",
                        "stream": False,
                        "options": {
                            "temperature": GENERATION_TEMPERATURE,
                            "num_predict": GENERATION_MAX_TOKENS,
                        },
                    },
                    timeout=self.timeout,
                )
                response.raise_for_status()
                result: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CompletionError(f"Ollama request failed: {e}") from e

        content = result.get("response") if isinstance(result, dict) else None
        if not content:
            raise CompletionError("Ollama returned an empty completion")
        return str(content)


def create_completion_client(settings: EngineSettings) -> CompletionClient | None:
    """Client for the configured provider; ``None`` when generation is off."""
    if settings.test_provider == "openrouter":
        if not settings.openrouter_api_key:
            raise InvalidConfigError("test_provider 'openrouter' needs OPENROUTER_API_KEY")
        logger.info(f"Test generation using OpenRouter model {settings.openrouter_model}")
        return OpenRouterClient(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            base_url=settings.openrouter_base_url,
            timeout=settings.request_timeout_seconds,
        )
    if settings.test_provider == "ollama":
        logger.info(f"Test generation using Ollama model {settings.ollama_model}")
        return OllamaClient(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            timeout=settings.request_timeout_seconds,
        )
    logger.info("Test generation disabled - no provider configured")
    return None
