"""Clients for external language model APIs."""

from .llm_client import (
    CompletionClient,
    OllamaClient,
    OpenRouterClient,
    create_completion_client,
)

__all__ = [
    "CompletionClient",
    "OpenRouterClient",
    "OllamaClient",
    "create_completion_client",
]
