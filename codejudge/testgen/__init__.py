"""Test case generation: providers, prompts and completion parsing."""

from .parsing import parse_test_cases
from .prompts import build_test_case_prompt
from .provider import (
    LLMTestCaseProvider,
    StaticTestCaseProvider,
    TestCaseProvider,
    degenerate_test_case,
)

__all__ = [
    "TestCaseProvider",
    "LLMTestCaseProvider",
    "StaticTestCaseProvider",
    "degenerate_test_case",
    "parse_test_cases",
    "build_test_case_prompt",
]
