"""Tolerant extraction of test cases from language model output.

Models wrap JSON in markdown fences, add prose around it, use JavaScript's
``undefined`` or rename fields. The parser accepts all of that and
returns clean ``TestCase`` objects, or raises ``CompletionError`` when
nothing usable is present.
"""

import json
import logging
import re
from typing import Any

from ..core.exceptions import CompletionError
from ..models import TestCase

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```[a-zA-Z]*")
# Bare undefined outside of string literals
_UNDEFINED = re.compile(r'("(?:[^"\\]|\\.)*")|\bundefined\b')

CASES_KEY = "testCases"


def strip_fences(text: str) -> str:
    return _FENCE.sub("", text).replace("```", "")


def replace_undefined(text: str) -> str:
    """Replace bare ``undefined`` tokens with ``null``; strings are kept."""
    return _UNDEFINED.sub(lambda m: m.group(1) or "null", text)


def find_case_list(text: str) -> list[Any] | None:
    """First JSON value in *text* that holds a list of cases.

    Accepts an object with a ``testCases`` list or a bare top-level array.
    """
    decoder = json.JSONDecoder()
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _end = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and isinstance(value.get(CASES_KEY), list):
            return value[CASES_KEY]
        if isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            return value
    return None


def coerce_test_case(raw: Any) -> TestCase | None:
    if not isinstance(raw, dict):
        return None

    raw_input = raw.get("input", [])
    if isinstance(raw_input, list):
        args = raw_input
    elif isinstance(raw_input, dict):
        args = list(raw_input.values())
    elif raw_input is None:
        args = []
    else:
        args = [raw_input]

    if "expectedOutput" in raw:
        expected = raw["expectedOutput"]
    else:
        expected = raw.get("output")

    description = raw.get("description") or raw.get("name") or "Test case"
    return TestCase(input=args, expected_output=expected, description=str(description))


def parse_test_cases(text: str) -> list[TestCase]:
    """Parse a completion into test cases.

    Raises:
        CompletionError: If the text holds no usable test case.
    """
    cleaned = replace_undefined(strip_fences(text or ""))
    raw_cases = find_case_list(cleaned)
    if raw_cases is None:
        raise CompletionError("no test case JSON found in completion")

    cases = [case for case in (coerce_test_case(raw) for raw in raw_cases) if case]
    if not cases:
        raise CompletionError("completion contained zero usable test cases")
    logger.debug(f"Parsed {len(cases)} test cases from completion")
    return cases
