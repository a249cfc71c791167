"""Prompt templates for test case generation."""

TEST_CASE_PROMPT = """Generate {count} test cases for the following JavaScript function.

Code:
```javascript
{code}
```

Requirements:
- Cover normal inputs, edge cases (empty values, zero, negative numbers) and boundaries
- "input" is the list of positional arguments passed to the function
- "expectedOutput" is the exact value the function returns (use null when it returns nothing)
- Only use JSON values; do not use undefined, NaN or functions

Respond with JSON in exactly this format:
{{
  "testCases": [
    {{"input": [1, 2], "expectedOutput": 3, "description": "adds two positive numbers"}}
  ]
}}"""


def build_test_case_prompt(code: str, count: int) -> str:
    """Prompt asking for *count* test cases for *code*."""
    return TEST_CASE_PROMPT.format(code=code.strip(), count=count)
