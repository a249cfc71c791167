"""Static maintainability metrics for JavaScript snippets.

The primary path walks the tree-sitter syntax tree. When the snippet does
not parse cleanly the analyzer falls back to token counting on the
comment-stripped text; both paths return the same ``CodeMetrics`` shape.
"""

from __future__ import annotations

import logging
import math
import re

import tree_sitter as ts

from ..core.exceptions import StaticParseFailed
from ..models import CodeMetrics
from .nodejs.ast_engine import ASTEngine, ParsedAST

logger = logging.getLogger(__name__)

# Node types adding one independent path each
DECISION_NODE_TYPES = frozenset({
    "if_statement",
    "for_statement",
    "for_in_statement",  # covers for...of
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
    "ternary_expression",
})

LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})

# Node types that open a nesting level
BLOCK_NODE_TYPES = frozenset({"statement_block", "switch_body", "class_body"})

# Independent responsibilities; each one found lowers cohesion
RESPONSIBILITY_PATTERNS: dict[str, re.Pattern[str]] = {
    "persistence": re.compile(r"save.*database|insert.*db|update.*db", re.IGNORECASE),
    "notification": re.compile(r"send.*email|notify|alert", re.IGNORECASE),
    "validation": re.compile(r"validate.*input|check.*valid", re.IGNORECASE),
    "computation": re.compile(r"calculate|compute|process|filter|sort|map", re.IGNORECASE),
    "presentation": re.compile(r"format.*output|render|display", re.IGNORECASE),
}

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"//[^\n]*")
_FALLBACK_DECISIONS = [
    re.compile(r"\bif\b"),
    re.compile(r"\bwhile\b"),
    re.compile(r"\bfor\b"),
    re.compile(r"\bcase\b"),
    re.compile(r"\bcatch\b"),
    re.compile(r"(?<!\?)\?(?![.?])"),
    re.compile(r"&&|\|\||\?\?"),
]
_FALLBACK_FUNCTIONS = re.compile(r"\bfunction\b|=>")


class MetricsAnalyzer:
    """Computes ``CodeMetrics`` for a snippet."""

    def __init__(self, engine: ASTEngine | None = None):
        self.engine = engine or ASTEngine()

    def analyze(self, code: str) -> CodeMetrics:
        try:
            return self.analyze_ast(code)
        except StaticParseFailed as e:
            logger.info(f"Falling back to token-based metrics: {e}")
            return self.analyze_tokens(code)

    def analyze_ast(self, code: str) -> CodeMetrics:
        """Tree-based metrics.

        Raises:
            StaticParseFailed: If the snippet does not parse cleanly.
        """
        ast = self.engine.parse(code)
        if ast.has_errors:
            raise StaticParseFailed("snippet contains syntax errors")

        complexity = cyclomatic_complexity(ast)
        loc = count_lines(code)
        return CodeMetrics(
            cyclomatic_complexity=complexity,
            lines_of_code=loc,
            nesting_depth=max(1, max_nesting_depth(ast)),
            cohesion_score=cohesion_score(code),
            number_of_functions=max(1, self.engine.count_functions(ast)),
            maintainability_index=maintainability_index(loc, complexity),
        )

    def analyze_tokens(self, code: str) -> CodeMetrics:
        """Token-counting fallback for snippets that do not parse."""
        stripped = strip_comments(code)
        complexity = 1 + sum(len(p.findall(stripped)) for p in _FALLBACK_DECISIONS)
        loc = count_lines(code)
        return CodeMetrics(
            cyclomatic_complexity=complexity,
            lines_of_code=loc,
            nesting_depth=max(1, brace_depth(stripped)),
            cohesion_score=cohesion_score(code),
            number_of_functions=max(1, len(_FALLBACK_FUNCTIONS.findall(stripped))),
            maintainability_index=maintainability_index(loc, complexity),
            used_fallback=True,
        )


def cyclomatic_complexity(ast: ParsedAST) -> int:
    complexity = 1

    def _visitor(node: ts.Node, _depth: int) -> None:
        nonlocal complexity
        if node.type in DECISION_NODE_TYPES:
            complexity += 1
        elif node.type == "binary_expression":
            operator = node.child_by_field_name("operator")
            if operator is not None and operator.type in LOGICAL_OPERATORS:
                complexity += 1

    ast.walk(_visitor)
    return complexity


def max_nesting_depth(ast: ParsedAST) -> int:
    """Deepest chain of nested blocks."""
    deepest = 0
    stack: list[tuple[ts.Node, int]] = [(ast.root_node, 0)]
    while stack:
        node, depth = stack.pop()
        if node.type in BLOCK_NODE_TYPES:
            depth += 1
            deepest = max(deepest, depth)
        for child in node.named_children:
            stack.append((child, depth))
    return deepest


def cohesion_score(code: str) -> float:
    found = sum(1 for pattern in RESPONSIBILITY_PATTERNS.values() if pattern.search(code))
    score = 100 - 20 * (max(found, 1) - 1)
    return float(max(0, min(100, score)))


def maintainability_index(lines_of_code: int, complexity: int) -> float:
    """Simplified maintainability index, clamped to ``[0, 100]``."""
    volume = lines_of_code * math.log2(complexity + 1)
    index = 171 - 5.2 * math.log(volume + 1) - 0.23 * complexity
    return float(round(max(0.0, min(100.0, index))))


def count_lines(code: str) -> int:
    """Number of non-blank lines."""
    return sum(1 for line in code.splitlines() if line.strip())


def strip_comments(code: str) -> str:
    return _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", code))


def brace_depth(code: str) -> int:
    depth = 0
    deepest = 0
    for char in code:
        if char == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif char == "}":
            depth = max(0, depth - 1)
    return deepest
