"""Utility functions for executing the security rule tables.

These helpers bridge the declarative rules in ``patterns.py`` and the
runtime analysis: they run tree-sitter lint rules through the
``ASTEngine``, run the raw-text patterns, and turn matches into
``SecurityFinding`` objects.

Usage::

    engine = ASTEngine()
    ast = engine.parse(source_code)
    findings = run_all_rules(ast, engine) + run_regex_patterns(source_code)
"""

from __future__ import annotations

import bisect
import logging
import re

import tree_sitter as ts

from ...models import SEVERITY_BY_TYPE, SecurityFinding, Severity
from .ast_engine import ASTEngine, ParsedAST, QueryMatch
from .patterns import LINT_ERROR, LINT_RULES, REGEX_PATTERNS, LintRule, RegexPattern

logger = logging.getLogger(__name__)

# Literal node types that make an argument "static"
_STATIC_LITERAL_TYPES = frozenset({"string", "number", "true", "false", "null"})

_MAX_SNIPPET_LENGTH = 200


def run_rule_against_ast(
    rule: LintRule,
    ast: ParsedAST,
    engine: ASTEngine,
) -> list[SecurityFinding]:
    """Execute a single lint rule against an AST and return findings.

    A rule whose query does not compile against the installed grammar is
    logged and skipped; the other rules still run.
    """
    findings: list[SecurityFinding] = []
    query_text = rule.tree_sitter_query.strip()
    if not query_text:
        return findings

    try:
        matches = engine.query(ast, query_text)
    except ts.QueryError as exc:
        logger.debug("Query failed for rule %s: %s", rule.rule_id, exc)
        return findings

    for match in matches:
        primary_node = _get_primary_node(match)
        if primary_node is None:
            continue
        if not _passes_post_processing(rule, match, ast):
            continue

        findings.append(
            SecurityFinding(
                type=rule.category,
                severity=_linter_severity(rule),
                line_number=primary_node.start_point.row + 1,
                message=f"{rule.name}: {rule.description}",
                pattern_matched=_truncate(ast.get_text(primary_node), _MAX_SNIPPET_LENGTH),
                rule_id=rule.rule_id,
                source="linter",
            )
        )

    return findings


def run_all_rules(
    ast: ParsedAST,
    engine: ASTEngine,
    rules: list[LintRule] | None = None,
) -> list[SecurityFinding]:
    """Run every lint rule (or the given subset) against an AST."""
    findings: list[SecurityFinding] = []
    for rule in rules if rules is not None else LINT_RULES:
        findings.extend(run_rule_against_ast(rule, ast, engine))
    findings.sort(key=lambda f: (f.line_number or 0, f.rule_id))
    return findings


def run_regex_patterns(
    source_code: str,
    patterns: list[RegexPattern] | None = None,
) -> list[SecurityFinding]:
    """Run the raw-text patterns; every match becomes one finding."""
    line_starts = _line_starts(source_code)
    findings: list[SecurityFinding] = []

    for pattern in patterns if patterns is not None else REGEX_PATTERNS:
        for match in pattern.regex.finditer(source_code):
            findings.append(
                SecurityFinding(
                    type=pattern.category,
                    severity=SEVERITY_BY_TYPE[pattern.category],
                    line_number=bisect.bisect_right(line_starts, match.start()),
                    message=pattern.description,
                    pattern_matched=_truncate(match.group(0), _MAX_SNIPPET_LENGTH),
                    rule_id=pattern.pattern_id,
                    source="pattern",
                )
            )

    findings.sort(key=lambda f: (f.line_number or 0, f.rule_id))
    return findings


def is_static_literal(node: ts.Node) -> bool:
    """Return ``True`` for plain literals and templates without substitutions."""
    if node.type in _STATIC_LITERAL_TYPES:
        return True
    if node.type == "template_string":
        return not any(child.type == "template_substitution" for child in node.children)
    return False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_primary_node(match: QueryMatch) -> ts.Node | None:
    """Determine the primary reporting node from a query match.

    Prefers nodes captured as @call, @assign or @decl, then the first
    available capture.
    """
    for name in ("call", "assign", "decl"):
        nodes = match.captures.get(name, [])
        if nodes:
            return nodes[0]

    for nodes in match.captures.values():
        if nodes:
            return nodes[0]
    return None


def _passes_post_processing(
    rule: LintRule,
    match: QueryMatch,
    ast: ParsedAST,
) -> bool:
    """Apply the checks a query cannot express.

    Returns ``True`` if the match should be reported.
    """
    if rule.dynamic_capture is not None:
        nodes = match.captures.get(rule.dynamic_capture, [])
        if not nodes or is_static_literal(nodes[0]):
            return False

    if rule.capture_filter is not None:
        capture, regex = rule.capture_filter
        nodes = match.captures.get(capture, [])
        if not nodes or not re.search(regex, ast.get_text(nodes[0]), re.IGNORECASE):
            return False

    return True


def _linter_severity(rule: LintRule) -> Severity:
    """Errors take the category severity; warnings sit one step lower."""
    base = SEVERITY_BY_TYPE[rule.category]
    if rule.lint_severity == LINT_ERROR:
        return base
    if base in (Severity.CRITICAL, Severity.HIGH):
        return Severity.MEDIUM
    return Severity.LOW


def _line_starts(text: str) -> list[int]:
    starts = [0]
    for index, char in enumerate(text):
        if char == "\n":
            starts.append(index + 1)
    return starts


def _truncate(text: str, max_len: int) -> str:
    """Truncate text to max_len characters, adding ellipsis if needed."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
