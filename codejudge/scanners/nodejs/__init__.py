"""JavaScript static analysis built on tree-sitter.

The ``ASTEngine`` parses snippets once and offers query helpers; the lint
rules and regex patterns in ``patterns`` drive the security analyzer.

Quick start::

    from codejudge.scanners.nodejs import ASTEngine

    engine = ASTEngine()
    ast = engine.parse("const cp = require('child_process');")
    for imp in engine.find_imports(ast):
        print(imp.module)
"""

from .ast_engine import (
    ASTEngine,
    FunctionCall,
    FunctionDefinition,
    ImportStatement,
    ParsedAST,
    QueryMatch,
)
from .patterns import LINT_RULES, REGEX_PATTERNS, LintRule, RegexPattern

__all__ = [
    "ASTEngine",
    "FunctionCall",
    "FunctionDefinition",
    "ImportStatement",
    "ParsedAST",
    "QueryMatch",
    "LintRule",
    "RegexPattern",
    "LINT_RULES",
    "REGEX_PATTERNS",
]
