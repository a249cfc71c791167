"""Core AST parsing engine for JavaScript snippets.

This module provides a thin interface around tree-sitter for parsing
untrusted JavaScript into syntax trees and querying them. The shape,
metrics and security analyzers all build on it.

tree-sitter is error tolerant: parsing never raises on malformed input,
it marks the damaged regions with ``ERROR`` nodes instead. Callers decide
what a damaged tree means for them through ``ParsedAST.has_errors``.

Usage::

    engine = ASTEngine()
    ast = engine.parse("const fs = require('fs');")
    imports = engine.find_imports(ast)
    calls = engine.find_function_calls(ast, function_name="eval")
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import tree_sitter as ts
import tree_sitter_javascript as ts_js

logger = logging.getLogger(__name__)

# Node types that introduce a callable
FUNCTION_NODE_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})

# ---------------------------------------------------------------------------
# Data classes for structured query results
# ---------------------------------------------------------------------------


@dataclass
class FunctionCall:
    """A function or method call found in the AST.

    Attributes:
        name: The function/method name (e.g., "exec", "eval").
        arguments: Source text of each argument.
        line: 1-based line number.
        receiver: Object the method is called on, if any.
            For ``child_process.exec()`` the receiver is ``"child_process"``.
        node: The ``call_expression`` node.
    """

    name: str
    arguments: list[str] = field(default_factory=list)
    line: int = 0
    receiver: str | None = None
    node: ts.Node | None = field(default=None, repr=False, compare=False)


@dataclass
class ImportStatement:
    """An ``import``, ``require()`` or dynamic ``import()``.

    Attributes:
        module: The module specifier string (e.g., ``"axios"``).
        kind: ``"static"``, ``"require"`` or ``"dynamic"``.
        line: 1-based line number.
    """

    module: str
    kind: str = "static"
    line: int = 0

    @property
    def is_relative(self) -> bool:
        return self.module.startswith(("./", "../", "/"))


@dataclass
class FunctionDefinition:
    """A function, arrow function or method definition.

    Attributes:
        name: Declared name, or the variable name for assigned functions.
        kind: ``"function"``, ``"generator"``, ``"arrow"``, ``"expression"``
            or ``"method"``.
        line: 1-based line number.
        is_top_level: ``True`` when declared directly in the program body
            (``export`` wrappers included).
        is_async: ``True`` when the function uses the ``async`` keyword.
        statement: The top-level statement node holding the definition, for
            top-level definitions.
    """

    name: str
    kind: str = "function"
    line: int = 0
    is_top_level: bool = False
    is_async: bool = False
    statement: ts.Node | None = field(default=None, repr=False, compare=False)


@dataclass
class QueryMatch:
    """A single match returned by an S-expression query.

    Attributes:
        pattern_index: Index of the matched pattern in the query.
        captures: Mapping from capture names to lists of matched nodes.
    """

    pattern_index: int
    captures: dict[str, list[ts.Node]]


# ---------------------------------------------------------------------------
# ParsedAST wrapper
# ---------------------------------------------------------------------------


class ParsedAST:
    """Wrapper around a tree-sitter parse tree with convenience methods."""

    __slots__ = ("tree", "source_code", "_source_bytes")

    def __init__(self, tree: ts.Tree, source_code: str) -> None:
        self.tree = tree
        self.source_code = source_code
        self._source_bytes: bytes = source_code.encode("utf-8")

    @property
    def root_node(self) -> ts.Node:
        """Return the root (``program``) node of the parse tree."""
        return self.tree.root_node

    @property
    def has_errors(self) -> bool:
        """Return ``True`` if the tree contains any parse errors."""
        return self.tree.root_node.has_error

    def get_text(self, node: ts.Node) -> str:
        """Extract the source text spanned by *node*."""
        return self._source_bytes[node.start_byte:node.end_byte].decode(
            "utf-8", errors="replace"
        )

    def slice_bytes(self, start: int, end: int) -> str:
        """Return the source between two byte offsets."""
        return self._source_bytes[start:end].decode("utf-8", errors="replace")

    def top_level_statements(self) -> list[ts.Node]:
        """Named children of the program node, comments excluded."""
        return [
            child
            for child in self.root_node.named_children
            if child.type != "comment"
        ]

    def walk(self, visitor: Callable[[ts.Node, int], bool | None]) -> None:
        """Depth-first walk of the AST using a visitor callback.

        The *visitor* is called with ``(node, depth)`` for every node,
        where depth is the distance from the root. If the visitor returns
        ``False`` explicitly, the subtree rooted at that node is skipped.
        """
        # Iterative so deeply nested generated code cannot hit the
        # recursion limit
        stack: list[tuple[ts.Node, int]] = [(self.tree.root_node, 0)]
        while stack:
            node, depth = stack.pop()
            if visitor(node, depth) is False:
                continue
            for child in reversed(node.children):
                stack.append((child, depth + 1))


# ---------------------------------------------------------------------------
# ASTEngine
# ---------------------------------------------------------------------------


class ASTEngine:
    """tree-sitter parsing engine for JavaScript.

    The ``Language`` and ``Parser`` objects are created lazily on first
    use and cached for the lifetime of the engine instance.
    """

    def __init__(self) -> None:
        self._language: ts.Language | None = None
        self._parser: ts.Parser | None = None

    # ------------------------------------------------------------------
    # Language / parser initialisation
    # ------------------------------------------------------------------

    @property
    def language(self) -> ts.Language:
        if self._language is None:
            self._language = ts.Language(ts_js.language())
        return self._language

    def _get_parser(self) -> ts.Parser:
        if self._parser is None:
            self._parser = ts.Parser(language=self.language)
        return self._parser

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, source_code: str) -> ParsedAST:
        """Parse *source_code* into a ``ParsedAST``.

        Never raises on malformed input; check ``has_errors`` instead.
        """
        tree = self._get_parser().parse(source_code.encode("utf-8"))
        return ParsedAST(tree=tree, source_code=source_code)

    # ------------------------------------------------------------------
    # Generic query interface
    # ------------------------------------------------------------------

    def query(self, ast: ParsedAST, pattern: str) -> list[QueryMatch]:
        """Execute a tree-sitter S-expression *pattern* against *ast*.

        Args:
            ast: A previously parsed AST.
            pattern: A tree-sitter query string in S-expression syntax.

        Returns:
            A list of ``QueryMatch`` objects, one per match.

        Raises:
            ts.QueryError: If *pattern* is syntactically invalid.
        """
        query_obj = ts.Query(self.language, pattern)
        cursor = ts.QueryCursor(query_obj)
        return [
            QueryMatch(pattern_index=pattern_index, captures=dict(captures))
            for pattern_index, captures in cursor.matches(ast.root_node)
        ]

    # ------------------------------------------------------------------
    # Structured finders
    # ------------------------------------------------------------------

    def find_function_calls(
        self,
        ast: ParsedAST,
        function_name: str | None = None,
    ) -> list[FunctionCall]:
        """Find function/method calls, optionally filtered by name."""
        calls: list[FunctionCall] = []

        def _visitor(node: ts.Node, _depth: int) -> None:
            if node.type != "call_expression":
                return
            fn_node = node.child_by_field_name("function")
            if fn_node is None:
                return

            receiver: str | None = None
            if fn_node.type == "member_expression":
                prop = fn_node.child_by_field_name("property")
                obj = fn_node.child_by_field_name("object")
                name = ast.get_text(prop) if prop else ast.get_text(fn_node)
                receiver = ast.get_text(obj) if obj else None
            else:
                name = ast.get_text(fn_node)

            args_node = node.child_by_field_name("arguments")
            arguments = (
                [ast.get_text(child) for child in args_node.named_children]
                if args_node is not None
                else []
            )
            calls.append(
                FunctionCall(
                    name=name,
                    arguments=arguments,
                    line=node.start_point.row + 1,
                    receiver=receiver,
                    node=node,
                )
            )

        ast.walk(_visitor)
        if function_name is not None:
            calls = [c for c in calls if c.name == function_name]
        return calls

    def find_imports(self, ast: ParsedAST) -> list[ImportStatement]:
        """Find static imports, ``require()`` calls and dynamic imports.

        Only string-literal specifiers are reported; ``require(name)`` with
        a computed argument has no module to report.
        """
        imports: list[ImportStatement] = []

        def _visitor(node: ts.Node, _depth: int) -> None:
            if node.type == "import_statement":
                source = node.child_by_field_name("source")
                module = self._string_value(ast, source)
                if module is not None:
                    imports.append(
                        ImportStatement(module, "static", node.start_point.row + 1)
                    )
            elif node.type == "call_expression":
                fn_node = node.child_by_field_name("function")
                if fn_node is None:
                    return
                fn_text = ast.get_text(fn_node)
                if fn_text not in ("require", "import"):
                    return
                args_node = node.child_by_field_name("arguments")
                if args_node is None or not args_node.named_children:
                    return
                module = self._string_value(ast, args_node.named_children[0])
                if module is not None:
                    kind = "require" if fn_text == "require" else "dynamic"
                    imports.append(
                        ImportStatement(module, kind, node.start_point.row + 1)
                    )

        ast.walk(_visitor)
        return imports

    def find_function_definitions(
        self, ast: ParsedAST
    ) -> list[FunctionDefinition]:
        """Extract named function, arrow-function and method definitions.

        Anonymous functions (callbacks, IIFEs) are not reported; count
        them with ``count_functions`` instead.
        """
        definitions: list[FunctionDefinition] = []

        def _owning_statement(node: ts.Node) -> ts.Node | None:
            current = node
            if current.type == "variable_declarator" and current.parent is not None:
                current = current.parent
            parent = current.parent
            if parent is not None and parent.type == "export_statement":
                current = parent
                parent = current.parent
            if parent is not None and parent.type == "program":
                return current
            return None

        def _visitor(node: ts.Node, _depth: int) -> None:
            if node.type in ("function_declaration", "generator_function_declaration"):
                name_node = node.child_by_field_name("name")
                if name_node is None:
                    return
                stmt = _owning_statement(node)
                definitions.append(
                    FunctionDefinition(
                        name=ast.get_text(name_node),
                        kind="generator" if node.type.startswith("generator") else "function",
                        line=node.start_point.row + 1,
                        is_top_level=stmt is not None,
                        is_async=self._node_has_async(ast, node),
                        statement=stmt,
                    )
                )
            elif node.type == "variable_declarator":
                name_node = node.child_by_field_name("name")
                value = node.child_by_field_name("value")
                if (
                    name_node is None
                    or name_node.type != "identifier"
                    or value is None
                    or value.type not in FUNCTION_NODE_TYPES
                ):
                    return
                stmt = _owning_statement(node)
                definitions.append(
                    FunctionDefinition(
                        name=ast.get_text(name_node),
                        kind="arrow" if value.type == "arrow_function" else "expression",
                        line=node.start_point.row + 1,
                        is_top_level=stmt is not None,
                        is_async=self._node_has_async(ast, value),
                        statement=stmt,
                    )
                )
            elif node.type == "method_definition":
                name_node = node.child_by_field_name("name")
                if name_node is None:
                    return
                definitions.append(
                    FunctionDefinition(
                        name=ast.get_text(name_node),
                        kind="method",
                        line=node.start_point.row + 1,
                        is_async=self._node_has_async(ast, node),
                    )
                )

        ast.walk(_visitor)
        return definitions

    def count_functions(self, ast: ParsedAST) -> int:
        """Count every callable in the tree, anonymous ones included."""
        count = 0

        def _visitor(node: ts.Node, _depth: int) -> None:
            nonlocal count
            # "function" is also the keyword token type in newer grammars
            if node.is_named and node.type in FUNCTION_NODE_TYPES:
                count += 1

        ast.walk(_visitor)
        return count

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _string_value(ast: ParsedAST, node: ts.Node | None) -> str | None:
        """Return the content of a plain string literal node."""
        if node is None or node.type != "string":
            return None
        return "".join(
            ast.get_text(child)
            for child in node.named_children
            if child.type == "string_fragment"
        )

    @staticmethod
    def _node_has_async(ast: ParsedAST, node: ts.Node) -> bool:
        """Check whether a function node has the ``async`` keyword."""
        for child in node.children:
            if child.type == "async":
                return True
            if child.type in ("function", "identifier", "property_identifier",
                              "formal_parameters"):
                break
        return False
