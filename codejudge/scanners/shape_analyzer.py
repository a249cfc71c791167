"""Shape detection, normalization and dependency detection.

``ShapeAnalyzer.analyze`` classifies a raw snippet into a ``CodeShape``
once, picks the entry point, strips trailing self-invocations and emits a
module with exactly one exported callable. It never raises: anything it
cannot classify goes through the generic statement wrapper and the code
unit records why.

Dependency detection is a pure function over a static, versioned rule
table plus the module names the snippet imports.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import tree_sitter as ts

from ..core.exceptions import DependencyAnalysisDegraded
from ..models import CodeShape, CodeUnit, DependencySet, ModuleFormat
from .nodejs.ast_engine import ASTEngine, FunctionDefinition, ParsedAST

logger = logging.getLogger(__name__)

WRAPPER_ENTRY_NAME = "__codejudge_entry__"

DEPENDENCY_RULES_VERSION = "1"


@dataclass(frozen=True)
class DependencyRule:
    tag: str
    regex: re.Pattern[str]


_NOT_RELATIVE = r"(?!\.{1,2}/)"

DEPENDENCY_RULES: list[DependencyRule] = [
    DependencyRule("require", re.compile(
        rf"require\s*\(\s*['\"]{_NOT_RELATIVE}[^'\"]+['\"]\s*\)")),
    DependencyRule("es-import", re.compile(
        rf"\bimport\s+(?:[^;'\"]*?\s+from\s+)?['\"]{_NOT_RELATIVE}[^'\"]+['\"]")),
    DependencyRule("dynamic-import", re.compile(
        rf"\bimport\s*\(\s*['\"]{_NOT_RELATIVE}[^'\"]+['\"]\s*\)")),
    DependencyRule("fetch", re.compile(r"\bfetch\s*\(")),
    DependencyRule("axios", re.compile(r"\baxios\b", re.IGNORECASE)),
    DependencyRule("http-client", re.compile(
        r"\b(?:https?|axios|got|superagent|request|client)\."
        r"(?:get|post|put|patch|delete|request)\s*\(")),
    DependencyRule("filesystem", re.compile(
        r"\bfs\.|\breadFile|\bwriteFile|\breaddir", re.IGNORECASE)),
    DependencyRule("process-env", re.compile(r"\bprocess\.env\b")),
    DependencyRule("googleapis", re.compile(r"googleapis|google-auth", re.IGNORECASE)),
    DependencyRule("database", re.compile(
        r"\b(?:mongodb|mongoose|prisma|sequelize)\b", re.IGNORECASE)),
    DependencyRule("child-process", re.compile(
        r"child_process|\bexecSync\b|\bspawn(?:Sync)?\s*\(|(?<![.\w])exec\s*\(")),
    DependencyRule("web-framework", re.compile(r"\b(?:express|koa|fastify)\b", re.IGNORECASE)),
    DependencyRule("websockets", re.compile(
        r"socket\.io|\bWebSocket\b|['\"]ws['\"]")),
]

_COMMONJS_MARKERS = re.compile(r"\brequire\s*\(|\bmodule\.exports\b|\bexports\.\w+\s*=")
_ESM_MARKERS = re.compile(r"^\s*(?:import|export)\b", re.MULTILINE)
_EXPORT_DEFAULT = re.compile(r"^\s*export\s+default\b", re.MULTILINE)
_MODULE_EXPORTS = re.compile(r"\bmodule\.exports\s*=")
_STATIC_IMPORT_LINE = re.compile(
    r"^\s*import\s+(?:[^;'\"]*?\s+from\s+)?['\"][^'\"]+['\"]\s*;?\s*$"
)


def detect_dependencies(code: str, modules: list[str] | None = None) -> DependencySet:
    """Capability tags for *code*, in rule order, then imported packages.

    Args:
        code: Raw snippet text.
        modules: Module specifiers found by the parser. When omitted they
            are read from the text with the import rules.
    """
    tags: list[str] = [rule.tag for rule in DEPENDENCY_RULES if rule.regex.search(code)]

    if modules is None:
        modules = re.findall(r"""(?:require\s*\(|from|import\s*\(?)\s*['"]([^'"]+)['"]""", code)
    for module in modules:
        package = package_name(module)
        if package:
            tags.append(package)

    return DependencySet(tags=tuple(dict.fromkeys(tags)))


def package_name(specifier: str) -> str | None:
    """Installable package for a module specifier; ``None`` for relative paths."""
    if specifier.startswith((".", "/")) or not specifier:
        return None
    specifier = specifier.removeprefix("node:")
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


class ShapeAnalyzer:
    """Normalizes raw snippets into ``CodeUnit`` objects."""

    def __init__(self, engine: ASTEngine | None = None):
        self.engine = engine or ASTEngine()

    def analyze(self, raw_code: str) -> CodeUnit:
        ast: ParsedAST | None = None
        try:
            ast = self.engine.parse(raw_code)
            modules = [imp.module for imp in self.engine.find_imports(ast)]
        except Exception as e:
            logger.warning(f"Could not parse snippet for dependency analysis: {e}")
            modules = None
        dependencies = detect_dependencies(raw_code, modules)

        try:
            if ast is None:
                raise DependencyAnalysisDegraded("snippet could not be parsed")
            return self._normalize(raw_code, ast, dependencies)
        except DependencyAnalysisDegraded as e:
            logger.info(f"Wrapping snippet as statements: {e}")
            return self._wrap(raw_code, dependencies, e.describe())
        except Exception as e:
            logger.warning(f"Shape analysis failed, wrapping snippet: {e}")
            degraded = DependencyAnalysisDegraded(f"shape analysis failed: {e}")
            return self._wrap(raw_code, dependencies, degraded.describe())

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def _normalize(
        self, raw_code: str, ast: ParsedAST, dependencies: DependencySet
    ) -> CodeUnit:
        module_format = self._module_format(raw_code)
        candidates = [
            d for d in self.engine.find_function_definitions(ast)
            if d.is_top_level and d.kind != "method"
        ]

        if _EXPORT_DEFAULT.search(raw_code) or _MODULE_EXPORTS.search(raw_code):
            return self._keep_exported(raw_code, ast, candidates, dependencies)

        if ast.has_errors:
            raise DependencyAnalysisDegraded("snippet contains syntax errors")
        if not candidates:
            raise DependencyAnalysisDegraded("no top-level function found")

        entry = choose_entry(ast, candidates, self.engine)
        body = strip_trailing_invocations(ast, entry.name).rstrip()
        if module_format is ModuleFormat.ESM:
            normalized = f"{body}\n\nexport default {entry.name};\n"
        else:
            normalized = f"{body}\n\nmodule.exports = {entry.name};\n"

        return CodeUnit(
            raw_code=raw_code,
            shape=_shape_of(entry),
            entry_name=entry.name,
            normalized_code=normalized,
            module_format=module_format,
            dependencies=dependencies,
            is_self_contained=dependencies.is_empty,
        )

    def _keep_exported(
        self,
        raw_code: str,
        ast: ParsedAST,
        candidates: list[FunctionDefinition],
        dependencies: DependencySet,
    ) -> CodeUnit:
        """Already-exported code is used as is."""
        module_format = (
            ModuleFormat.ESM if _EXPORT_DEFAULT.search(raw_code) else ModuleFormat.COMMONJS
        )
        exported = _exported_identifier(raw_code)
        entry_name = exported or "default"
        shape = CodeShape.BARE_STATEMENTS
        for candidate in candidates:
            if candidate.name == exported:
                entry_name = candidate.name
                shape = _shape_of(candidate)
                break
        else:
            exported_value = _default_export_value(ast)
            if exported_value is not None and exported_value.type == "arrow_function":
                shape = CodeShape.ARROW_ASSIGNMENT
            elif exported_value is not None:
                shape = CodeShape.FUNCTION_DECLARATION

        return CodeUnit(
            raw_code=raw_code,
            shape=shape,
            entry_name=entry_name,
            normalized_code=raw_code,
            module_format=module_format,
            dependencies=dependencies,
            is_self_contained=dependencies.is_empty,
        )

    def _wrap(
        self, raw_code: str, dependencies: DependencySet, reason: str
    ) -> CodeUnit:
        """Wrap bare statements into a synthetic callable."""
        module_format = self._module_format(raw_code)
        hoisted: list[str] = []
        body: list[str] = []
        for line in raw_code.splitlines():
            if module_format is ModuleFormat.ESM and _STATIC_IMPORT_LINE.match(line):
                hoisted.append(line.strip())
            else:
                body.append(line)

        parts = [*hoisted, f"function {WRAPPER_ENTRY_NAME}() {{", *body, "}", ""]
        if module_format is ModuleFormat.ESM:
            parts.append(f"export default {WRAPPER_ENTRY_NAME};")
        else:
            parts.append(f"module.exports = {WRAPPER_ENTRY_NAME};")

        return CodeUnit(
            raw_code=raw_code,
            shape=CodeShape.BARE_STATEMENTS,
            entry_name=WRAPPER_ENTRY_NAME,
            normalized_code="\n".join(parts) + "\n",
            module_format=module_format,
            dependencies=dependencies,
            is_self_contained=dependencies.is_empty,
            degraded_reason=reason,
        )

    @staticmethod
    def _module_format(raw_code: str) -> ModuleFormat:
        if _COMMONJS_MARKERS.search(raw_code) and not _ESM_MARKERS.search(raw_code):
            return ModuleFormat.COMMONJS
        return ModuleFormat.ESM


# ---------------------------------------------------------------------------
# Entry point selection
# ---------------------------------------------------------------------------


def choose_entry(
    ast: ParsedAST,
    candidates: list[FunctionDefinition],
    engine: ASTEngine,
) -> FunctionDefinition:
    """Pick the function the harness should call.

    Preference order: the candidate invoked at the end of the snippet, the
    first candidate no other candidate calls, the first candidate.
    """
    names = {c.name for c in candidates}
    for stmt in reversed(ast.top_level_statements()):
        invoked = _invoked_name(ast, stmt, names)
        if invoked is None:
            break
        return next(c for c in candidates if c.name == invoked)

    called: set[str] = set()
    for call in engine.find_function_calls(ast):
        if call.receiver is not None or call.name not in names or call.node is None:
            continue
        for candidate in candidates:
            stmt = candidate.statement
            if (
                stmt is not None
                and candidate.name != call.name
                and stmt.start_byte <= call.node.start_byte < stmt.end_byte
            ):
                called.add(call.name)

    for candidate in candidates:
        if candidate.name not in called:
            return candidate
    return candidates[0]


def strip_trailing_invocations(ast: ParsedAST, entry_name: str) -> str:
    """Source without the trailing statements that call *entry_name*."""
    cut = len(ast.source_code.encode("utf-8"))
    for stmt in reversed(ast.top_level_statements()):
        if _invoked_name(ast, stmt, {entry_name}) != entry_name:
            break
        cut = stmt.start_byte
    return ast.slice_bytes(0, cut)


def _invoked_name(ast: ParsedAST, stmt: ts.Node, names: set[str]) -> str | None:
    """Name from *names* that *stmt* calls, directly or via console.log."""
    if stmt.type != "expression_statement" or not stmt.named_children:
        return None
    expr = stmt.named_children[0]
    if expr.type == "await_expression" and expr.named_children:
        expr = expr.named_children[0]
    if expr.type != "call_expression":
        return None

    fn_node = expr.child_by_field_name("function")
    if fn_node is None:
        return None
    fn_text = ast.get_text(fn_node)
    if fn_text in names:
        return fn_text

    if fn_node.type == "member_expression" and fn_text.startswith("console."):
        args = expr.child_by_field_name("arguments")
        for arg in args.named_children if args is not None else []:
            if arg.type == "call_expression":
                inner = arg.child_by_field_name("function")
                if inner is not None and ast.get_text(inner) in names:
                    return ast.get_text(inner)
    return None


def _shape_of(definition: FunctionDefinition) -> CodeShape:
    if definition.kind in ("function", "generator"):
        return CodeShape.FUNCTION_DECLARATION
    return CodeShape.ARROW_ASSIGNMENT


def _exported_identifier(raw_code: str) -> str | None:
    match = re.search(
        r"(?:export\s+default|module\.exports\s*=)\s*(?:async\s+)?(?:function\b\s*\*?\s*)?"
        # Anonymous functions and classes have no name to export
        r"(?!(?:function|async|class)\b)([A-Za-z_$][\w$]*)",
        raw_code,
    )
    return match.group(1) if match else None


def _default_export_value(ast: ParsedAST) -> ts.Node | None:
    for stmt in ast.top_level_statements():
        if stmt.type != "export_statement":
            continue
        if not any(child.type == "default" for child in stmt.children):
            continue
        value = stmt.child_by_field_name("value") or stmt.child_by_field_name("declaration")
        return value
    return None
