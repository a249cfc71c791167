"""
Security rules for static analysis of JavaScript snippets.

Two fixed rule sets live here:

- ``LINT_RULES``: tree-sitter queries run against the parsed snippet, in
  the manner of a security linter. Each rule has a category, a lint
  severity (2 = error, 1 = warning) and documentation examples.
- ``REGEX_PATTERNS``: plain regular expressions run against the raw text.
  They still work when the snippet does not parse.

Both tables are versioned so a change in detection is visible in stored
analyses.

Tree-sitter query syntax reference:
- (node_type) matches a node by type
- field: (child) matches a named field
- @capture_name captures a node for extraction
- (#eq? @cap "value") filters captures by exact string match
- (#match? @cap "regex") filters captures by regex
- (_) wildcard matches any named node
- . anchors a child to the first position
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ...models import VulnerabilityType

RULES_VERSION = "1"

# Lint severities, as reported by the linter pass
LINT_ERROR = 2
LINT_WARNING = 1


@dataclass(frozen=True)
class CodeExample:
    """A code example for rule documentation and tests."""

    code: str
    description: str
    should_match: bool


@dataclass(frozen=True)
class LintRule:
    """A tree-sitter based lint rule.

    Attributes:
        rule_id: Unique identifier (e.g., "INJ-001").
        category: Vulnerability type the rule reports.
        lint_severity: ``LINT_ERROR`` or ``LINT_WARNING``.
        name: Short human-readable name.
        description: What the rule detects.
        cwe_ids: Applicable CWE identifiers.
        tree_sitter_query: One or more S-expression patterns.
        dynamic_capture: When set, the match is dropped if this capture is
            a plain string or number literal.
        capture_filter: Optional ``(capture, regex)`` pair; the capture
            text must match the regex, case-insensitively.
        positive_examples: Code that SHOULD trigger the rule.
        negative_examples: Code that should NOT trigger the rule.
    """

    rule_id: str
    category: VulnerabilityType
    lint_severity: int
    name: str
    description: str
    cwe_ids: list[str]
    tree_sitter_query: str
    dynamic_capture: str | None = None
    capture_filter: tuple[str, str] | None = None
    positive_examples: list[CodeExample] = field(default_factory=list)
    negative_examples: list[CodeExample] = field(default_factory=list)


@dataclass(frozen=True)
class RegexPattern:
    """A raw-text security pattern.

    Attributes:
        pattern_id: Unique identifier (e.g., "P-INJ-001").
        category: Vulnerability type the pattern reports.
        regex: Compiled expression; every match is one finding.
        description: Human-readable message for findings.
    """

    pattern_id: str
    category: VulnerabilityType
    regex: re.Pattern[str]
    description: str


# ---------------------------------------------------------------------------
# A. Injection
# ---------------------------------------------------------------------------

INJECTION_RULES: list[LintRule] = [
    LintRule(
        rule_id="INJ-001",
        category=VulnerabilityType.INJECTION,
        lint_severity=LINT_ERROR,
        name="eval() with dynamic input",
        description=(
            "eval() called with an argument that is not a static literal; "
            "the argument is compiled and run as code."
        ),
        cwe_ids=["CWE-94", "CWE-95"],
        tree_sitter_query="""
(call_expression
  function: (identifier) @func_name
  arguments: (arguments . (_) @first_arg)
  (#eq? @func_name "eval")) @call
""".strip(),
        dynamic_capture="first_arg",
        positive_examples=[
            CodeExample("eval(userInput);", "eval with variable input", True),
            CodeExample("eval(`${a}+${b}`);", "eval with template literal", True),
        ],
        negative_examples=[
            CodeExample('eval("2 + 2");', "eval with static string", False),
        ],
    ),
    LintRule(
        rule_id="INJ-002",
        category=VulnerabilityType.INJECTION,
        lint_severity=LINT_ERROR,
        name="Function constructor",
        description=(
            "The Function constructor compiles a string into code at "
            "runtime and carries the same risk as eval()."
        ),
        cwe_ids=["CWE-94"],
        tree_sitter_query="""
(new_expression
  constructor: (identifier) @constructor_name
  (#eq? @constructor_name "Function")) @call

(call_expression
  function: (identifier) @func_name
  (#eq? @func_name "Function")) @call
""".strip(),
        positive_examples=[
            CodeExample("const fn = new Function(body);", "new Function", True),
            CodeExample("const fn = Function('a', body);", "Function call", True),
        ],
        negative_examples=[
            CodeExample("const fn = function (a) { return a; };", "function expression", False),
        ],
    ),
    LintRule(
        rule_id="INJ-003",
        category=VulnerabilityType.INJECTION,
        lint_severity=LINT_ERROR,
        name="Timer with string callback",
        description=(
            "setTimeout/setInterval with a string first argument evaluates "
            "the string as code."
        ),
        cwe_ids=["CWE-95"],
        tree_sitter_query="""
(call_expression
  function: (identifier) @func_name
  arguments: (arguments . [(string) (template_string)] @first_arg)
  (#match? @func_name "^(setTimeout|setInterval)$")) @call
""".strip(),
        positive_examples=[
            CodeExample("setTimeout('run()', 100);", "string callback", True),
        ],
        negative_examples=[
            CodeExample("setTimeout(() => run(), 100);", "function callback", False),
        ],
    ),
]


# ---------------------------------------------------------------------------
# B. Cross-site scripting
# ---------------------------------------------------------------------------

XSS_RULES: list[LintRule] = [
    LintRule(
        rule_id="XSS-001",
        category=VulnerabilityType.XSS,
        lint_severity=LINT_ERROR,
        name="Dynamic HTML assignment",
        description=(
            "A non-literal value is assigned to innerHTML/outerHTML and "
            "rendered as markup."
        ),
        cwe_ids=["CWE-79"],
        tree_sitter_query="""
(assignment_expression
  left: (member_expression property: (property_identifier) @prop)
  right: (_) @value
  (#match? @prop "^(innerHTML|outerHTML)$")) @assign

(augmented_assignment_expression
  left: (member_expression property: (property_identifier) @prop)
  right: (_) @value
  (#match? @prop "^(innerHTML|outerHTML)$")) @assign
""".strip(),
        dynamic_capture="value",
        positive_examples=[
            CodeExample("el.innerHTML = '<b>' + name + '</b>';", "concatenation", True),
            CodeExample("el.innerHTML += html;", "append", True),
        ],
        negative_examples=[
            CodeExample("el.innerHTML = '';", "static clear", False),
        ],
    ),
    LintRule(
        rule_id="XSS-002",
        category=VulnerabilityType.XSS,
        lint_severity=LINT_ERROR,
        name="document.write",
        description="document.write() injects raw markup into the page.",
        cwe_ids=["CWE-79"],
        tree_sitter_query="""
(call_expression
  function: (member_expression
    object: (identifier) @obj
    property: (property_identifier) @method)
  (#eq? @obj "document")
  (#match? @method "^(write|writeln)$")) @call
""".strip(),
        positive_examples=[
            CodeExample("document.write(msg);", "write", True),
        ],
    ),
    LintRule(
        rule_id="XSS-003",
        category=VulnerabilityType.XSS,
        lint_severity=LINT_WARNING,
        name="insertAdjacentHTML with dynamic markup",
        description="insertAdjacentHTML() parses its second argument as HTML.",
        cwe_ids=["CWE-79"],
        tree_sitter_query="""
(call_expression
  function: (member_expression property: (property_identifier) @method)
  arguments: (arguments (_) (_) @markup)
  (#eq? @method "insertAdjacentHTML")) @call
""".strip(),
        dynamic_capture="markup",
    ),
]


# ---------------------------------------------------------------------------
# C. Hardcoded secrets
# ---------------------------------------------------------------------------

_SECRET_NAME = r"(pass(word|wd)?|secret|api_?key|access_?key|private_?key|auth_?token|token)"

SECRET_RULES: list[LintRule] = [
    LintRule(
        rule_id="SEC-001",
        category=VulnerabilityType.SECRETS,
        lint_severity=LINT_ERROR,
        name="Secret bound to a string literal",
        description=(
            "A variable or property named like a credential holds a "
            "hardcoded string."
        ),
        cwe_ids=["CWE-798"],
        tree_sitter_query="""
(variable_declarator
  name: (identifier) @name
  value: (string (string_fragment) @secret)) @decl

(pair
  key: (property_identifier) @name
  value: (string (string_fragment) @secret)) @decl

(assignment_expression
  left: (member_expression property: (property_identifier) @name)
  right: (string (string_fragment) @secret)) @decl
""".strip(),
        capture_filter=("name", _SECRET_NAME),
        positive_examples=[
            CodeExample('const apiKey = "sk-123456";', "api key", True),
            CodeExample("const cfg = { password: 'hunter2' };", "property", True),
        ],
        negative_examples=[
            CodeExample('const apiKey = process.env.API_KEY;', "env lookup", False),
            CodeExample('const greeting = "hello";', "unrelated name", False),
        ],
    ),
]


# ---------------------------------------------------------------------------
# D. Unsafe operations
# ---------------------------------------------------------------------------

UNSAFE_RULES: list[LintRule] = [
    LintRule(
        rule_id="UNSAFE-001",
        category=VulnerabilityType.UNSAFE,
        lint_severity=LINT_ERROR,
        name="Child process execution",
        description="Spawning processes from a snippet escapes the function's contract.",
        cwe_ids=["CWE-78"],
        tree_sitter_query="""
(call_expression
  function: (member_expression
    object: (identifier) @obj
    property: (property_identifier) @method)
  (#match? @obj "^(child_process|childProcess|cp)$")
  (#match? @method "^(exec|execSync|execFile|execFileSync|spawn|spawnSync|fork)$")) @call
""".strip(),
        positive_examples=[
            CodeExample("child_process.exec(cmd);", "exec", True),
        ],
    ),
    LintRule(
        rule_id="UNSAFE-002",
        category=VulnerabilityType.UNSAFE,
        lint_severity=LINT_WARNING,
        name="Non-literal filesystem path",
        description="A filesystem call receives a computed path.",
        cwe_ids=["CWE-22"],
        tree_sitter_query="""
(call_expression
  function: (member_expression
    object: (identifier) @obj
    property: (property_identifier) @method)
  arguments: (arguments . (_) @first_arg)
  (#match? @obj "^(fs|fsp|fsPromises)$")) @call
""".strip(),
        dynamic_capture="first_arg",
        positive_examples=[
            CodeExample("fs.readFileSync(userPath);", "computed path", True),
        ],
        negative_examples=[
            CodeExample("fs.readFileSync('./data.json');", "literal path", False),
        ],
    ),
    LintRule(
        rule_id="UNSAFE-003",
        category=VulnerabilityType.UNSAFE,
        lint_severity=LINT_WARNING,
        name="Non-literal require",
        description="require() with a computed module name loads arbitrary code.",
        cwe_ids=["CWE-829"],
        tree_sitter_query="""
(call_expression
  function: (identifier) @func_name
  arguments: (arguments . (_) @first_arg)
  (#eq? @func_name "require")) @call
""".strip(),
        dynamic_capture="first_arg",
        positive_examples=[
            CodeExample("const m = require(name);", "computed module", True),
        ],
        negative_examples=[
            CodeExample("const m = require('lodash');", "literal module", False),
        ],
    ),
]


LINT_RULES: list[LintRule] = (
    INJECTION_RULES + XSS_RULES + SECRET_RULES + UNSAFE_RULES
)

_RULE_INDEX: dict[str, LintRule] = {r.rule_id: r for r in LINT_RULES}


def get_rule_by_id(rule_id: str) -> LintRule | None:
    """Look up a lint rule by its identifier."""
    return _RULE_INDEX.get(rule_id)


# ---------------------------------------------------------------------------
# Raw-text patterns
# ---------------------------------------------------------------------------

_I = re.IGNORECASE

REGEX_PATTERNS: list[RegexPattern] = [
    # XSS sinks
    RegexPattern("P-XSS-001", VulnerabilityType.XSS,
                 re.compile(r"innerHTML\s*=.*[+${]", _I),
                 "innerHTML assigned from a dynamic expression"),
    RegexPattern("P-XSS-002", VulnerabilityType.XSS,
                 re.compile(r"document\.write\s*\(", _I),
                 "document.write() call"),
    RegexPattern("P-XSS-003", VulnerabilityType.XSS,
                 re.compile(r"\.html\s*\(.*[+${]", _I),
                 "jQuery .html() with a dynamic expression"),
    RegexPattern("P-XSS-004", VulnerabilityType.XSS,
                 re.compile(r"dangerouslySetInnerHTML", _I),
                 "dangerouslySetInnerHTML usage"),
    # Injection sinks
    RegexPattern("P-INJ-001", VulnerabilityType.INJECTION,
                 re.compile(r"\beval\s*\(", _I),
                 "eval() call"),
    # Case-sensitive: "function(" is an ordinary function expression
    RegexPattern("P-INJ-002", VulnerabilityType.INJECTION,
                 re.compile(r"(?<![\w.$])Function\s*\("),
                 "Function() constructor call"),
    RegexPattern("P-INJ-003", VulnerabilityType.INJECTION,
                 re.compile(r"\bset(?:Timeout|Interval)\s*\(\s*[`'\"]", _I),
                 "timer with a string callback"),
    RegexPattern("P-INJ-004", VulnerabilityType.INJECTION,
                 re.compile(r"\bnew\s+Function\b"),
                 "new Function() expression"),
    # Hardcoded secrets
    RegexPattern("P-SEC-001", VulnerabilityType.SECRETS,
                 re.compile(r"password\s*[:=]\s*['\"]", _I),
                 "hardcoded password"),
    RegexPattern("P-SEC-002", VulnerabilityType.SECRETS,
                 re.compile(r"api_?key\s*[:=]\s*['\"]", _I),
                 "hardcoded API key"),
    RegexPattern("P-SEC-003", VulnerabilityType.SECRETS,
                 re.compile(r"secret\s*[:=]\s*['\"]", _I),
                 "hardcoded secret"),
    RegexPattern("P-SEC-004", VulnerabilityType.SECRETS,
                 re.compile(r"token\s*[:=]\s*['\"]\w{20,}", _I),
                 "hardcoded token"),
    # Unsafe operations
    RegexPattern("P-UNSAFE-001", VulnerabilityType.UNSAFE,
                 re.compile(r"child_process\.(?:exec|spawn|fork)", _I),
                 "shell command execution"),
    RegexPattern("P-UNSAFE-002", VulnerabilityType.UNSAFE,
                 re.compile(r"\bfs\.\w+Sync\b", _I),
                 "synchronous filesystem call"),
    RegexPattern("P-UNSAFE-003", VulnerabilityType.UNSAFE,
                 re.compile(r"require\s*\(.*user", _I),
                 "require() of user-controlled module"),
]
