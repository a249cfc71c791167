"""Tests for the static security analyzer and its rule tables."""

import pytest

from codejudge.models import SecurityFinding, Severity, VulnerabilityType
from codejudge.scanners.nodejs.ast_engine import ASTEngine
from codejudge.scanners.nodejs.pattern_utils import (
    run_all_rules,
    run_regex_patterns,
    run_rule_against_ast,
)
from codejudge.scanners.nodejs.patterns import LINT_RULES, get_rule_by_id
from codejudge.scanners.security_analyzer import (
    SecurityAnalyzer,
    merge_findings,
    security_score,
)


@pytest.fixture(scope="module")
def engine():
    return ASTEngine()


@pytest.fixture(scope="module")
def analyzer(engine):
    return SecurityAnalyzer(engine)


def _examples(attribute):
    return [
        pytest.param(rule, example, id=f"{rule.rule_id}-{example.description}")
        for rule in LINT_RULES
        for example in getattr(rule, attribute)
    ]


# ============================================================================
# Analyzer
# ============================================================================


class TestSecurityAnalyzer:
    """Tests for the combined two-pass analysis."""

    def test_eval_with_user_input(self, analyzer):
        """eval(userInput) is one injection and costs 25 points."""
        result = analyzer.analyze("function run(userInput) { return eval(userInput); }")
        assert result.injection_vulnerabilities == 1
        assert result.security_score == 75.0
        assert result.issues[0].type == VulnerabilityType.INJECTION
        assert result.issues[0].severity == Severity.CRITICAL
        assert result.issues[0].line_number == 1
        assert result.linter_ran

    def test_clean_code_scores_100(self, analyzer):
        """No findings, no penalty."""
        result = analyzer.analyze("function sum(a, b) { return a + b; }")
        assert result.issues == []
        assert result.security_score == 100.0

    def test_hardcoded_secret(self, analyzer):
        """A credential literal is reported once although both passes match."""
        result = analyzer.analyze('const apiKey = "sk-1234567890";')
        assert result.hardcoded_secrets == 1
        assert result.security_score == 85.0

    def test_dynamic_inner_html(self, analyzer):
        """innerHTML built from input is one XSS finding."""
        result = analyzer.analyze("el.innerHTML = '<b>' + name + '</b>';")
        assert result.xss_vulnerabilities == 1
        assert result.security_score == 80.0

    def test_child_process(self, analyzer):
        """Shell execution is an unsafe operation."""
        result = analyzer.analyze("child_process.exec(cmd);")
        assert result.unsafe_operations == 1
        assert result.security_score == 90.0

    def test_findings_on_separate_lines_are_counted(self, analyzer):
        """Two sinks on two lines are two findings."""
        result = analyzer.analyze("eval(a);\neval(b);")
        assert result.injection_vulnerabilities == 2
        assert result.security_score == 50.0

    def test_score_is_clamped_at_zero(self, analyzer):
        """Many findings never push the score below zero."""
        code = "\n".join(f"eval(x{i});" for i in range(6))
        assert analyzer.analyze(code).security_score == 0.0

    def test_pattern_pass_runs_when_linter_cannot(self, analyzer):
        """A snippet that does not parse is still scanned by the patterns."""
        result = analyzer.analyze("eval(userInput")
        assert not result.linter_ran
        assert result.injection_vulnerabilities == 1
        assert result.issues[0].source == "pattern"


# ============================================================================
# Merging and scoring
# ============================================================================


class TestMergeFindings:
    """Tests for the union of both passes."""

    def _finding(self, vuln_type, line, source, rule_id="R"):
        return SecurityFinding(
            type=vuln_type,
            severity=Severity.HIGH,
            line_number=line,
            rule_id=rule_id,
            source=source,
        )

    def test_same_type_and_line_kept_once(self):
        """The linter finding wins a collision."""
        merged = merge_findings(
            [self._finding(VulnerabilityType.XSS, 3, "linter", "XSS-001")],
            [self._finding(VulnerabilityType.XSS, 3, "pattern", "P-XSS-001")],
        )
        assert [f.rule_id for f in merged] == ["XSS-001"]

    def test_different_types_on_same_line_kept(self):
        merged = merge_findings(
            [self._finding(VulnerabilityType.XSS, 3, "linter")],
            [self._finding(VulnerabilityType.INJECTION, 3, "pattern")],
        )
        assert len(merged) == 2

    def test_findings_without_line_never_merge(self):
        merged = merge_findings(
            [self._finding(VulnerabilityType.UNSAFE, None, "linter")],
            [self._finding(VulnerabilityType.UNSAFE, None, "pattern")],
        )
        assert len(merged) == 2

    def test_security_score_weights(self):
        """Penalties are 25/20/15/10 per injection/xss/secret/unsafe."""
        counts = {
            VulnerabilityType.INJECTION: 1,
            VulnerabilityType.XSS: 1,
            VulnerabilityType.SECRETS: 1,
            VulnerabilityType.UNSAFE: 1,
        }
        assert security_score(counts) == 30.0


# ============================================================================
# Rule tables
# ============================================================================


class TestLintRules:
    """Every documented example behaves as documented."""

    @pytest.mark.parametrize("rule,example", _examples("positive_examples"))
    def test_positive_examples_match(self, engine, rule, example):
        findings = run_rule_against_ast(rule, engine.parse(example.code), engine)
        assert findings, f"{rule.rule_id} should match: {example.code}"
        assert all(f.source == "linter" for f in findings)

    @pytest.mark.parametrize("rule,example", _examples("negative_examples"))
    def test_negative_examples_do_not_match(self, engine, rule, example):
        findings = run_rule_against_ast(rule, engine.parse(example.code), engine)
        assert findings == [], f"{rule.rule_id} should not match: {example.code}"

    def test_rule_ids_are_unique(self):
        ids = [rule.rule_id for rule in LINT_RULES]
        assert len(ids) == len(set(ids))

    def test_get_rule_by_id(self):
        assert get_rule_by_id("INJ-001").category == VulnerabilityType.INJECTION
        assert get_rule_by_id("NOPE") is None

    def test_warning_rules_report_lower_severity(self, engine):
        """Lint warnings sit one step below the category severity."""
        rule = get_rule_by_id("UNSAFE-003")
        findings = run_all_rules(engine.parse("const m = require(name);"), engine, [rule])
        assert findings[0].severity == Severity.LOW


class TestRegexPatterns:
    """Tests for the raw-text pass."""

    def test_line_numbers(self):
        findings = run_regex_patterns("const a = 1;\n\ndocument.write(x);\n")
        assert [(f.rule_id, f.line_number) for f in findings] == [("P-XSS-002", 3)]

    def test_function_keyword_is_not_function_constructor(self):
        """Lowercase function( is an ordinary function expression."""
        assert run_regex_patterns("const f = function(a) { return a; };") == []

    def test_sync_filesystem_call(self):
        findings = run_regex_patterns("fs.readFileSync('a.txt');")
        assert findings[0].type == VulnerabilityType.UNSAFE
