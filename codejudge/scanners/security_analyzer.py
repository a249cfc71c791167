"""Static security analysis of JavaScript snippets.

Two independent passes are unioned:

1. a linter pass running the tree-sitter rules in ``nodejs.patterns``;
2. a raw-text pattern pass that needs no parse tree.

The linter refuses a tree with syntax errors; that only skips pass 1.
A linter finding and a pattern finding of the same type on the same line
describe one vulnerability and are counted once.
"""

import logging

from ..core.exceptions import StaticParseFailed
from ..models import SecurityAnalysis, SecurityFinding, VulnerabilityType
from .nodejs.ast_engine import ASTEngine
from .nodejs.pattern_utils import run_all_rules, run_regex_patterns

logger = logging.getLogger(__name__)

# Score deduction per finding, by type
SCORE_PENALTIES: dict[VulnerabilityType, int] = {
    VulnerabilityType.INJECTION: 25,
    VulnerabilityType.XSS: 20,
    VulnerabilityType.SECRETS: 15,
    VulnerabilityType.UNSAFE: 10,
}


class SecurityAnalyzer:
    """Runs both security passes and summarizes the findings."""

    def __init__(self, engine: ASTEngine | None = None):
        self.engine = engine or ASTEngine()

    def analyze(self, code: str) -> SecurityAnalysis:
        linter_ran = True
        try:
            linter_findings = self.lint(code)
        except StaticParseFailed as e:
            logger.info(f"Security linter skipped: {e}")
            linter_findings = []
            linter_ran = False

        pattern_findings = run_regex_patterns(code)
        findings = merge_findings(linter_findings, pattern_findings)
        return summarize_findings(findings, linter_ran=linter_ran)

    def lint(self, code: str) -> list[SecurityFinding]:
        """Run the linter pass.

        Raises:
            StaticParseFailed: If the snippet does not parse cleanly.
        """
        ast = self.engine.parse(code)
        if ast.has_errors:
            raise StaticParseFailed("snippet contains syntax errors")
        return run_all_rules(ast, self.engine)


def merge_findings(
    linter_findings: list[SecurityFinding],
    pattern_findings: list[SecurityFinding],
) -> list[SecurityFinding]:
    """Union both passes, keeping one finding per (type, line).

    Linter findings come first so they win a collision. Findings without
    a line number are never merged.
    """
    merged: list[SecurityFinding] = []
    seen: set[tuple[VulnerabilityType, int]] = set()

    for finding in [*linter_findings, *pattern_findings]:
        if finding.line_number is not None:
            key = (finding.type, finding.line_number)
            if key in seen:
                continue
            seen.add(key)
        merged.append(finding)

    return merged


def summarize_findings(
    findings: list[SecurityFinding], linter_ran: bool = True
) -> SecurityAnalysis:
    counts = {vuln_type: 0 for vuln_type in VulnerabilityType}
    for finding in findings:
        counts[finding.type] += 1

    return SecurityAnalysis(
        xss_vulnerabilities=counts[VulnerabilityType.XSS],
        injection_vulnerabilities=counts[VulnerabilityType.INJECTION],
        hardcoded_secrets=counts[VulnerabilityType.SECRETS],
        unsafe_operations=counts[VulnerabilityType.UNSAFE],
        issues=findings,
        security_score=security_score(counts),
        linter_ran=linter_ran,
    )


def security_score(counts: dict[VulnerabilityType, int]) -> float:
    """``100`` minus the per-type penalties, clamped to ``[0, 100]``."""
    score = 100 - sum(
        SCORE_PENALTIES[vuln_type] * count for vuln_type, count in counts.items()
    )
    return float(max(0, min(100, score)))
