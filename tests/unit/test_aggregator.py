"""tests for result aggregation: dedup, threshold, scoring, risk mapping"""

import pytest

from auditflow.agent.aggregator import (
    AggregationError,
    Aggregator,
    deduplicate,
    merge_findings,
)
from auditflow.models.findings import (
    AgentResult,
    AnalysisMode,
    CodeQuality,
    FailureKind,
    Finding,
    GasOptimization,
    ReportMetadata,
    RiskLevel,
    Severity,
)

META = ReportMetadata(analysis_id="a1", analysis_mode=AnalysisMode.COMPREHENSIVE)


def _finding(name="Reentrancy", category="reentrancy", severity=Severity.HIGH, confidence=0.9,
             lines=None, description="", agent="security"):
    start, end = lines if lines else (None, None)
    return Finding(
        name=name, category=category, severity=severity, description=description,
        confidence=confidence, line_start=start, line_end=end, detected_by=(agent,),
    )


def _ok(agent_id, score, findings=(), **kwargs):
    return AgentResult(agent_id=agent_id, success=True, score=score, findings=tuple(findings), **kwargs)


class TestDeduplication:

    def test_overlapping_lines_merge(self):
        a = _finding(severity=Severity.HIGH, confidence=0.8, lines=(10, 12), description="A", agent="security")
        b = _finding(name="Reentrant withdraw", severity=Severity.MEDIUM, confidence=0.9,
                     lines=(11, 15), description="B", agent="defi")
        merged = merge_findings(a, b)
        assert merged.name == "Reentrancy"
        assert merged.severity == Severity.HIGH
        assert merged.confidence == 0.9
        assert merged.description == "B\n\nA"
        assert (merged.line_start, merged.line_end) == (10, 15)
        assert merged.detected_by == ("security", "defi")

    def test_merge_does_not_repeat_description_parts(self):
        a = _finding(description="same", lines=(1, 1))
        b = _finding(description="same", lines=(1, 1), agent="defi")
        assert merge_findings(a, b).description == "same"

    def test_disjoint_lines_stay_separate(self):
        findings = [_finding(lines=(1, 2)), _finding(lines=(5, 6), agent="defi")]
        assert len(deduplicate(findings)) == 2

    def test_bridging_finding_joins_entries_kept_apart(self):
        chain = [
            _finding(lines=(1, 2), agent="security"),
            _finding(lines=(5, 6), agent="defi"),
            _finding(lines=(2, 5), agent="economics"),
        ]
        for ordering in (chain, [chain[2], chain[0], chain[1]], [chain[1], chain[0], chain[2]]):
            result = deduplicate(ordering)
            assert len(result) == 1
            assert (result[0].line_start, result[0].line_end) == (1, 6)
            assert set(result[0].detected_by) == {"security", "defi", "economics"}

    def test_lines_and_no_lines_stay_separate(self):
        findings = [_finding(lines=(3, 4)), _finding(agent="defi")]
        assert len(deduplicate(findings)) == 2

    def test_lineless_findings_match_by_name(self):
        findings = [
            _finding(name="Oracle manipulation", category="oracle"),
            _finding(name="oracle Manipulation ", category="oracle", agent="defi"),
            _finding(name="Oracle manipulation", category="price", agent="economics"),
        ]
        result = deduplicate(findings)
        assert len(result) == 2
        assert result[0].detected_by == ("security", "defi")

    def test_different_categories_never_merge(self):
        findings = [_finding(lines=(1, 5)), _finding(category="access-control", lines=(1, 5))]
        assert len(deduplicate(findings)) == 2


class TestScoring:

    def setup_method(self):
        self.aggregator = Aggregator()

    def test_threshold_keeps_most_confident_when_all_low(self):
        low = [_finding(confidence=0.3, lines=(1, 1)), _finding(confidence=0.5, lines=(9, 9))]
        kept = self.aggregator.apply_threshold(low)
        assert len(kept) == 1
        assert kept[0].confidence == 0.5
        assert self.aggregator.apply_threshold([]) == []

    def test_weighted_score(self):
        results = [_ok("security", 90), _ok("quality", 70)]
        assert self.aggregator.weighted_score(results) == pytest.approx(146 / 1.8)
        assert self.aggregator.weighted_score([]) == 50.0

    def test_unknown_agent_weighs_one(self):
        assert self.aggregator.weighted_score([_ok("custom", 40), _ok("security", 80)]) == 60.0

    def test_penalty_scales_with_confidence(self):
        findings = [
            _finding(severity=Severity.CRITICAL, confidence=1.0),
            _finding(severity=Severity.LOW, confidence=0.5),
        ]
        assert Aggregator.severity_penalty(findings) == pytest.approx(26.5)

    @pytest.mark.parametrize("score, expected", [
        (100, RiskLevel.LOW), (80, RiskLevel.LOW), (79, RiskLevel.MEDIUM),
        (60, RiskLevel.MEDIUM), (59, RiskLevel.HIGH), (0, RiskLevel.HIGH),
    ])
    def test_risk_bands(self, score, expected):
        assert self.aggregator.risk_level(score, []) == expected

    def test_any_critical_finding_is_critical_risk(self):
        assert self.aggregator.risk_level(95, [_finding(severity=Severity.CRITICAL)]) == RiskLevel.CRITICAL


class TestAggregate:

    def setup_method(self):
        self.aggregator = Aggregator()

    def test_report_from_two_agents(self):
        finding = _finding(name="Fee rounding", category="arithmetic", severity=Severity.MEDIUM, confidence=0.75)
        report = self.aggregator.aggregate([_ok("security", 90, [finding]), _ok("quality", 70)], META)
        # 81.11 base minus 6.0 penalty
        assert report.overall_score == 75
        assert report.risk_level == RiskLevel.MEDIUM
        assert report.metadata.agents_used == ("security", "quality")
        assert report.metadata.failed_agents == ()
        assert not report.metadata.partial
        assert report.summary.startswith("Multi-agent analysis completed with 2 specialized agents.")

    def test_score_is_clamped(self):
        findings = [_finding(severity=Severity.CRITICAL, confidence=1.0, lines=(n, n)) for n in range(1, 10, 2)]
        report = self.aggregator.aggregate([_ok("security", 20, findings)], META)
        assert report.overall_score == 0
        assert report.risk_level == RiskLevel.CRITICAL

    def test_findings_sorted_by_severity_then_confidence(self):
        findings = [
            _finding(name="a", category="x", severity=Severity.LOW, confidence=0.9),
            _finding(name="b", category="y", severity=Severity.HIGH, confidence=0.8),
            _finding(name="c", category="z", severity=Severity.HIGH, confidence=0.95),
        ]
        report = self.aggregator.aggregate([_ok("security", 90, findings)], META)
        assert [f.name for f in report.vulnerabilities] == ["c", "b", "a"]

    def test_partial_when_some_agents_failed(self):
        results = [
            _ok("security", 85, summary="looks fine"),
            AgentResult.failed("mev", FailureKind.TIMEOUT, "slow"),
        ]
        report = self.aggregator.aggregate(results, META)
        assert report.metadata.partial
        assert report.metadata.failed_agents == ("mev",)
        assert report.metadata.agents_used == ("security", "mev")
        assert "Incomplete: mev did not finish." in report.summary
        assert "Agent insights: security: looks fine" in report.summary

    def test_nothing_succeeded_raises(self):
        with pytest.raises(AggregationError):
            self.aggregator.aggregate([AgentResult.failed("security", FailureKind.EXECUTION_ERROR, "boom")], META)
        with pytest.raises(AggregationError):
            self.aggregator.aggregate([], META)

    def test_recommendations_follow_agent_priority(self):
        results = [
            _ok("quality", 80, recommendations=("add natspec", "use events")),
            _ok("security", 80, recommendations=("use events", "add reentrancy guard")),
        ]
        report = self.aggregator.aggregate(results, META)
        assert report.recommendations == ("use events", "add reentrancy guard", "add natspec")

    def test_gas_and_code_quality_merge(self):
        note = GasOptimization(description="cache array length")
        results = [
            _ok("gasOptimization", 80, gas_optimizations=(note,), code_quality=CodeQuality(80, ("a",), ("s",))),
            _ok("quality", 80, gas_optimizations=(note,), code_quality=CodeQuality(60, ("a", "b"))),
        ]
        report = self.aggregator.aggregate(results, META)
        assert report.gas_optimizations == (note,)
        assert report.code_quality.score == 70
        assert report.code_quality.issues == ("a", "b")
        assert report.code_quality.strengths == ("s",)

    def test_code_quality_defaults_when_nobody_reports(self):
        report = self.aggregator.aggregate([_ok("security", 90)], META)
        assert report.code_quality.score == 70
