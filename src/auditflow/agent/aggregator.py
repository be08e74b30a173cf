"""
Result Aggregator

Merges the settled AgentResults of one request into a single AnalysisReport:
- deduplicates equivalent findings across agents
- applies the confidence threshold
- computes the weighted overall score and the severity penalty
- maps the score to a risk level
- merges recommendations, gas notes and code-quality output
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from auditflow.agent.analyzers import agent_priority
from auditflow.models.findings import (
    AgentResult,
    AnalysisReport,
    CodeQuality,
    Finding,
    GasOptimization,
    ReportMetadata,
    RiskLevel,
    Severity,
)

logger = logging.getLogger(__name__)

AGENT_WEIGHTS: Dict[str, float] = {
    "security": 1.0,
    "defi": 0.95,
    "economics": 0.9,
    "mev": 0.9,
    "crossChain": 0.85,
    "governance": 0.85,
    "quality": 0.8,
    "gasOptimization": 0.7,
}

SEVERITY_PENALTY = {
    Severity.CRITICAL: 25.0,
    Severity.HIGH: 15.0,
    Severity.MEDIUM: 8.0,
    Severity.LOW: 3.0,
}

DEFAULT_CODE_QUALITY = 70
DESCRIPTION_SEPARATOR = "\n\n"


class AggregationError(Exception):
    """nothing to aggregate"""


def _same_issue(a: Finding, b: Finding) -> bool:
    if a.category != b.category:
        return False
    if a.has_lines and b.has_lines:
        return a.overlaps(b)
    if a.has_lines or b.has_lines:
        return False
    return a.name.strip().lower() == b.name.strip().lower()


def merge_findings(a: Finding, b: Finding) -> Finding:
    """merge two reports of the same issue into a new record"""
    primary = a if (a.severity, a.confidence) >= (b.severity, b.confidence) else b
    first, second = (a, b) if a.confidence >= b.confidence else (b, a)

    parts: List[str] = []
    for text in (first.description, second.description):
        for part in text.split(DESCRIPTION_SEPARATOR):
            part = part.strip()
            if part and part not in parts:
                parts.append(part)

    detected_by = list(a.detected_by)
    for agent_id in b.detected_by:
        if agent_id not in detected_by:
            detected_by.append(agent_id)

    line_start, line_end = primary.line_start, primary.line_end
    if a.has_lines and b.has_lines:
        line_start = min(a.line_start, b.line_start)
        line_end = max(a.line_end, b.line_end)

    return replace(
        primary,
        description=DESCRIPTION_SEPARATOR.join(parts),
        confidence=max(a.confidence, b.confidence),
        line_start=line_start,
        line_end=line_end,
        detected_by=tuple(detected_by),
    )


def _match(merged: List[Finding], finding: Finding, skip: Optional[int] = None) -> Optional[int]:
    for index, existing in enumerate(merged):
        if index != skip and _same_issue(existing, finding):
            return index
    return None


def deduplicate(findings: Iterable[Finding]) -> List[Finding]:
    """
    Merge reports of the same issue, first-seen order preserved.

    A merge can widen an entry's line range until it overlaps an entry kept
    separately so far, so the merged entry is matched again until nothing
    else joins it.
    """
    merged: List[Finding] = []
    for finding in findings:
        index = _match(merged, finding)
        if index is None:
            merged.append(finding)
            continue
        merged[index] = merge_findings(merged[index], finding)
        other = _match(merged, merged[index], skip=index)
        while other is not None:
            keep, drop = min(index, other), max(index, other)
            merged[keep] = merge_findings(merged[keep], merged[drop])
            del merged[drop]
            index = keep
            other = _match(merged, merged[index], skip=index)
    return merged


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


class Aggregator:
    """combines per-agent results into one report"""

    def __init__(
        self,
        confidence_threshold: float = 0.7,
        high_threshold: int = 80,
        medium_threshold: int = 60,
        weights: Optional[Dict[str, float]] = None,
    ):
        self.confidence_threshold = confidence_threshold
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold
        self.weights = dict(AGENT_WEIGHTS)
        if weights:
            self.weights.update(weights)

    def apply_threshold(self, findings: Sequence[Finding]) -> List[Finding]:
        """drop low-confidence findings, but never drop every one of them"""
        retained = [f for f in findings if f.confidence >= self.confidence_threshold]
        if not retained and findings:
            retained = [max(findings, key=lambda f: f.confidence)]
        return retained

    def weighted_score(self, results: Sequence[AgentResult]) -> float:
        total = 0.0
        weight_sum = 0.0
        for result in results:
            if result.score is None:
                continue
            weight = self.weights.get(result.agent_id, 1.0)
            total += result.score * weight
            weight_sum += weight
        return total / weight_sum if weight_sum else 50.0

    @staticmethod
    def severity_penalty(findings: Iterable[Finding]) -> float:
        return sum(SEVERITY_PENALTY[f.severity] * f.confidence for f in findings)

    def risk_level(self, score: int, findings: Iterable[Finding]) -> RiskLevel:
        if any(f.severity == Severity.CRITICAL for f in findings):
            return RiskLevel.CRITICAL
        if score >= self.high_threshold:
            return RiskLevel.LOW
        if score >= self.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    def aggregate(self, results: Sequence[AgentResult], metadata: ReportMetadata) -> AnalysisReport:
        successful = [r for r in results if r.success]
        failed = [r.agent_id for r in results if not r.success]
        if not successful:
            raise AggregationError(f"no successful agent results ({len(results)} agents failed)")

        findings = deduplicate(f for r in successful for f in r.findings)
        retained = self.apply_threshold(findings)
        retained.sort(key=lambda f: (f.severity.rank, f.confidence), reverse=True)

        base = self.weighted_score(successful)
        penalty = self.severity_penalty(retained)
        score = int(round(max(0.0, min(100.0, base - penalty))))
        risk = self.risk_level(score, retained)

        logger.info(
            f"[aggregator] {len(successful)} results, {len(findings)} unique findings, "
            f"{len(retained)} retained, score {score} ({risk.value})",
            extra={"base_score": round(base, 2), "penalty": round(penalty, 2), "failed_agents": failed},
        )

        return AnalysisReport(
            overall_score=score,
            risk_level=risk,
            metadata=replace(
                metadata,
                agents_used=tuple(r.agent_id for r in results),
                failed_agents=tuple(failed),
                partial=bool(failed),
                error=False,
            ),
            vulnerabilities=tuple(retained),
            summary=self.summarize(successful, retained, failed),
            recommendations=tuple(self.merge_recommendations(successful)),
            gas_optimizations=tuple(self.merge_gas(successful)),
            code_quality=self.merge_code_quality(successful),
        )

    def merge_recommendations(self, results: Sequence[AgentResult]) -> List[str]:
        # higher priority agents first; sorted() is stable for ties
        ordered = sorted(results, key=lambda r: agent_priority(r.agent_id), reverse=True)
        return _unique(text for r in ordered for text in r.recommendations)

    @staticmethod
    def merge_gas(results: Sequence[AgentResult]) -> List[GasOptimization]:
        seen = set()
        merged = []
        for result in results:
            for note in result.gas_optimizations:
                if note.description in seen:
                    continue
                seen.add(note.description)
                merged.append(note)
        return merged

    @staticmethod
    def merge_code_quality(results: Sequence[AgentResult]) -> CodeQuality:
        reported = [r.code_quality for r in results if r.code_quality is not None]
        if not reported:
            return CodeQuality(score=DEFAULT_CODE_QUALITY)
        return CodeQuality(
            score=int(round(sum(q.score for q in reported) / len(reported))),
            issues=tuple(_unique(i for q in reported for i in q.issues)),
            strengths=tuple(_unique(s for q in reported for s in q.strengths)),
        )

    @staticmethod
    def summarize(results: Sequence[AgentResult], findings: Sequence[Finding], failed: Sequence[str]) -> str:
        critical = sum(1 for f in findings if f.severity == Severity.CRITICAL)
        high = sum(1 for f in findings if f.severity == Severity.HIGH)

        summary = f"Multi-agent analysis completed with {len(results)} specialized agents. "
        if not findings:
            summary += "No significant vulnerabilities detected across all analysis dimensions."
        else:
            summary += f"Identified {len(findings)} potential issues"
            if critical:
                summary += f" including {critical} critical"
            if high:
                summary += f"{' and' if critical else ' including'} {high} high-severity"
            summary += "."
        if failed:
            summary += f" Incomplete: {', '.join(failed)} did not finish."

        insights = " ".join(f"{r.agent_id}: {r.summary}" for r in results if r.summary)
        if insights:
            summary += f" Agent insights: {insights}"
        return summary
