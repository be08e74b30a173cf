"""offline backend answering agent prompts from pattern heuristics, in the same json contract a model is asked to follow"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

from auditflow.cal.heuristics import SourceModel, code_quality, default_score, gas_notes, run_rules
from auditflow.models.findings import AnalysisMode
from auditflow.utils.llm_backend.base import InferenceBackend, InferenceError, LLMResponse

logger = logging.getLogger(__name__)


def _risk_label(score: int) -> str:
    if score >= 80:
        return "Low"
    if score >= 60:
        return "Medium"
    if score >= 40:
        return "High"
    return "Critical"


class HeuristicBackend(InferenceBackend):
    """deterministic stand-in for the inference service"""

    name = "heuristic"

    def __init__(self, model: str = "heuristic-v1"):
        super().__init__(model)

    async def agenerate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None,
        contract: Any = None,
        **params: Any
    ) -> LLMResponse:
        if contract is None or not getattr(contract, "source", None):
            raise InferenceError("heuristic backend needs the contract source", retryable=False)

        t0 = time.perf_counter()
        agent_id = agent_id or "security"
        model = SourceModel(contract.source)
        quick = getattr(contract, "analysis_mode", None) == AnalysisMode.QUICK

        findings = run_rules(agent_id, model, quick=quick)
        payload = {
            "vulnerabilities": [f.to_payload() for f in findings],
            "recommendations": list(dict.fromkeys(f.recommendation for f in findings)),
        }

        if agent_id == "quality":
            score, issues, strengths = code_quality(model)
            notes = gas_notes(model)
            payload.update({
                "overallScore": score,
                "summary": f"Code quality scored {score}/100 with {len(issues)} issue(s) and {len(strengths)} strength(s).",
                "codeQuality": {"score": score, "issues": issues, "strengths": strengths},
                "gasOptimizations": [n.to_payload() for n in notes],
                "recommendations": issues[:5],
            })
        elif agent_id == "gasOptimization":
            notes = gas_notes(model)
            score = max(60, 100 - 5 * len(notes))
            payload.update({
                "overallScore": score,
                "summary": f"Identified {len(notes)} gas optimization opportunit{'y' if len(notes) == 1 else 'ies'}.",
                "gasOptimizations": [n.to_payload() for n in notes],
                "recommendations": [n.implementation for n in notes],
            })
        else:
            score = default_score(findings)
            if findings:
                summary = f"{agent_id} heuristics flagged {len(findings)} potential issue(s)."
            else:
                summary = f"No {agent_id} issues detected by pattern heuristics."
            payload.update({"overallScore": score, "summary": summary})

        payload["riskLevel"] = _risk_label(payload["overallScore"])
        text = json.dumps(payload)
        elapsed = (time.perf_counter() - t0) * 1000.0
        logger.debug(f"[heuristic] {agent_id}: {len(findings)} findings in {elapsed:.1f}ms")
        return LLMResponse(text=text, model=self.model, latency_ms=elapsed, raw=payload)

    def is_available(self) -> bool:
        return True
