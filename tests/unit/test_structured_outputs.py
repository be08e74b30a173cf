"""tests for agent response parsing: json extraction, schema normalization, fallback"""

import json

import pytest

from auditflow.agent.analyzers import SecurityAnalyzer
from auditflow.agent.response_schema import AgentResponse, clamp_score, normalize_confidence
from auditflow.models.findings import Severity
from auditflow.utils.json_sanitizer import load_json_object, repair_json, safe_json_loads
from auditflow.utils.llm_backend import HeuristicBackend


def test_extracts_json_from_code_fence():
    text = 'Here is my analysis:\n```json\n{"overallScore": 70}\n```\nThanks.'
    assert safe_json_loads(text) == {"overallScore": 70}


def test_extracts_json_from_surrounding_prose():
    assert safe_json_loads('Result: {"summary": "ok"} -- end') == {"summary": "ok"}


def test_repairs_comments_and_trailing_commas():
    text = '{\n  "summary": "see https://example.com", // note\n  "recommendations": ["a", "b",],\n}'
    assert repair_json('{"a": 1,}') == '{"a": 1}'
    parsed = safe_json_loads(text)
    assert parsed["summary"] == "see https://example.com"
    assert parsed["recommendations"] == ["a", "b"]


def test_load_json_object_rejects_arrays():
    with pytest.raises(ValueError):
        load_json_object("[1, 2, 3]")
    with pytest.raises(ValueError):
        load_json_object("no json at all")
    assert load_json_object({"already": "parsed"}) == {"already": "parsed"}


@pytest.mark.parametrize("value, expected", [
    ("High", 0.9), ("medium", 0.6), ("LOW", 0.3),
    (0.42, 0.42), (85, 0.85), ("70%", 0.7), (-3, 0.0), (None, 0.5), ("unsure", 0.5),
])
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == pytest.approx(expected)


def test_clamp_score():
    assert clamp_score(120) == 100
    assert clamp_score(-5) == 0
    assert clamp_score("77.6") == 78
    assert clamp_score("n/a") == 50


def test_agent_response_normalizes_model_output():
    parsed = AgentResponse.model_validate({
        "vulnerabilities": [
            {
                "name": "Reentrancy",
                "severity": "high",
                "category": "Unchecked Calls",
                "affectedLines": [14, "12", 0, "x", 14],
                "confidence": "High",
                "impact": "Funds drained",
            },
            "not an object",
        ],
        "overallScore": "140",
        "summary": "",
        "gasOptimizations": [{"description": ""}, {"description": "cache length", "affectedLines": 3}],
        "codeQuality": "good",
    })
    assert len(parsed.vulnerabilities) == 1
    vuln = parsed.vulnerabilities[0]
    assert vuln.severity == Severity.HIGH
    assert vuln.category == "unchecked-calls"
    assert vuln.affected_lines == [12, 14]
    assert vuln.confidence == 0.9
    assert parsed.overall_score == 100
    assert parsed.summary == "Analysis completed"
    assert [g.description for g in parsed.gas_optimizations] == ["cache length"]
    assert parsed.code_quality is None

    finding = vuln.to_finding("security")
    assert (finding.line_start, finding.line_end) == (12, 14)
    assert "Impact: Funds drained" in finding.description
    assert finding.detected_by == ("security",)


def test_analyzer_parse_response_builds_agent_result():
    analyzer = SecurityAnalyzer(HeuristicBackend())
    text = json.dumps({
        "vulnerabilities": [{"name": "tx.origin auth", "severity": "Medium", "category": "tx-origin",
                             "affectedLines": [5], "confidence": 0.8}],
        "overallScore": 72,
        "summary": "one issue",
        "recommendations": ["Use msg.sender"],
    })
    result = analyzer.parse_response(text)
    assert result.success
    assert result.score == 72
    assert result.findings[0].severity == Severity.MEDIUM
    assert result.recommendations == ("Use msg.sender",)


def test_unparseable_response_falls_back_to_neutral_result():
    analyzer = SecurityAnalyzer(HeuristicBackend())
    result = analyzer.parse_response("I could not analyze this contract, sorry.")
    assert result.success
    assert result.score == 50
    assert result.findings == ()
    assert "Manual review recommended" in result.recommendations
