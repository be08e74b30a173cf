"""structured agent response schemas. lenient on input (model output is messy), strict on what comes out."""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auditflow.models.findings import (
    CodeQuality,
    Finding,
    GasOptimization,
    Severity,
)

MAX_SUMMARY = 1000
MAX_TEXT = 2000
MAX_ITEM = 500
MAX_ITEMS = 50

CONFIDENCE_LABELS = {"high": 0.9, "medium": 0.6, "low": 0.3}


def normalize_confidence(value: Any, default: float = 0.5) -> float:
    """labels map High 0.9 / Medium 0.6 / Low 0.3; numbers clamp to [0, 1], percentages are scaled"""
    if value is None:
        return default
    if isinstance(value, str):
        label = value.strip().lower()
        if label in CONFIDENCE_LABELS:
            return CONFIDENCE_LABELS[label]
        try:
            value = float(label.rstrip("%"))
        except ValueError:
            return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number > 1.0:
        number = number / 100.0
    return max(0.0, min(1.0, number))


def clamp_score(value: Any, default: int = 50) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(round(max(0.0, min(100.0, number))))


def _trim(value: Any, limit: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:limit]


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value[:MAX_ITEMS]:
        text = _trim(item, MAX_ITEM)
        if text:
            items.append(text)
    return items


def _line_numbers(value: Any) -> List[int]:
    if value is None:
        return []
    if isinstance(value, (int, float, str)):
        value = [value]
    lines = []
    for item in value if isinstance(value, (list, tuple)) else []:
        try:
            number = int(item)
        except (TypeError, ValueError):
            continue
        if number > 0:
            lines.append(number)
    return sorted(set(lines))


class VulnerabilityPayload(BaseModel):
    """one vulnerability as reported by an agent"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field("Unnamed issue", description="Short vulnerability name.")
    description: str = ""
    severity: Severity = Severity.MEDIUM
    category: str = "other"
    affected_lines: List[int] = Field(default_factory=list, alias="affectedLines")
    recommendation: str = ""
    impact: str = ""
    confidence: float = 0.5

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _trim(value, MAX_ITEM) or "Unnamed issue"

    @field_validator("description", "recommendation", "impact", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _trim(value, MAX_TEXT)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> str:
        text = _trim(value, 64).lower().replace("_", "-").replace(" ", "-")
        return text or "other"

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @field_validator("affected_lines", mode="before")
    @classmethod
    def _lines(cls, value: Any) -> List[int]:
        return _line_numbers(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return normalize_confidence(value)

    def to_finding(self, agent_id: str) -> Finding:
        start = end = None
        if self.affected_lines:
            start, end = self.affected_lines[0], self.affected_lines[-1]
        description = self.description
        if self.impact and self.impact not in description:
            description = f"{description} Impact: {self.impact}".strip()
        return Finding(
            name=self.name,
            category=self.category,
            severity=self.severity,
            description=description,
            remediation=self.recommendation,
            confidence=self.confidence,
            line_start=start,
            line_end=end,
            detected_by=(agent_id,),
        )


class GasOptimizationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    description: str
    affected_lines: List[int] = Field(default_factory=list, alias="affectedLines")
    potential_savings: str = Field("", alias="potentialSavings")
    implementation: str = ""

    @field_validator("description", "potential_savings", "implementation", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _trim(value, MAX_ITEM)

    @field_validator("affected_lines", mode="before")
    @classmethod
    def _lines(cls, value: Any) -> List[int]:
        return _line_numbers(value)

    def to_model(self) -> GasOptimization:
        return GasOptimization(
            description=self.description,
            affected_lines=tuple(self.affected_lines),
            potential_savings=self.potential_savings,
            implementation=self.implementation,
        )


class CodeQualityPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: int = 50
    issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> int:
        return clamp_score(value, 50)

    @field_validator("issues", "strengths", mode="before")
    @classmethod
    def _items(cls, value: Any) -> List[str]:
        return _string_list(value)

    def to_model(self) -> CodeQuality:
        return CodeQuality(score=self.score, issues=tuple(self.issues), strengths=tuple(self.strengths))


class AgentResponse(BaseModel):
    """the json object every agent prompt asks the model to return"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    vulnerabilities: List[VulnerabilityPayload] = Field(default_factory=list)
    overall_score: int = Field(50, alias="overallScore")
    risk_level: Optional[str] = Field(None, alias="riskLevel")
    summary: str = "Analysis completed"
    recommendations: List[str] = Field(default_factory=list)
    gas_optimizations: List[GasOptimizationPayload] = Field(default_factory=list, alias="gasOptimizations")
    code_quality: Optional[CodeQualityPayload] = Field(None, alias="codeQuality")

    @field_validator("vulnerabilities", mode="before")
    @classmethod
    def _vulnerabilities(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value[:MAX_ITEMS] if isinstance(item, dict)]

    @field_validator("gas_optimizations", mode="before")
    @classmethod
    def _gas(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value[:MAX_ITEMS] if isinstance(item, dict) and item.get("description")]

    @field_validator("code_quality", mode="before")
    @classmethod
    def _quality(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("overall_score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> int:
        return clamp_score(value, 50)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return _trim(value, 16) or None

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> str:
        return _trim(value, MAX_SUMMARY) or "Analysis completed"

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendations(cls, value: Any) -> List[str]:
        return _string_list(value)
