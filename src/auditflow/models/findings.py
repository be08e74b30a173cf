from enum import Enum
from dataclasses import dataclass, field, replace
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime, UTC


class Severity(Enum):
    """severity classification, ordered low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Any, default: "Severity" = None) -> "Severity":
        """lenient parse of model output ("High", "informational", ...)"""
        if isinstance(value, Severity):
            return value
        text = str(value or "").strip().lower()
        if text in ("info", "informational", "note", "gas"):
            return cls.LOW
        for member in cls:
            if member.value == text:
                return member
        return default or cls.MEDIUM


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class RiskLevel(Enum):
    """report risk classification"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AnalysisMode(Enum):
    QUICK = "quick"
    COMPREHENSIVE = "comprehensive"


class AnalysisStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ComplexityClass(Enum):
    """rough contract complexity bucket"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FailureKind(Enum):
    TIMEOUT = "timeout"
    EXECUTION_ERROR = "execution_error"


@dataclass(frozen=True)
class AnalysisRequest:
    """immutable analysis submission"""
    contract_code: str
    chain: str = "ethereum"
    agents: Tuple[str, ...] = ()
    analysis_mode: AnalysisMode = AnalysisMode.COMPREHENSIVE
    contract_address: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AnalysisRequest":
        """wire form {contractCode, chain, agents?, analysisMode?, contractAddress?}; raises RequestValidationError"""
        from auditflow.utils.validation import parse_request
        return parse_request(payload)


@dataclass(frozen=True)
class ContractCharacteristics:
    is_defi: bool = False
    is_cross_chain: bool = False
    has_mev_risk: bool = False
    has_governance: bool = False
    is_upgradeable: bool = False
    has_oracles: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "isDeFi": self.is_defi,
            "isCrossChain": self.is_cross_chain,
            "hasMEVRisk": self.has_mev_risk,
            "hasGovernance": self.has_governance,
            "isUpgradeable": self.is_upgradeable,
            "hasOracles": self.has_oracles,
        }


@dataclass(frozen=True)
class ContractInfo:
    """read-only contract summary shared by every agent of one request"""
    name: str
    source: str
    chain: str = "ethereum"
    analysis_mode: AnalysisMode = AnalysisMode.COMPREHENSIVE
    complexity: ComplexityClass = ComplexityClass.LOW
    cyclomatic_complexity: int = 1
    size_bytes: int = 0
    line_count: int = 0
    code_lines: int = 0
    comment_lines: int = 0
    function_count: int = 0
    modifier_count: int = 0
    event_count: int = 0
    functions: Tuple[str, ...] = ()
    characteristics: ContractCharacteristics = field(default_factory=ContractCharacteristics)
    contract_address: Optional[str] = None

    def metrics(self) -> Dict[str, int]:
        return {
            "totalLines": self.line_count,
            "codeLines": self.code_lines,
            "commentLines": self.comment_lines,
            "functionCount": self.function_count,
            "modifierCount": self.modifier_count,
            "eventCount": self.event_count,
            "size": self.size_bytes,
        }

    def __repr__(self) -> str:
        return f"ContractInfo({self.name}, complexity={self.complexity.value}, lines={self.line_count})"


@dataclass(frozen=True)
class Finding:
    """vulnerability reported by one agent, or the merge of equivalent ones"""
    name: str
    category: str
    severity: Severity
    description: str = ""
    remediation: str = ""
    confidence: float = 0.5
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    detected_by: Tuple[str, ...] = ()

    @property
    def has_lines(self) -> bool:
        return self.line_start is not None

    def overlaps(self, other: "Finding") -> bool:
        if not self.has_lines or not other.has_lines:
            return False
        return self.line_start <= other.line_end and other.line_start <= self.line_end

    def affected_lines(self) -> List[int]:
        if not self.has_lines:
            return []
        return list(range(self.line_start, self.line_end + 1))

    def with_agent(self, agent_id: str) -> "Finding":
        if agent_id in self.detected_by:
            return self
        return replace(self, detected_by=self.detected_by + (agent_id,))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "severity": self.severity.label,
            "description": self.description,
            "remediation": self.remediation,
            "confidence": round(self.confidence, 3),
            "affectedLines": self.affected_lines(),
            "detectedBy": list(self.detected_by),
        }

    def __repr__(self) -> str:
        return f"Finding([{self.severity.value.upper()}] {self.name})"


@dataclass(frozen=True)
class GasOptimization:
    description: str
    affected_lines: Tuple[int, ...] = ()
    potential_savings: str = ""
    implementation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "affectedLines": list(self.affected_lines),
            "potentialSavings": self.potential_savings,
            "implementation": self.implementation,
        }


@dataclass(frozen=True)
class CodeQuality:
    score: int = 70
    issues: Tuple[str, ...] = ()
    strengths: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "issues": list(self.issues),
            "strengths": list(self.strengths),
        }


@dataclass
class AgentTask:
    """one agent run, owned by the executor driving it"""
    agent_id: str
    contract: ContractInfo
    deadline: float
    attempt: int = 0


@dataclass(frozen=True)
class AgentResult:
    """settled outcome of one agent task"""
    agent_id: str
    success: bool
    findings: Tuple[Finding, ...] = ()
    score: Optional[int] = None
    summary: str = ""
    recommendations: Tuple[str, ...] = ()
    gas_optimizations: Tuple[GasOptimization, ...] = ()
    code_quality: Optional[CodeQuality] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    attempts: int = 1
    execution_time: float = 0.0

    @classmethod
    def failed(cls, agent_id: str, kind: FailureKind, error: str, attempts: int = 1, execution_time: float = 0.0) -> "AgentResult":
        return cls(
            agent_id=agent_id,
            success=False,
            failure=kind,
            error=error,
            attempts=attempts,
            execution_time=execution_time,
        )

    def __repr__(self) -> str:
        if self.success:
            return f"AgentResult({self.agent_id}, ok, {len(self.findings)} findings, score={self.score})"
        return f"AgentResult({self.agent_id}, {self.failure.value})"


@dataclass(frozen=True)
class ReportMetadata:
    analysis_id: str
    analysis_mode: AnalysisMode
    execution_time: int = 0
    agents_used: Tuple[str, ...] = ()
    failed_agents: Tuple[str, ...] = ()
    from_cache: bool = False
    partial: bool = False
    error: bool = False
    chain: str = "ethereum"
    contract_name: str = "Unknown"
    contract_address: Optional[str] = None
    fingerprint: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysisId": self.analysis_id,
            "analysisMode": self.analysis_mode.value,
            "executionTime": self.execution_time,
            "agentsUsed": list(self.agents_used),
            "failedAgents": list(self.failed_agents),
            "fromCache": self.from_cache,
            "partial": self.partial,
            "error": self.error,
            "chain": self.chain,
            "contractName": self.contract_name,
            "contractAddress": self.contract_address,
            "fingerprint": self.fingerprint,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AnalysisReport:
    """aggregated result of one request, the unit cached and the unit logged"""
    overall_score: int
    risk_level: RiskLevel
    metadata: ReportMetadata
    vulnerabilities: Tuple[Finding, ...] = ()
    summary: str = ""
    recommendations: Tuple[str, ...] = ()
    gas_optimizations: Tuple[GasOptimization, ...] = ()
    code_quality: CodeQuality = field(default_factory=CodeQuality)
    status: AnalysisStatus = AnalysisStatus.COMPLETED
    error_message: Optional[str] = None

    @property
    def analysis_id(self) -> str:
        return self.metadata.analysis_id

    def severity_counts(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.vulnerabilities:
            counts[finding.severity.value] += 1
        return counts

    def as_cached(self) -> "AnalysisReport":
        """copy flagged as served from cache"""
        return replace(self, metadata=replace(self.metadata, from_cache=True))

    @classmethod
    def failure(
        cls,
        analysis_id: str,
        analysis_mode: AnalysisMode,
        error_message: str,
        agents_used: Tuple[str, ...] = (),
        failed_agents: Tuple[str, ...] = (),
        execution_time: int = 0,
        chain: str = "ethereum",
        contract_name: str = "Unknown",
        contract_address: Optional[str] = None,
        fingerprint: str = "",
    ) -> "AnalysisReport":
        """empty zero-score report with the same shape as a successful one"""
        return cls(
            overall_score=0,
            risk_level=RiskLevel.HIGH,
            metadata=ReportMetadata(
                analysis_id=analysis_id,
                analysis_mode=analysis_mode,
                execution_time=execution_time,
                agents_used=agents_used,
                failed_agents=failed_agents,
                error=True,
                chain=chain,
                contract_name=contract_name,
                contract_address=contract_address,
                fingerprint=fingerprint,
            ),
            summary=f"Analysis failed: {error_message}",
            code_quality=CodeQuality(score=0),
            status=AnalysisStatus.FAILED,
            error_message=error_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vulnerabilities": [f.to_dict() for f in self.vulnerabilities],
            "overallScore": self.overall_score,
            "riskLevel": self.risk_level.value,
            "summary": self.summary,
            "recommendations": list(self.recommendations),
            "gasOptimizations": [g.to_dict() for g in self.gas_optimizations],
            "codeQuality": self.code_quality.to_dict(),
            "status": self.status.value,
            "error": self.error_message,
            "metadata": self.metadata.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        import json
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def __repr__(self) -> str:
        return f"AnalysisReport({self.metadata.analysis_id}, score={self.overall_score}, {len(self.vulnerabilities)} findings)"
