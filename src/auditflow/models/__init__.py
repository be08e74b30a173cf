from .findings import (
    Severity,
    RiskLevel,
    AnalysisMode,
    AnalysisStatus,
    ComplexityClass,
    FailureKind,
    AnalysisRequest,
    ContractCharacteristics,
    ContractInfo,
    Finding,
    GasOptimization,
    CodeQuality,
    AgentTask,
    AgentResult,
    ReportMetadata,
    AnalysisReport,
)

__all__ = [
    'Severity',
    'RiskLevel',
    'AnalysisMode',
    'AnalysisStatus',
    'ComplexityClass',
    'FailureKind',
    'AnalysisRequest',
    'ContractCharacteristics',
    'ContractInfo',
    'Finding',
    'GasOptimization',
    'CodeQuality',
    'AgentTask',
    'AgentResult',
    'ReportMetadata',
    'AnalysisReport',
]
