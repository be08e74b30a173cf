"""analysis agents, executor pool, aggregation and orchestration"""

from .analyzers import (
    ANALYZERS,
    SUPPORTED_AGENTS,
    Analyzer,
    available_agents,
    create_analyzer,
)
from .executor import AgentExecutorPool, AgentExecutionError, AgentTimeoutError
from .aggregator import Aggregator, AggregationError
from .orchestrator import (
    AnalysisOrchestrator,
    AnalysisState,
    InvalidAgentError,
    PipelineState,
    TooManyAgentsError,
    compute_fingerprint,
)

__all__ = [
    "ANALYZERS", "SUPPORTED_AGENTS", "Analyzer", "available_agents", "create_analyzer",
    "AgentExecutorPool", "AgentExecutionError", "AgentTimeoutError",
    "Aggregator", "AggregationError",
    "AnalysisOrchestrator", "AnalysisState", "InvalidAgentError", "PipelineState",
    "TooManyAgentsError", "compute_fingerprint",
]
