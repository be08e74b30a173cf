"""auditflow: multi-agent smart contract analysis with a tamper-evident audit ledger"""

__version__ = "0.1.0"

from auditflow.agent.orchestrator import AnalysisOrchestrator, InvalidAgentError, TooManyAgentsError
from auditflow.ledger import AuditLedger, LedgerQuery
from auditflow.models import AnalysisReport, AnalysisRequest

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisReport",
    "AnalysisRequest",
    "AuditLedger",
    "InvalidAgentError",
    "LedgerQuery",
    "TooManyAgentsError",
]
