"""logging types. LogCategory names the raw json subdirectories, LogEntry is one event row."""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, Optional


class LogCategory(Enum):
    """log categories for organizing raw json files"""
    AGENT_CALL = "agent_calls"
    ANALYSIS = "analyses"
    ERROR = "errors"


@dataclass
class LogEntry:
    """structured log entry for database storage"""
    timestamp: str
    category: str
    event_type: str
    agent_id: Optional[str]
    contract_name: Optional[str]
    analysis_id: Optional[str]
    data: Dict[str, Any]
    metadata: Dict[str, Any]
