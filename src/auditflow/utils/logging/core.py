"""
Pipeline Event Logger

Dual-layer structured event log (raw JSON files + SQLite) for the
analysis pipeline.

The logger captures:
- agent calls (agent, attempt, outcome, timing)
- finished analyses (score, risk, agents, flags)
- pipeline errors (component, message, context)

It is separate from stdlib logging: records here are meant for later
querying, stdlib logging is for operators.
"""

import json
import logging
import sqlite3
import sys
import threading
from contextlib import closing
from pathlib import Path
from datetime import datetime, UTC
from typing import Dict, Any, Optional, List

from auditflow.config import PipelineConfig, config as default_config
from auditflow.models.findings import AnalysisReport
from auditflow.utils.correlation import CorrelationFilter, get_analysis_id
from auditflow.utils.logging.types import LogCategory, LogEntry


LOG_FORMAT = "%(asctime)s %(levelname)s [%(analysis_id)s] %(name)s: %(message)s"


def configure_logging(level: int = logging.INFO, stream=None) -> logging.Handler:
    """attach one stream handler with analysis-id correlation to the package logger"""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CorrelationFilter())

    package_logger = logging.getLogger("auditflow")
    for existing in list(package_logger.handlers):
        if getattr(existing, "_auditflow_handler", False):
            package_logger.removeHandler(existing)
    handler._auditflow_handler = True
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return handler


class PipelineLogger:
    """
    Dual-layer event log

    Usage:
        events = PipelineLogger(log_dir="/tmp/logs", to_sqlite=True)
        events.log_agent_call("security", "Vault", attempt=1, outcome="success", duration_seconds=1.2)
        events.log_analysis(report)
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        to_sqlite: Optional[bool] = None,
        settings: Optional[PipelineConfig] = None,
    ):
        settings = settings or default_config
        self.logs_dir = Path(log_dir) if log_dir else settings.LOGS_DIR
        self.raw_dir = self.logs_dir / "raw"
        self.db_path = self.logs_dir / "analytics.db"
        self.to_sqlite = settings.LOG_TO_SQLITE if to_sqlite is None else to_sqlite

        self._count_lock = threading.Lock()
        self._event_count = 0

        for category in LogCategory:
            (self.raw_dir / category.value).mkdir(parents=True, exist_ok=True)

        if self.to_sqlite:
            self._init_database()

    def _init_database(self):
        """Initialize SQLite database with tables"""
        with closing(sqlite3.connect(str(self.db_path))) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS agent_calls (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT,
                    agent_id TEXT NOT NULL,
                    contract_name TEXT,
                    attempt INTEGER,
                    outcome TEXT NOT NULL,
                    duration_seconds REAL,
                    error TEXT,
                    metadata TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS analyses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT NOT NULL,
                    contract_name TEXT,
                    status TEXT NOT NULL,
                    overall_score INTEGER,
                    risk_level TEXT,
                    findings INTEGER,
                    agents TEXT,
                    execution_ms INTEGER,
                    partial INTEGER,
                    error INTEGER,
                    metadata TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS pipeline_errors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT,
                    component TEXT NOT NULL,
                    error_type TEXT NOT NULL,
                    message TEXT,
                    metadata TEXT
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_agent_calls_agent ON agent_calls(agent_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_analyses_contract ON analyses(contract_name)")

            conn.commit()

    def _now(self) -> str:
        return datetime.now(UTC).isoformat()

    def _next_sequence(self) -> int:
        with self._count_lock:
            self._event_count += 1
            return self._event_count

    @property
    def event_count(self) -> int:
        with self._count_lock:
            return self._event_count

    def _save_json(self, category: LogCategory, filename: str, data: Dict[str, Any]):
        """Save raw JSON log file tagged with the analysis id"""
        analysis_id = get_analysis_id()
        if analysis_id and "analysis_id" not in data:
            data["analysis_id"] = analysis_id

        filepath = self.raw_dir / category.value / filename
        with open(filepath, 'w', encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _entry(self, category: LogCategory, event_type: str, data: Dict[str, Any],
               agent_id: Optional[str] = None, contract_name: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None) -> LogEntry:
        return LogEntry(
            timestamp=self._now(),
            category=category.value,
            event_type=event_type,
            agent_id=agent_id,
            contract_name=contract_name,
            analysis_id=get_analysis_id(),
            data=data,
            metadata=metadata or {},
        )

    def log_agent_call(
        self,
        agent_id: str,
        contract_name: str,
        attempt: int,
        outcome: str,
        duration_seconds: float = 0.0,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LogEntry:
        """
        Log one agent attempt

        Saves to:
        - JSON: raw/agent_calls/YYYY-MM-DD_<seq>_<agent>_a<attempt>.json
        - SQLite: agent_calls table
        """
        seq = self._next_sequence()
        entry = self._entry(
            LogCategory.AGENT_CALL,
            "agent_call",
            {"attempt": attempt, "outcome": outcome, "duration_seconds": duration_seconds, "error": error},
            agent_id=agent_id,
            contract_name=contract_name,
            metadata=metadata,
        )

        filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_{seq:06d}_{agent_id}_a{attempt}.json"
        self._save_json(LogCategory.AGENT_CALL, filename, {
            "timestamp": entry.timestamp,
            "agent_id": agent_id,
            "contract_name": contract_name,
            **entry.data,
            "metadata": entry.metadata,
        })

        if self.to_sqlite:
            with closing(sqlite3.connect(str(self.db_path))) as conn:
                conn.execute("""
                    INSERT INTO agent_calls
                    (timestamp, analysis_id, agent_id, contract_name, attempt, outcome, duration_seconds, error, metadata)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    entry.timestamp, entry.analysis_id, agent_id, contract_name, attempt, outcome,
                    duration_seconds, error, json.dumps(entry.metadata, default=str)
                ))
                conn.commit()
        return entry

    def log_analysis(self, report: AnalysisReport) -> LogEntry:
        """Log a finished analysis (completed or failed)"""
        seq = self._next_sequence()
        meta = report.metadata
        entry = self._entry(
            LogCategory.ANALYSIS,
            "analysis_" + report.status.value,
            report.to_dict(),
            contract_name=meta.contract_name,
        )

        filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_{seq:06d}_{meta.analysis_id}.json"
        self._save_json(LogCategory.ANALYSIS, filename, {
            "timestamp": entry.timestamp,
            "event_type": entry.event_type,
            "analysis_id": meta.analysis_id,
            "report": entry.data,
        })

        if self.to_sqlite:
            with closing(sqlite3.connect(str(self.db_path))) as conn:
                conn.execute("""
                    INSERT INTO analyses
                    (timestamp, analysis_id, contract_name, status, overall_score, risk_level, findings,
                     agents, execution_ms, partial, error, metadata)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    entry.timestamp, meta.analysis_id, meta.contract_name, report.status.value,
                    report.overall_score, report.risk_level.value, len(report.vulnerabilities),
                    ",".join(meta.agents_used), meta.execution_time, int(meta.partial), int(meta.error),
                    json.dumps({"fromCache": meta.from_cache, "failedAgents": list(meta.failed_agents)})
                ))
                conn.commit()
        return entry

    def log_error(
        self,
        component: str,
        error: BaseException,
        context: Optional[Dict[str, Any]] = None
    ) -> LogEntry:
        """Log a pipeline error with its context"""
        seq = self._next_sequence()
        entry = self._entry(
            LogCategory.ERROR,
            "error",
            {"component": component, "error_type": type(error).__name__, "message": str(error)},
            metadata=context,
        )

        filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_{seq:06d}_{component}.json"
        self._save_json(LogCategory.ERROR, filename, {
            "timestamp": entry.timestamp,
            **entry.data,
            "context": entry.metadata,
        })

        if self.to_sqlite:
            with closing(sqlite3.connect(str(self.db_path))) as conn:
                conn.execute("""
                    INSERT INTO pipeline_errors
                    (timestamp, analysis_id, component, error_type, message, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    entry.timestamp, entry.analysis_id, component, type(error).__name__, str(error),
                    json.dumps(entry.metadata, default=str)
                ))
                conn.commit()
        return entry

    def query_agent_calls(self, agent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read agent call rows back from SQLite"""
        if not self.to_sqlite:
            return []
        with closing(sqlite3.connect(str(self.db_path))) as conn:
            conn.row_factory = sqlite3.Row
            if agent_id:
                rows = conn.execute(
                    "SELECT * FROM agent_calls WHERE agent_id = ? ORDER BY id", (agent_id,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM agent_calls ORDER BY id").fetchall()
        return [dict(row) for row in rows]
