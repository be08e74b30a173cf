"""tests for the event log and logging setup"""

import io
import json
import logging
import sqlite3
from contextlib import closing

import pytest

from auditflow.models.findings import AnalysisMode, AnalysisReport, ReportMetadata, RiskLevel
from auditflow.utils.correlation import CorrelationFilter, analysis_context, get_analysis_id
from auditflow.utils.logging import LogCategory, LogEntry, PipelineLogger, configure_logging


class TestLogCategory:
    def test_all_categories_exist(self):
        assert {cat.name for cat in LogCategory} == {"AGENT_CALL", "ANALYSIS", "ERROR"}

    def test_category_values(self):
        assert LogCategory.AGENT_CALL.value == "agent_calls"
        assert LogCategory.ANALYSIS.value == "analyses"
        assert LogCategory.ERROR.value == "errors"

    def test_category_invalid_value_raises_error(self):
        with pytest.raises(ValueError):
            LogCategory("ledger")


class TestLogEntry:
    def test_log_entry_creation_minimal(self):
        entry = LogEntry(
            timestamp="2025-10-21T10:00:00Z",
            category="agent_calls",
            event_type="agent_call",
            agent_id=None,
            contract_name=None,
            analysis_id=None,
            data={},
            metadata={},
        )
        assert entry.category == "agent_calls"
        assert entry.agent_id is None
        assert entry.data == {}


class TestPipelineLogger:

    def _report(self):
        return AnalysisReport(
            overall_score=72,
            risk_level=RiskLevel.MEDIUM,
            metadata=ReportMetadata(
                analysis_id="analysis_1", analysis_mode=AnalysisMode.COMPREHENSIVE,
                agents_used=("security", "quality"), contract_name="Vault",
            ),
        )

    def test_creates_category_directories(self, tmp_path):
        PipelineLogger(log_dir=tmp_path, to_sqlite=False)
        for category in LogCategory:
            assert (tmp_path / "raw" / category.value).is_dir()
        assert not (tmp_path / "analytics.db").exists()

    def test_agent_call_written_to_json_and_sqlite(self, tmp_path):
        events = PipelineLogger(log_dir=tmp_path, to_sqlite=True)
        with analysis_context("analysis_abc"):
            entry = events.log_agent_call("security", "Vault", attempt=2, outcome="timeout",
                                          duration_seconds=1.5, error="slow")
        assert entry.analysis_id == "analysis_abc"
        assert events.event_count == 1

        files = list((tmp_path / "raw" / "agent_calls").glob("*.json"))
        assert len(files) == 1
        assert files[0].name.endswith("_security_a2.json")
        payload = json.loads(files[0].read_text(encoding="utf-8"))
        assert payload["analysis_id"] == "analysis_abc"
        assert payload["outcome"] == "timeout"

        rows = events.query_agent_calls("security")
        assert len(rows) == 1
        assert rows[0]["attempt"] == 2
        assert rows[0]["error"] == "slow"
        assert events.query_agent_calls("defi") == []

    def test_analysis_and_error_rows(self, tmp_path):
        events = PipelineLogger(log_dir=tmp_path, to_sqlite=True)
        events.log_analysis(self._report())
        events.log_error("ledger", OSError("disk full"), {"path": "/x"})

        with closing(sqlite3.connect(str(tmp_path / "analytics.db"))) as conn:
            analysis = conn.execute("SELECT status, overall_score, agents FROM analyses").fetchone()
            error = conn.execute("SELECT component, error_type, message FROM pipeline_errors").fetchone()
        assert analysis == ("completed", 72, "security,quality")
        assert error == ("ledger", "OSError", "disk full")
        assert len(list((tmp_path / "raw" / "analyses").glob("*.json"))) == 1

    def test_sqlite_connections_are_closed(self, tmp_path, monkeypatch):
        opened = []
        real_connect = sqlite3.connect

        def tracking_connect(*args, **kwargs):
            conn = real_connect(*args, **kwargs)
            opened.append(conn)
            return conn

        monkeypatch.setattr(sqlite3, "connect", tracking_connect)
        events = PipelineLogger(log_dir=tmp_path, to_sqlite=True)
        events.log_agent_call("security", "Vault", attempt=1, outcome="success")
        events.log_analysis(self._report())
        events.log_error("ledger", OSError("disk full"))
        assert len(events.query_agent_calls()) == 1

        assert len(opened) == 5
        for conn in opened:
            with pytest.raises(sqlite3.ProgrammingError):
                conn.execute("SELECT 1")

    def test_sqlite_disabled_query_is_empty(self, tmp_path):
        events = PipelineLogger(log_dir=tmp_path, to_sqlite=False)
        events.log_agent_call("security", "Vault", attempt=1, outcome="success")
        assert events.query_agent_calls() == []


class TestLoggingSetup:

    def test_records_carry_analysis_id(self):
        stream = io.StringIO()
        handler = configure_logging(logging.INFO, stream=stream)
        try:
            log = logging.getLogger("auditflow.test")
            with analysis_context("analysis_xyz"):
                log.info("inside")
            log.info("outside")
        finally:
            logging.getLogger("auditflow").removeHandler(handler)

        lines = stream.getvalue().splitlines()
        assert "[analysis_xyz] auditflow.test: inside" in lines[0]
        assert "[-] auditflow.test: outside" in lines[1]

    def test_configure_twice_keeps_one_handler(self):
        first = configure_logging(stream=io.StringIO())
        second = configure_logging(stream=io.StringIO())
        package_logger = logging.getLogger("auditflow")
        try:
            assert first not in package_logger.handlers
            assert second in package_logger.handlers
        finally:
            package_logger.removeHandler(second)

    def test_filter_keeps_explicit_id(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        record.analysis_id = "given"
        assert CorrelationFilter().filter(record)
        assert record.analysis_id == "given"

    def test_context_resets(self):
        with analysis_context() as analysis_id:
            assert get_analysis_id() == analysis_id
            assert analysis_id.startswith("analysis_")
        assert get_analysis_id() is None
