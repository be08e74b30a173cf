"""correlation id management for analysis traceability. the current analysis id lives in a contextvar so every coroutine spawned for a request logs under the same id."""
import logging
import uuid
from contextvars import ContextVar
from typing import Optional


_analysis_id: ContextVar[Optional[str]] = ContextVar('analysis_id', default=None)


def generate_analysis_id() -> str:
    """generate a new analysis id, e.g. "analysis_3f9b2c4e1a7d4c02" """
    return f"analysis_{uuid.uuid4().hex[:16]}"


def get_analysis_id() -> Optional[str]:
    """current analysis id or none outside an analysis context"""
    return _analysis_id.get()


class analysis_context:
    """context manager binding an analysis id for the enclosed code.

    usage:
        with analysis_context() as analysis_id:
            ...
    """

    def __init__(self, analysis_id: Optional[str] = None):
        self.analysis_id = analysis_id or generate_analysis_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = _analysis_id.set(self.analysis_id)
        return self.analysis_id

    def __exit__(self, *args):
        _analysis_id.reset(self._token)
        self._token = None


class CorrelationFilter(logging.Filter):
    """stamp log records with the current analysis id"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "analysis_id"):
            record.analysis_id = get_analysis_id() or "-"
        return True
