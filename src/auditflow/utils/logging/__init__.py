"""logging package: dual-layer (json + sqlite) event log and stdlib logging setup"""

from .types import LogCategory, LogEntry

from .core import PipelineLogger, configure_logging

__all__ = [
    "LogCategory",
    "LogEntry",
    "PipelineLogger",
    "configure_logging",
]
