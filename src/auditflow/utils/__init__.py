"""utilities for auditflow"""
from .logging import PipelineLogger, LogCategory, configure_logging
from .llm_backend import InferenceBackend, InferenceError, create_backend, LLMResponse, HeuristicBackend
from .caching import ReportCache, CacheLookup, LookupKind

__all__ = [
    "PipelineLogger",
    "LogCategory",
    "configure_logging",
    "InferenceBackend",
    "InferenceError",
    "HeuristicBackend",
    "create_backend",
    "LLMResponse",
    "ReportCache",
    "CacheLookup",
    "LookupKind",
]
