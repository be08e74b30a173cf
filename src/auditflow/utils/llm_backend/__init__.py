"""inference backend package: base protocol, http and heuristic backends, factory"""

from .base import InferenceBackend, InferenceError, LLMResponse
from .http_backend import HTTPInferenceBackend
from .heuristic_backend import HeuristicBackend

from .factory import create_backend


__all__ = [
    "InferenceBackend",
    "InferenceError",
    "LLMResponse",
    "HTTPInferenceBackend",
    "HeuristicBackend",
    "create_backend",
]
