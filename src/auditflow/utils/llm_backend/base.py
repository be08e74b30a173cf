"""inference backend base classes. every agent reaches the language-model service through an InferenceBackend; the pipeline only sees a text response or an exception."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class InferenceError(Exception):
    """inference call failed; retryable tells the executor whether another attempt can help"""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass
class LLMResponse:
    """unified response format from any backend"""
    text: str
    model: str = ""
    prompt_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class InferenceBackend(ABC):
    """abstract base for inference backends"""

    name = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def agenerate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None,
        contract: Any = None,
        **params: Any
    ) -> LLMResponse:
        """generate a response for one agent prompt. contract carries the ContractInfo for backends that inspect source directly."""

    @abstractmethod
    def is_available(self) -> bool:
        """whether the backend is configured well enough to be called"""

    async def aclose(self) -> None:
        return None
