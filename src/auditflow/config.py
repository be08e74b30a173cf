import os
import warnings
from pathlib import Path
from typing import Callable, Optional, List, Tuple, TypeVar
from dataclasses import dataclass, field

N = TypeVar("N", int, float)


def _bounded(value: Optional[str], default: N, cast: Callable[[str], N], min_val: Optional[N], max_val: Optional[N]) -> N:
    if value is None:
        return default
    try:
        result = cast(value)
    except (ValueError, TypeError):
        return default
    if min_val is not None and result < min_val:
        problem = f"is below minimum {min_val}"
    elif max_val is not None and result > max_val:
        problem = f"exceeds maximum {max_val}"
    else:
        return result
    warnings.warn(f"Value {result} {problem}, using default {default}", RuntimeWarning, stacklevel=3)
    return default


def safe_int(value: Optional[str], default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    return _bounded(value, default, int, min_val, max_val)


def safe_float(value: Optional[str], default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
    return _bounded(value, default, float, min_val, max_val)


def safe_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    warnings.warn(
        f"Unrecognized boolean value {value!r}, using default {default}",
        RuntimeWarning,
        stacklevel=2
    )
    return default


def _agent_list(value: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    agents = tuple(part.strip() for part in value.split(",") if part.strip())
    return agents or default


@dataclass
class PipelineConfig:
    PROJECT_ROOT: Path = field(default_factory=lambda: Path(
        os.getenv("AUDITFLOW_ROOT") or Path.cwd()
    ))

    @property
    def DATA_DIR(self) -> Path:
        return self.PROJECT_ROOT / "data"

    @property
    def LOGS_DIR(self) -> Path:
        return Path(os.getenv("LOG_DIR") or (self.DATA_DIR / "logs"))

    # ledger
    LEDGER_ENABLED: bool = field(default_factory=lambda: safe_bool(os.getenv("LEDGER_ENABLED"), True))
    LEDGER_PATH: Optional[Path] = field(default_factory=lambda: Path(os.environ["LEDGER_PATH"]) if os.getenv("LEDGER_PATH") else None)
    LEDGER_QUEUE_SIZE: int = field(default_factory=lambda: safe_int(os.getenv("LEDGER_QUEUE_SIZE"), default=256, min_val=1, max_val=100000))

    # agent pool
    MAX_CONCURRENT_AGENTS: int = field(default_factory=lambda: safe_int(os.getenv("MAX_CONCURRENT_AGENTS"), default=6, min_val=1, max_val=64))
    ANALYSIS_TIMEOUT_MS: int = field(default_factory=lambda: safe_int(os.getenv("ANALYSIS_TIMEOUT_MS"), default=180000, min_val=100, max_val=3600000))
    AGENT_TIMEOUT_MS: Optional[int] = field(default_factory=lambda: safe_int(os.getenv("AGENT_TIMEOUT_MS"), default=0, min_val=0, max_val=3600000) or None)
    RETRY_ATTEMPTS: int = field(default_factory=lambda: safe_int(os.getenv("AGENT_RETRY_ATTEMPTS"), default=2, min_val=0, max_val=10))
    RETRY_BACKOFF_MS: int = field(default_factory=lambda: safe_int(os.getenv("AGENT_RETRY_BACKOFF_MS"), default=500, min_val=0, max_val=60000))
    DEFAULT_AGENTS: Tuple[str, ...] = field(default_factory=lambda: _agent_list(os.getenv("DEFAULT_AGENTS"), ("security", "quality")))

    # aggregation
    CONFIDENCE_THRESHOLD: float = field(default_factory=lambda: safe_float(os.getenv("CONFIDENCE_THRESHOLD"), default=0.7, min_val=0.0, max_val=1.0))
    RISK_HIGH_THRESHOLD: int = field(default_factory=lambda: safe_int(os.getenv("RISK_HIGH_THRESHOLD"), default=80, min_val=0, max_val=100))
    RISK_MEDIUM_THRESHOLD: int = field(default_factory=lambda: safe_int(os.getenv("RISK_MEDIUM_THRESHOLD"), default=60, min_val=0, max_val=100))

    # cache
    CACHE_TTL_SECONDS: float = field(default_factory=lambda: safe_float(os.getenv("CACHE_TTL_SECONDS"), default=3600.0, min_val=0.0, max_val=7 * 86400.0))
    CACHE_MAX_ENTRIES: int = field(default_factory=lambda: safe_int(os.getenv("CACHE_MAX_ENTRIES"), default=256, min_val=0, max_val=1000000))

    # inference service
    LLM_API_BASE: str = field(default_factory=lambda: os.getenv("LLM_API_BASE", "https://api.openai.com"))
    LLM_API_KEY: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", ""))
    LLM_MODEL: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    LLM_REQUEST_TIMEOUT: float = field(default_factory=lambda: safe_float(os.getenv("LLM_REQUEST_TIMEOUT"), default=60.0, min_val=1.0, max_val=600.0))
    LLM_MAX_TOKENS: int = field(default_factory=lambda: safe_int(os.getenv("LLM_MAX_TOKENS"), default=4000, min_val=256, max_val=32000))

    # structured event log
    LOG_TO_SQLITE: bool = field(default_factory=lambda: safe_bool(os.getenv("LOG_TO_SQLITE"), False))
    LOG_EVENTS: bool = field(default_factory=lambda: safe_bool(os.getenv("LOG_EVENTS"), False))

    @property
    def ledger_path(self) -> Path:
        return self.LEDGER_PATH or (self.DATA_DIR / "ledger" / "audit.ledger")

    @property
    def analysis_timeout(self) -> float:
        """overall analysis deadline in seconds"""
        return self.ANALYSIS_TIMEOUT_MS / 1000.0

    @property
    def agent_timeout(self) -> float:
        """per-agent deadline in seconds, falls back to the overall deadline"""
        if self.AGENT_TIMEOUT_MS:
            return self.AGENT_TIMEOUT_MS / 1000.0
        return self.analysis_timeout

    @property
    def retry_backoff(self) -> float:
        return self.RETRY_BACKOFF_MS / 1000.0

    @property
    def default_agents(self) -> List[str]:
        return list(self.DEFAULT_AGENTS)

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """read the current environment; keyword overrides win, None values are ignored"""
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    def __post_init__(self):
        if self.RISK_MEDIUM_THRESHOLD > self.RISK_HIGH_THRESHOLD:
            warnings.warn(
                f"RISK_MEDIUM_THRESHOLD {self.RISK_MEDIUM_THRESHOLD} exceeds RISK_HIGH_THRESHOLD "
                f"{self.RISK_HIGH_THRESHOLD}, swapping",
                RuntimeWarning,
                stacklevel=2
            )
            self.RISK_MEDIUM_THRESHOLD, self.RISK_HIGH_THRESHOLD = self.RISK_HIGH_THRESHOLD, self.RISK_MEDIUM_THRESHOLD


config = PipelineConfig()
