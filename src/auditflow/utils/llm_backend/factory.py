"""backend factory: the http backend when an api key is configured, the heuristic backend otherwise"""

import logging
from typing import Optional

from auditflow.config import PipelineConfig, config as default_config
from auditflow.utils.llm_backend.base import InferenceBackend
from auditflow.utils.llm_backend.heuristic_backend import HeuristicBackend
from auditflow.utils.llm_backend.http_backend import HTTPInferenceBackend

logger = logging.getLogger(__name__)

BACKEND_TYPES = ("http", "heuristic")


def create_backend(
    backend_type: Optional[str] = None,
    settings: Optional[PipelineConfig] = None,
    **kwargs
) -> InferenceBackend:
    """create an inference backend. backend_type None picks http when LLM_API_KEY is set."""
    settings = settings or default_config

    if backend_type is None:
        backend_type = "http" if settings.LLM_API_KEY else "heuristic"
    if backend_type not in BACKEND_TYPES:
        raise ValueError(f"unknown backend type {backend_type!r} (expected one of {', '.join(BACKEND_TYPES)})")

    if backend_type == "http":
        if not settings.LLM_API_KEY and "request_fn" not in kwargs:
            logger.warning("[backend] http backend requested without LLM_API_KEY; requests will be unauthenticated")
        return HTTPInferenceBackend(
            model=kwargs.pop("model", settings.LLM_MODEL),
            api_base=kwargs.pop("api_base", settings.LLM_API_BASE),
            api_key=kwargs.pop("api_key", settings.LLM_API_KEY),
            max_concurrency=kwargs.pop("max_concurrency", settings.MAX_CONCURRENT_AGENTS),
            request_timeout_s=kwargs.pop("request_timeout_s", settings.LLM_REQUEST_TIMEOUT),
            max_tokens=kwargs.pop("max_tokens", settings.LLM_MAX_TOKENS),
            **kwargs
        )

    return HeuristicBackend(**kwargs)
