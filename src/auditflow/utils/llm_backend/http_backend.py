"""openai-compatible async backend: pooled httpx.AsyncClient, bounded concurrency, status classification. retries are owned by the agent executor, so a retryable failure is raised rather than looped on here."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import logging
import time

import httpx

from auditflow.utils.llm_backend.base import InferenceBackend, InferenceError, LLMResponse

logger = logging.getLogger(__name__)

Json = Dict[str, Any]
RequestFn = Callable[[Json], Awaitable[Json]]

RETRYABLE_STATUS = (408, 409, 425, 429, 500, 502, 503, 504)


class HTTPInferenceBackend(InferenceBackend):
    """chat-completions client.

    example:
        backend = HTTPInferenceBackend(model="gpt-4o-mini", api_key="sk-...")
        resp = await backend.agenerate("analyze ...", system_prompt="you are ...")
        await backend.aclose()

    request_fn replaces the http call entirely (custom gateways); transport is
    handed to httpx as-is.
    """

    name = "http"

    def __init__(
        self,
        model: str,
        api_base: str = "https://api.openai.com",
        api_key: str = "",
        max_concurrency: int = 8,
        request_timeout_s: float = 60.0,
        max_tokens: int = 4000,
        temperature: float = 0.1,
        request_fn: Optional[RequestFn] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model)
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._sema = asyncio.Semaphore(max_concurrency)
        self._request_timeout_s = request_timeout_s

        if request_fn is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.api_base, headers=headers, timeout=self._request_timeout_s, transport=transport
            )
            self._request_fn = self._post_chat_completion
        else:
            self._client = None
            self._request_fn = request_fn

    async def _post_chat_completion(self, payload: Json) -> Json:
        try:
            resp = await self._client.post("/v1/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise InferenceError(f"inference request timed out: {e}", retryable=True) from e
        except httpx.TransportError as e:
            raise InferenceError(f"inference transport error: {e}", retryable=True) from e

        if resp.status_code in RETRYABLE_STATUS:
            raise InferenceError(
                f"inference service returned {resp.status_code}",
                status_code=resp.status_code,
                retryable=True,
            )
        if resp.status_code >= 400:
            raise InferenceError(
                f"inference service rejected request ({resp.status_code}): {resp.text[:200]}",
                status_code=resp.status_code,
                retryable=False,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise InferenceError(f"inference service returned non-JSON body: {e}", retryable=True) from e

    async def agenerate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None,
        contract: Any = None,
        **params: Any
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Json = {
            "model": self.model,
            "messages": messages,
            "max_tokens": params.pop("max_tokens", self.max_tokens),
            "temperature": params.pop("temperature", self.temperature),
        }
        payload.update(params)

        t0 = time.perf_counter()
        async with self._sema:
            data = await self._request_fn(payload)
        t1 = time.perf_counter()

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError(f"malformed completion payload: {e}", retryable=True) from e

        usage = data.get("usage") or {}
        logger.debug(
            f"[http] {agent_id or 'agent'} completion in {(t1 - t0) * 1000.0:.0f}ms",
            extra={"agent": agent_id, "model": self.model},
        )
        return LLMResponse(
            text=text.strip(),
            model=data.get("model", self.model),
            prompt_tokens=int(usage.get("prompt_tokens", 0) or 0),
            output_tokens=int(usage.get("completion_tokens", 0) or 0),
            latency_ms=(t1 - t0) * 1000.0,
            raw=data,
        )

    def is_available(self) -> bool:
        return bool(self.api_key) or self._client is None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


__all__ = ["HTTPInferenceBackend", "RETRYABLE_STATUS"]
