"""tests for the bounded agent executor pool"""

import asyncio
import threading
import time

import httpx
import pytest

from auditflow.agent.executor import (
    AgentExecutionError,
    AgentExecutorPool,
    AgentTimeoutError,
    is_retryable_error,
)
from auditflow.models.findings import AgentResult, AgentTask, ContractInfo, FailureKind
from auditflow.utils.llm_backend import InferenceError
from auditflow.utils.logging import PipelineLogger
from auditflow.utils.validation import ValidationError

CONTRACT = ContractInfo(name="Vault", source="contract Vault {}")


class ScriptedAnalyzer:
    """duck-typed analyzer: each call pops the next step (exception, delay or score)"""

    def __init__(self, agent_id, steps):
        self.agent_id = agent_id
        self.steps = list(steps)
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def analyze(self, contract):
        self.calls += 1
        step = self.steps.pop(0) if self.steps else 90
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if isinstance(step, BaseException):
                raise step
            if isinstance(step, float):
                await asyncio.sleep(step)
                step = 90
            return AgentResult(agent_id=self.agent_id, success=True, score=step, summary="ok")
        finally:
            self.active -= 1


def _task(agent_id, deadline_in=5.0):
    loop = asyncio.get_running_loop()
    return AgentTask(agent_id=agent_id, contract=CONTRACT, deadline=loop.time() + deadline_in)


def test_retryable_classification():
    request = httpx.Request("POST", "https://example.invalid")
    assert is_retryable_error(InferenceError("busy", status_code=503))
    assert not is_retryable_error(InferenceError("bad key", status_code=401, retryable=False))
    assert not is_retryable_error(ValidationError("bad input"))
    assert is_retryable_error(AgentTimeoutError("slow"))
    assert is_retryable_error(httpx.ConnectError("refused", request=request))
    assert is_retryable_error(httpx.HTTPStatusError(
        "429", request=request, response=httpx.Response(429, request=request)))
    assert not is_retryable_error(httpx.HTTPStatusError(
        "400", request=request, response=httpx.Response(400, request=request)))
    assert not is_retryable_error(AgentExecutionError("fatal", retryable=False))
    assert is_retryable_error(RuntimeError("flaky"))


def test_transient_errors_are_retried():
    async def run():
        pool = AgentExecutorPool(retry_attempts=2, retry_backoff=0)
        analyzer = ScriptedAnalyzer("security", [InferenceError("503"), InferenceError("503"), 77])
        return analyzer, await pool.run_task(analyzer, _task("security"))

    analyzer, result = asyncio.run(run())
    assert result.success
    assert result.score == 77
    assert result.attempts == 3
    assert analyzer.calls == 3


def test_retries_are_bounded():
    async def run():
        pool = AgentExecutorPool(retry_attempts=1, retry_backoff=0)
        analyzer = ScriptedAnalyzer("security", [RuntimeError("a"), RuntimeError("b"), 90])
        return analyzer, await pool.run_task(analyzer, _task("security"))

    analyzer, result = asyncio.run(run())
    assert not result.success
    assert result.failure == FailureKind.EXECUTION_ERROR
    assert result.error == "b"
    assert result.attempts == 2
    assert analyzer.calls == 2


def test_validation_errors_are_not_retried():
    async def run():
        pool = AgentExecutorPool(retry_attempts=3, retry_backoff=0)
        analyzer = ScriptedAnalyzer("security", [ValidationError("bad"), 90])
        return analyzer, await pool.run_task(analyzer, _task("security"))

    analyzer, result = asyncio.run(run())
    assert not result.success
    assert analyzer.calls == 1


def test_per_agent_timeout_becomes_timeout_result():
    async def run():
        pool = AgentExecutorPool(agent_timeout=0.05, retry_attempts=1, retry_backoff=0)
        analyzer = ScriptedAnalyzer("mev", [1.0, 1.0])
        return await pool.run_task(analyzer, _task("mev"))

    result = asyncio.run(run())
    assert not result.success
    assert result.failure == FailureKind.TIMEOUT
    assert result.attempts == 2


def test_concurrency_is_bounded():
    async def run():
        pool = AgentExecutorPool(max_concurrency=2, retry_attempts=0)
        shared = ScriptedAnalyzer("x", [0.05] * 6)
        analyzers = {f"agent{i}": shared for i in range(6)}
        results = await pool.run_all(analyzers, CONTRACT, timeout=5.0)
        return shared, results

    shared, results = asyncio.run(run())
    assert len(results) == 6
    assert all(r.success for r in results)
    assert shared.peak <= 2


def test_overall_deadline_cancels_pending_tasks():
    async def run():
        pool = AgentExecutorPool(retry_attempts=0)
        analyzers = {
            "security": ScriptedAnalyzer("security", [85]),
            "defi": ScriptedAnalyzer("defi", [10.0]),
        }
        started = time.perf_counter()
        results = await pool.run_all(analyzers, CONTRACT, timeout=0.2)
        return results, time.perf_counter() - started

    results, elapsed = asyncio.run(run())
    assert elapsed < 2.0
    by_id = {r.agent_id: r for r in results}
    assert [r.agent_id for r in results] == ["security", "defi"]
    assert by_id["security"].success
    assert by_id["defi"].failure == FailureKind.TIMEOUT


def test_caller_cancellation_propagates():
    async def run():
        pool = AgentExecutorPool(retry_attempts=0)
        analyzer = ScriptedAnalyzer("security", [10.0])
        task = asyncio.create_task(pool.run_all({"security": analyzer}, CONTRACT, timeout=30.0))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return analyzer

    analyzer = asyncio.run(run())
    assert analyzer.active == 0


class ThreadRecordingLogger(PipelineLogger):
    """event log that remembers which thread each agent call was written from"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.threads = []

    def log_agent_call(self, *args, **kwargs):
        self.threads.append(threading.get_ident())
        return super().log_agent_call(*args, **kwargs)


def test_event_log_writes_run_off_the_event_loop(tmp_path):
    async def run():
        events = ThreadRecordingLogger(log_dir=tmp_path, to_sqlite=True)
        pool = AgentExecutorPool(retry_attempts=1, retry_backoff=0, events=events)
        analyzer = ScriptedAnalyzer("security", [InferenceError("503"), 80])
        result = await pool.run_task(analyzer, _task("security"))
        return events, result, threading.get_ident()

    events, result, loop_thread = asyncio.run(run())
    assert result.success
    assert len(events.threads) == 2
    assert loop_thread not in events.threads
    assert [row["outcome"] for row in events.query_agent_calls("security")] == ["error", "success"]
