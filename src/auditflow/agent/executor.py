"""bounded agent executor: per-task deadline, retry with backoff, every outcome settled as an AgentResult"""

import asyncio
import logging
import random
import time
from typing import Dict, List, Optional, Sequence

import httpx

from auditflow.agent.analyzers import Analyzer
from auditflow.models.findings import AgentResult, AgentTask, ContractInfo, FailureKind
from auditflow.utils.llm_backend.base import InferenceError
from auditflow.utils.logging import PipelineLogger
from auditflow.utils.validation import ValidationError

logger = logging.getLogger(__name__)

MAX_BACKOFF_S = 8.0


class AgentTimeoutError(Exception):
    """agent task exceeded its deadline"""


class AgentExecutionError(Exception):
    """agent task failed"""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


def is_retryable_error(error: BaseException) -> bool:
    """transient failures are retried, validation-class failures are not"""
    if isinstance(error, ValidationError):
        return False
    if isinstance(error, (InferenceError, AgentExecutionError)):
        return error.retryable
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    if isinstance(error, (AgentTimeoutError, asyncio.TimeoutError, httpx.TransportError, ConnectionError)):
        return True
    if isinstance(error, (TypeError, AttributeError, NotImplementedError)):
        # programming errors will fail the same way again
        return False
    return True


class AgentExecutorPool:
    """runs analyzer tasks concurrently up to max_concurrency"""

    def __init__(
        self,
        max_concurrency: int = 6,
        agent_timeout: float = 180.0,
        retry_attempts: int = 2,
        retry_backoff: float = 0.5,
        events: Optional[PipelineLogger] = None,
    ):
        self.max_concurrency = max_concurrency
        self.agent_timeout = agent_timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.events = events
        self._sema = asyncio.Semaphore(max_concurrency)

    def _backoff_delay(self, attempt: int) -> float:
        if self.retry_backoff <= 0:
            return 0.0
        base = min(self.retry_backoff * (2 ** (attempt - 1)), MAX_BACKOFF_S)
        return base + random.random() * self.retry_backoff * 0.5

    async def _record(self, task: AgentTask, outcome: str, duration: float, error: Optional[str] = None) -> None:
        if self.events is None:
            return
        try:
            # json and sqlite writes run in a worker thread, off the event loop
            await asyncio.to_thread(
                self.events.log_agent_call,
                task.agent_id, task.contract.name, task.attempt, outcome,
                duration_seconds=duration, error=error,
            )
        except Exception as e:
            logger.warning(f"[pool] event log write failed: {e}")

    async def run_task(self, analyzer: Analyzer, task: AgentTask) -> AgentResult:
        """drive one agent to a settled result. only caller cancellation escapes."""
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        last_error: Optional[BaseException] = None
        max_attempts = self.retry_attempts + 1

        while task.attempt < max_attempts:
            task.attempt += 1
            remaining = task.deadline - loop.time()
            if remaining <= 0:
                last_error = AgentTimeoutError(f"{task.agent_id}: analysis deadline reached before attempt {task.attempt}")
                break

            attempt_started = time.perf_counter()
            try:
                async with self._sema:
                    timeout = min(self.agent_timeout, remaining)
                    try:
                        result = await asyncio.wait_for(analyzer.analyze(task.contract), timeout=timeout)
                    except asyncio.TimeoutError as e:
                        raise AgentTimeoutError(f"{task.agent_id}: no result within {timeout:.2f}s") from e
            except asyncio.CancelledError:
                await self._record(task, "cancelled", time.perf_counter() - attempt_started)
                raise
            except Exception as e:
                last_error = e
                retryable = is_retryable_error(e)
                await self._record(task, "timeout" if isinstance(e, AgentTimeoutError) else "error",
                                   time.perf_counter() - attempt_started, str(e))
                logger.warning(
                    f"[pool] {task.agent_id} attempt {task.attempt}/{max_attempts} failed: {e}",
                    extra={"agent": task.agent_id, "attempt": task.attempt, "retryable": retryable},
                )
                if not retryable or task.attempt >= max_attempts:
                    break
                delay = self._backoff_delay(task.attempt)
                if loop.time() + delay >= task.deadline:
                    break
                await asyncio.sleep(delay)
                continue

            await self._record(task, "success", time.perf_counter() - attempt_started)
            return AgentResult(
                agent_id=task.agent_id,
                success=True,
                findings=result.findings,
                score=result.score,
                summary=result.summary,
                recommendations=result.recommendations,
                gas_optimizations=result.gas_optimizations,
                code_quality=result.code_quality,
                attempts=task.attempt,
                execution_time=time.perf_counter() - started,
            )

        kind = FailureKind.TIMEOUT if isinstance(last_error, AgentTimeoutError) else FailureKind.EXECUTION_ERROR
        return AgentResult.failed(
            task.agent_id,
            kind,
            str(last_error) if last_error else "no attempts made",
            attempts=task.attempt,
            execution_time=time.perf_counter() - started,
        )

    async def run_all(
        self,
        analyzers: Dict[str, Analyzer],
        contract: ContractInfo,
        timeout: float,
    ) -> List[AgentResult]:
        """run every analyzer and wait for all to settle, or for the overall deadline"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        order: Sequence[str] = list(analyzers)
        tasks = {
            agent_id: asyncio.create_task(
                self.run_task(analyzers[agent_id], AgentTask(agent_id=agent_id, contract=contract, deadline=deadline)),
                name=f"agent:{agent_id}",
            )
            for agent_id in order
        }

        try:
            done, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            logger.info("[pool] dispatch cancelled by caller; agent results will be discarded")
            raise

        for task in pending:
            task.cancel()

        results = []
        for agent_id in order:
            task = tasks[agent_id]
            if task in pending:
                results.append(AgentResult.failed(
                    agent_id, FailureKind.TIMEOUT, f"{agent_id}: overall analysis timeout ({timeout:.2f}s)",
                    execution_time=timeout,
                ))
            elif task.cancelled():
                results.append(AgentResult.failed(agent_id, FailureKind.EXECUTION_ERROR, "cancelled"))
            elif task.exception() is not None:
                # run_task settles everything; this is a defect in an analyzer's result object
                results.append(AgentResult.failed(agent_id, FailureKind.EXECUTION_ERROR, str(task.exception())))
            else:
                results.append(task.result())

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            f"[pool] {succeeded}/{len(results)} agents succeeded",
            extra={"contract": contract.name, "agents": list(order)},
        )
        return results
