"""multi-agent analysis orchestrator"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from auditflow.agent.aggregator import AggregationError, Aggregator
from auditflow.agent.analyzers import ANALYZERS, available_agents, create_analyzer
from auditflow.agent.executor import AgentExecutorPool
from auditflow.cal.preprocessor import ContractPreprocessor, PreprocessingError, normalize_source
from auditflow.config import PipelineConfig, config as default_config
from auditflow.ledger.audit_ledger import AuditLedger
from auditflow.ledger.writer import LedgerWriter
from auditflow.models.findings import (
    AgentResult,
    AnalysisMode,
    AnalysisReport,
    AnalysisRequest,
    AnalysisStatus,
    ContractInfo,
    FailureKind,
    ReportMetadata,
)
from auditflow.utils.caching import LookupKind, ReportCache
from auditflow.utils.correlation import analysis_context, generate_analysis_id
from auditflow.utils.llm_backend import InferenceBackend, create_backend
from auditflow.utils.logging import PipelineLogger
from auditflow.utils.validation import (
    RequestValidationError,
    ValidationError,
    parse_request,
    validate_request,
)

logger = logging.getLogger(__name__)


class InvalidAgentError(ValidationError):
    """request names agents that do not exist"""

    def __init__(self, invalid: Sequence[str]):
        self.invalid = list(invalid)
        super().__init__(
            f"invalid agent(s): {', '.join(self.invalid)}. available: {', '.join(sorted(ANALYZERS))}"
        )


class TooManyAgentsError(ValidationError):
    """resolved agent set exceeds the concurrency bound"""

    def __init__(self, excess: Sequence[str], limit: int):
        self.excess = list(excess)
        self.limit = limit
        super().__init__(
            f"too many agents: at most {limit} per analysis, rejected {', '.join(self.excess)}"
        )


class AnalysisAbortedError(Exception):
    """a shared computation was cancelled after every caller waiting on it gave up"""


class AnalysisState(Enum):
    RECEIVED = "received"
    PREPROCESSING = "preprocessing"
    AWAITING_CACHE = "awaiting_cache"
    DISPATCHING = "dispatching"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"


def compute_fingerprint(source: str, agents: Sequence[str], mode: AnalysisMode) -> str:
    """sha-256 over normalized source, sorted agent set and mode"""
    material = "\x00".join((normalize_source(source), ",".join(sorted(agents)), mode.value))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass
class SharedComputation:
    """one running analysis for a fingerprint and the callers waiting on it"""
    analysis_id: str
    task: "asyncio.Task[None]"
    waiters: int = 0


@dataclass
class AgentPerformance:
    runs: int = 0
    successes: int = 0
    timeouts: int = 0
    errors: int = 0
    total_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "successes": self.successes,
            "timeouts": self.timeouts,
            "errors": self.errors,
            "successRate": round(self.successes / self.runs, 3) if self.runs else 0.0,
            "averageTime": round(self.total_time / self.runs, 3) if self.runs else 0.0,
        }


@dataclass
class PipelineState:
    """runtime counters owned by one orchestrator"""
    started_at: float = field(default_factory=time.monotonic)
    started_iso: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    total_analyses: int = 0
    successful_analyses: int = 0
    failed_analyses: int = 0
    cache_hits: int = 0
    joined: int = 0
    in_flight: int = 0
    total_execution_ms: int = 0
    agent_performance: Dict[str, AgentPerformance] = field(default_factory=dict)
    active: Dict[str, AnalysisState] = field(default_factory=dict)

    def record_agents(self, results: Sequence[AgentResult]) -> None:
        for result in results:
            perf = self.agent_performance.setdefault(result.agent_id, AgentPerformance())
            perf.runs += 1
            perf.total_time += result.execution_time
            if result.success:
                perf.successes += 1
            elif result.failure == FailureKind.TIMEOUT:
                perf.timeouts += 1
            else:
                perf.errors += 1

    def record_report(self, report: AnalysisReport) -> None:
        self.total_analyses += 1
        self.total_execution_ms += report.metadata.execution_time
        if report.status == AnalysisStatus.COMPLETED:
            self.successful_analyses += 1
        else:
            self.failed_analyses += 1

    @property
    def average_execution_ms(self) -> int:
        return int(round(self.total_execution_ms / self.total_analyses)) if self.total_analyses else 0

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at


class AnalysisOrchestrator:
    """
    Runs one analysis request end to end:
    validate -> resolve agents -> cache/in-flight -> preprocess -> dispatch -> aggregate -> cache + ledger

    Usage:
        async with AnalysisOrchestrator() as orchestrator:
            report = await orchestrator.analyze({"contractCode": source, "agents": ["security"]})
    """

    def __init__(
        self,
        backend: Optional[InferenceBackend] = None,
        settings: Optional[PipelineConfig] = None,
        ledger: Optional[AuditLedger] = None,
        cache: Optional[ReportCache] = None,
        events: Optional[PipelineLogger] = None,
        preprocessor: Optional[ContractPreprocessor] = None,
    ):
        self.settings = settings or default_config
        self._owns_backend = backend is None
        self.backend = backend or create_backend(settings=self.settings)
        self.ledger = ledger or AuditLedger(self.settings.ledger_path, enabled=self.settings.LEDGER_ENABLED)
        self.cache = cache or ReportCache(
            ttl_seconds=self.settings.CACHE_TTL_SECONDS,
            max_entries=self.settings.CACHE_MAX_ENTRIES,
        )
        if events is None and self.settings.LOG_EVENTS:
            events = PipelineLogger(settings=self.settings)
        self.events = events
        self.preprocessor = preprocessor or ContractPreprocessor()
        self.pool = AgentExecutorPool(
            max_concurrency=self.settings.MAX_CONCURRENT_AGENTS,
            agent_timeout=self.settings.agent_timeout,
            retry_attempts=self.settings.RETRY_ATTEMPTS,
            retry_backoff=self.settings.retry_backoff,
            events=self.events,
        )
        self.aggregator = Aggregator(
            confidence_threshold=self.settings.CONFIDENCE_THRESHOLD,
            high_threshold=self.settings.RISK_HIGH_THRESHOLD,
            medium_threshold=self.settings.RISK_MEDIUM_THRESHOLD,
        )
        self.writer = LedgerWriter(self.ledger, queue_size=self.settings.LEDGER_QUEUE_SIZE)
        self.state = PipelineState()
        self._computations: Dict[str, SharedComputation] = {}
        self._closed = False

        logger.info(
            f"[orchestrator] ready: backend={self.backend.model}, max_agents={self.settings.MAX_CONCURRENT_AGENTS}, "
            f"ledger={'on' if self.ledger.enabled else 'off'}"
        )

    async def __aenter__(self) -> "AnalysisOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """cancel running computations, drain pending ledger writes and release the backend"""
        if self._closed:
            return
        self._closed = True
        running = [shared.task for shared in self._computations.values()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        await self.writer.aclose()
        if self._owns_backend:
            await self.backend.aclose()

    def resolve_agents(self, requested: Sequence[str]) -> List[str]:
        agents: List[str] = []
        for agent_id in requested or ():
            if agent_id not in agents:
                agents.append(agent_id)
        if not agents:
            agents = self.settings.default_agents

        invalid = [a for a in agents if a not in ANALYZERS]
        if invalid:
            raise InvalidAgentError(invalid)

        limit = self.settings.MAX_CONCURRENT_AGENTS
        if len(agents) > limit:
            raise TooManyAgentsError(agents[limit:], limit)
        return agents

    @staticmethod
    def _coerce(request: Union[AnalysisRequest, Mapping[str, Any]]) -> AnalysisRequest:
        if isinstance(request, AnalysisRequest):
            result = validate_request(request)
            if not result:
                raise RequestValidationError(result)
            return request
        return parse_request(request)

    def _transition(self, analysis_id: str, state: AnalysisState) -> None:
        if state in (AnalysisState.COMPLETED, AnalysisState.FAILED):
            self.state.active.pop(analysis_id, None)
        else:
            self.state.active[analysis_id] = state
        logger.debug(f"[orchestrator] {analysis_id} -> {state.value}")

    async def analyze(
        self,
        request: Union[AnalysisRequest, Mapping[str, Any]],
        timeout: Optional[float] = None,
    ) -> AnalysisReport:
        """
        Analyze one contract.

        Raises ValidationError subclasses for bad input and PreprocessingError
        when the source cannot be summarized. Agent failures never raise: they
        surface as a partial or failed report. A caller timeout or
        cancellation ends only that caller's wait; the dispatched agents are
        cancelled once no caller is waiting on the computation any more.
        """
        if timeout is not None:
            return await asyncio.wait_for(self._analyze(request), timeout=timeout)
        return await self._analyze(request)

    async def _analyze(self, request: Union[AnalysisRequest, Mapping[str, Any]]) -> AnalysisReport:
        request = self._coerce(request)
        analysis_id = generate_analysis_id()

        with analysis_context(analysis_id):
            self._transition(analysis_id, AnalysisState.RECEIVED)
            try:
                agents = self.resolve_agents(request.agents)
            except ValidationError:
                self._transition(analysis_id, AnalysisState.FAILED)
                raise
            fingerprint = compute_fingerprint(request.contract_code, agents, request.analysis_mode)

            while True:
                self._transition(analysis_id, AnalysisState.AWAITING_CACHE)
                lookup = self.cache.get(fingerprint)
                if lookup.kind == LookupKind.HIT:
                    self.state.cache_hits += 1
                    self._transition(analysis_id, AnalysisState.COMPLETED)
                    logger.info(f"[orchestrator] cache hit {fingerprint[:12]}", extra={"fingerprint": fingerprint})
                    return lookup.report.as_cached()

                if lookup.kind == LookupKind.IN_FLIGHT:
                    claimed, future = False, lookup.future
                else:
                    claimed, future = self.cache.register(fingerprint)
                if claimed:
                    self._start(request, agents, fingerprint, analysis_id)
                else:
                    self.state.joined += 1
                    logger.info(f"[orchestrator] joining in-flight analysis {fingerprint[:12]}")

                try:
                    report = await self._wait_shared(fingerprint, future)
                except AnalysisAbortedError:
                    if self._closed:
                        self._transition(analysis_id, AnalysisState.FAILED)
                        raise
                    # joined a computation in the moment it was being abandoned
                    logger.info(f"[orchestrator] in-flight analysis {fingerprint[:12]} was abandoned, retrying")
                    continue
                except BaseException:
                    if not claimed:
                        self._transition(analysis_id, AnalysisState.FAILED)
                    raise
                if not claimed:
                    self._transition(analysis_id, AnalysisState.COMPLETED)
                return report

    def _start(self, request: AnalysisRequest, agents: List[str], fingerprint: str, analysis_id: str) -> None:
        """run the claimed computation in a task owned by the orchestrator, not by the caller"""
        task = asyncio.create_task(
            self._run_shared(request, agents, fingerprint, analysis_id),
            name=f"analysis:{analysis_id}",
        )
        self._computations[fingerprint] = SharedComputation(analysis_id=analysis_id, task=task)

    async def _run_shared(self, request: AnalysisRequest, agents: List[str], fingerprint: str, analysis_id: str) -> None:
        """compute one report and settle the in-flight future; outcomes reach callers only through it"""
        self.state.in_flight += 1
        try:
            report = await self._compute(request, agents, fingerprint, analysis_id)
        except asyncio.CancelledError:
            self.cache.fail(fingerprint, AnalysisAbortedError(f"analysis {analysis_id} was cancelled"))
            self._transition(analysis_id, AnalysisState.FAILED)
            logger.info(f"[orchestrator] {analysis_id} cancelled, no caller is waiting for it")
            raise
        except Exception as e:
            self.cache.fail(fingerprint, e)
            self._transition(analysis_id, AnalysisState.FAILED)
            return
        finally:
            self.state.in_flight -= 1
            self._computations.pop(fingerprint, None)

        completed = report.status == AnalysisStatus.COMPLETED
        self.cache.complete(fingerprint, report, store=completed)
        self._transition(analysis_id, AnalysisState.COMPLETED if completed else AnalysisState.FAILED)

    async def _wait_shared(self, fingerprint: str, future: "asyncio.Future[AnalysisReport]") -> AnalysisReport:
        """
        Await the shared result without owning it. The computation is
        cancelled only when the last waiting caller gives up.
        """
        shared = self._computations.get(fingerprint)
        if shared is None:
            # settled already, the future carries the outcome
            return await future

        shared.waiters += 1
        abandoned = False
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            abandoned = True
            raise
        finally:
            shared.waiters -= 1
            if abandoned and shared.waiters == 0 and not shared.task.done():
                logger.info(f"[orchestrator] every caller left {shared.analysis_id}, cancelling its agents")
                shared.task.cancel()
                await asyncio.wait({shared.task})

    async def _compute(
        self,
        request: AnalysisRequest,
        agents: List[str],
        fingerprint: str,
        analysis_id: str,
    ) -> AnalysisReport:
        started = time.perf_counter()

        self._transition(analysis_id, AnalysisState.PREPROCESSING)
        try:
            contract = self.preprocessor.preprocess(request)
        except PreprocessingError as e:
            logger.error(f"[orchestrator] preprocessing failed: {e}")
            report = AnalysisReport.failure(
                analysis_id=analysis_id,
                analysis_mode=request.analysis_mode,
                error_message=f"preprocessing failed: {e}",
                agents_used=tuple(agents),
                execution_time=self._elapsed_ms(started),
                chain=request.chain,
                contract_address=request.contract_address,
                fingerprint=fingerprint,
            )
            await self._finish(report, e)
            raise

        self._transition(analysis_id, AnalysisState.DISPATCHING)
        analyzers = {agent_id: create_analyzer(agent_id, self.backend) for agent_id in agents}
        logger.info(
            f"[orchestrator] dispatching {len(analyzers)} agents for {contract.name}",
            extra={"agents": agents, "fingerprint": fingerprint},
        )
        results = await self.pool.run_all(analyzers, contract, timeout=self.settings.analysis_timeout)
        self.state.record_agents(results)

        self._transition(analysis_id, AnalysisState.AGGREGATING)
        try:
            report = self.aggregator.aggregate(results, self._metadata(analysis_id, contract, fingerprint))
            report = replace(report, metadata=replace(report.metadata, execution_time=self._elapsed_ms(started)))
            error = None
        except AggregationError as e:
            logger.error(f"[orchestrator] all agents failed for {contract.name}: {e}")
            report = AnalysisReport.failure(
                analysis_id=analysis_id,
                analysis_mode=contract.analysis_mode,
                error_message=str(e),
                agents_used=tuple(agents),
                failed_agents=tuple(r.agent_id for r in results if not r.success),
                execution_time=self._elapsed_ms(started),
                chain=contract.chain,
                contract_name=contract.name,
                contract_address=contract.contract_address,
                fingerprint=fingerprint,
            )
            error = e

        await self._finish(report, error)
        return report

    @staticmethod
    def _metadata(analysis_id: str, contract: ContractInfo, fingerprint: str) -> ReportMetadata:
        return ReportMetadata(
            analysis_id=analysis_id,
            analysis_mode=contract.analysis_mode,
            chain=contract.chain,
            contract_name=contract.name,
            contract_address=contract.contract_address,
            fingerprint=fingerprint,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int(round((time.perf_counter() - started) * 1000))

    def _log_events(self, report: AnalysisReport, error: Optional[BaseException]) -> None:
        self.events.log_analysis(report)
        if error is not None:
            self.events.log_error("orchestrator", error, {"fingerprint": report.metadata.fingerprint})

    async def _finish(self, report: AnalysisReport, error: Optional[BaseException] = None) -> None:
        """count, log and forward a final report to the ledger writer"""
        self.state.record_report(report)
        self.writer.submit(report)

        if self.events is not None:
            try:
                await asyncio.to_thread(self._log_events, report, error)
            except Exception as e:
                logger.warning(f"[orchestrator] event log write failed: {e}")

        logger.info(
            f"[orchestrator] {report.status.value}: score {report.overall_score} ({report.risk_level.value}), "
            f"{len(report.vulnerabilities)} findings in {report.metadata.execution_time}ms",
            extra={"partial": report.metadata.partial, "failed_agents": list(report.metadata.failed_agents)},
        )

    def get_status(self) -> Dict[str, Any]:
        """runtime status: counters, per-agent performance, cache and ledger state"""
        return {
            "status": "closed" if self._closed else "operational",
            "startedAt": self.state.started_iso,
            "uptimeSeconds": round(self.state.uptime, 3),
            "totalAnalyses": self.state.total_analyses,
            "successfulAnalyses": self.state.successful_analyses,
            "failedAnalyses": self.state.failed_analyses,
            "averageExecutionTime": self.state.average_execution_ms,
            "cacheHits": self.state.cache_hits,
            "joinedAnalyses": self.state.joined,
            "inFlight": self.state.in_flight,
            "active": {aid: s.value for aid, s in self.state.active.items()},
            "agentPerformance": {aid: p.to_dict() for aid, p in self.state.agent_performance.items()},
            "cache": self.cache.stats(),
            "ledger": {
                "enabled": self.ledger.enabled,
                "entries": len(self.ledger) if self.ledger.enabled else 0,
                "pending": self.writer.pending,
                "dropped": self.writer.dropped,
            },
            "backend": {"model": self.backend.model, "available": self.backend.is_available()},
            "agents": available_agents(),
        }
