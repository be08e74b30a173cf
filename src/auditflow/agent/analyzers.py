"""specialized analyzer agents. each agent is an Analyzer subclass; subclassing registers it."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from pydantic import ValidationError as SchemaValidationError

from auditflow.agent.prompts import (
    CONTRACT_CONTEXT,
    GAS_OUTPUT_EXTENSION,
    QUALITY_OUTPUT_EXTENSION,
    QUICK_MODE_GUIDANCE,
    render_output_format,
)
from auditflow.agent.response_schema import AgentResponse
from auditflow.models.findings import AgentResult, AnalysisMode, ContractInfo
from auditflow.utils.json_sanitizer import load_json_object
from auditflow.utils.llm_backend.base import InferenceBackend

logger = logging.getLogger(__name__)

ANALYZERS: Dict[str, Type["Analyzer"]] = {}


class Analyzer(ABC):
    """one agent capability: analyze(ContractInfo) -> AgentResult"""

    agent_id: str = ""
    name: str = ""
    description: str = ""
    categories: str = "other"
    output_extension: str = ""
    # ordering weight for recommendations in the final report
    priority: int = 1

    def __init_subclass__(cls, register: bool = True, **kwargs):
        super().__init_subclass__(**kwargs)
        if register and cls.agent_id:
            ANALYZERS[cls.agent_id] = cls

    def __init__(self, backend: InferenceBackend):
        self.backend = backend

    @abstractmethod
    def get_system_prompt(self) -> str:
        """role and focus for this agent"""

    def build_prompt(self, contract: ContractInfo) -> str:
        context = CONTRACT_CONTEXT % {
            "name": contract.name,
            "chain": contract.chain,
            "functions": contract.function_count,
            "modifiers": contract.modifier_count,
            "events": contract.event_count,
            "complexity": contract.complexity.value,
            "cyclomatic": contract.cyclomatic_complexity,
            "characteristics": ", ".join(k for k, v in contract.characteristics.to_dict().items() if v) or "none detected",
            "mode": contract.analysis_mode.value,
            "source": contract.source,
        }
        prompt = render_output_format(self.categories, self.output_extension) + context
        if contract.analysis_mode == AnalysisMode.QUICK:
            prompt += QUICK_MODE_GUIDANCE
        return prompt

    async def analyze(self, contract: ContractInfo) -> AgentResult:
        """run one inference call and parse it. transport errors propagate to the executor."""
        t0 = time.perf_counter()
        response = await self.backend.agenerate(
            self.build_prompt(contract),
            system_prompt=self.get_system_prompt(),
            agent_id=self.agent_id,
            contract=contract,
        )
        return self.parse_response(response.text, time.perf_counter() - t0)

    def parse_response(self, text, execution_time: float = 0.0) -> AgentResult:
        try:
            parsed = AgentResponse.model_validate(load_json_object(text))
        except (ValueError, SchemaValidationError) as e:
            logger.warning(
                f"[{self.agent_id}] failed to parse agent response: {e}",
                extra={"agent": self.agent_id, "response_length": len(text) if isinstance(text, str) else None},
            )
            return self.fallback_result(execution_time)

        return AgentResult(
            agent_id=self.agent_id,
            success=True,
            findings=tuple(v.to_finding(self.agent_id) for v in parsed.vulnerabilities),
            score=parsed.overall_score,
            summary=parsed.summary,
            recommendations=tuple(parsed.recommendations),
            gas_optimizations=tuple(g.to_model() for g in parsed.gas_optimizations),
            code_quality=parsed.code_quality.to_model() if parsed.code_quality else None,
            execution_time=execution_time,
        )

    def fallback_result(self, execution_time: float = 0.0) -> AgentResult:
        """neutral result when the model answered but not in the agreed format"""
        return AgentResult(
            agent_id=self.agent_id,
            success=True,
            score=50,
            summary=f"{self.name} response could not be parsed. Manual review recommended.",
            recommendations=("Manual review recommended",),
            execution_time=execution_time,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.agent_id})"


class SecurityAnalyzer(Analyzer):
    agent_id = "security"
    name = "Security Analyzer"
    description = "General smart contract vulnerabilities: reentrancy, access control, unchecked calls"
    categories = "reentrancy|access-control|arithmetic|unchecked-calls|gas-limit|timestamp-dependence|tx-origin|delegatecall|other"
    priority = 5

    def get_system_prompt(self) -> str:
        return """You are an expert smart contract security auditor.

Focus on:
- External calls before state updates (checks-effects-interactions)
- Missing or bypassable access control
- Unchecked low-level calls and return values
- tx.origin authentication, delegatecall and selfdestruct misuse
- Arithmetic issues and timestamp dependence
"""


class QualityAnalyzer(Analyzer):
    agent_id = "quality"
    name = "Code Quality Analyzer"
    description = "Code quality, best practices, maintainability and gas usage"
    categories = "best-practice|maintainability|documentation|other"
    output_extension = QUALITY_OUTPUT_EXTENSION
    priority = 3

    def get_system_prompt(self) -> str:
        return """You are a smart contract code quality expert.

Focus on code efficiency, best practices, documentation, event coverage and gas usage.
Report quality problems under codeQuality.issues; reserve vulnerabilities for real security defects.
"""


class EconomicsAnalyzer(Analyzer):
    agent_id = "economics"
    name = "Economics Analyzer"
    description = "Tokenomics, incentive design and arithmetic precision"
    categories = "tokenomics|arithmetic|incentives|price-manipulation|other"
    priority = 2

    def get_system_prompt(self) -> str:
        return """You are a token economics and incentive design reviewer.

Focus on:
- Supply caps, minting and inflation
- Fee and reward math, rounding and precision loss
- Incentive misalignment that rational actors can exploit
"""


class DeFiAnalyzer(Analyzer):
    agent_id = "defi"
    name = "DeFi Analyzer"
    description = "DeFi protocol risks: oracles, liquidity, flash loans"
    categories = "defi|liquidity|oracle|flash-loan|price-manipulation|other"
    priority = 4

    def get_system_prompt(self) -> str:
        return """You are a DeFi protocol security specialist.

Focus on:
- Oracle manipulation and spot-price dependencies
- Flash-loan attack surfaces
- Liquidity, share pricing and donation attacks
"""


class CrossChainAnalyzer(Analyzer):
    agent_id = "crossChain"
    name = "Cross-Chain Analyzer"
    description = "Bridge and messaging risks: replay, validation, finality"
    categories = "replay|signature-replay|bridge|validation|other"
    priority = 2

    def get_system_prompt(self) -> str:
        return """You are a cross-chain bridge security specialist.

Focus on:
- Message replay and missing nonce tracking
- Signatures that do not bind the chain id
- Trust assumptions on relayers and validators
"""


class MEVAnalyzer(Analyzer):
    agent_id = "mev"
    name = "MEV Analyzer"
    description = "Front-running, sandwiching and ordering dependence"
    categories = "front-running|slippage|weak-randomness|ordering|other"
    priority = 2

    def get_system_prompt(self) -> str:
        return """You are an MEV and transaction-ordering specialist.

Focus on:
- Missing slippage bounds and deadlines
- Front-running and sandwich opportunities
- Randomness derived from block data
"""


class GasOptimizationAnalyzer(Analyzer):
    agent_id = "gasOptimization"
    name = "Gas Optimization Analyzer"
    description = "Gas usage and storage layout optimizations"
    categories = "gas|other"
    output_extension = GAS_OUTPUT_EXTENSION
    priority = 1

    def get_system_prompt(self) -> str:
        return """You are a Solidity gas optimization expert.

Report savings under gasOptimizations. Only list vulnerabilities if you see a real security defect.
"""


class GovernanceAnalyzer(Analyzer):
    agent_id = "governance"
    name = "Governance Analyzer"
    description = "Voting, proposal execution and admin control"
    categories = "governance|access-control|centralization|other"
    priority = 2

    def get_system_prompt(self) -> str:
        return """You are a DAO governance security specialist.

Focus on:
- Voting power that can be borrowed (flash-loan voting)
- Proposal execution without timelocks
- Centralized admin powers and upgrade control
"""


SUPPORTED_AGENTS = frozenset(ANALYZERS)


def available_agents() -> List[Dict[str, str]]:
    """catalog of supported agents"""
    return [
        {"id": cls.agent_id, "name": cls.name, "description": cls.description}
        for cls in ANALYZERS.values()
    ]


def agent_priority(agent_id: str) -> int:
    cls = ANALYZERS.get(agent_id)
    return cls.priority if cls else 0


def create_analyzer(agent_id: str, backend: InferenceBackend) -> Optional[Analyzer]:
    cls = ANALYZERS.get(agent_id)
    return cls(backend) if cls else None
