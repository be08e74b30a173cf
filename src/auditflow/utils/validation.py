"""input validation for analysis requests"""

from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field
import re

from auditflow.models.findings import AnalysisMode, AnalysisRequest


class ValidationError(Exception):
    """bad input, never retried"""


class RequestValidationError(ValidationError):
    """analysis request payload rejected"""

    def __init__(self, result: "ValidationResult"):
        self.result = result
        super().__init__("; ".join(result.errors) or "invalid request")


@dataclass
class ValidationResult:
    """result of input validation."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid

    def __str__(self) -> str:
        lines = []
        if self.errors:
            lines.append("ERRORS:")
            for error in self.errors:
                lines.append(f"  - {error}")
        if self.warnings:
            lines.append("WARNINGS:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")
        return "\n".join(lines) if lines else "Validation passed"

    def add_error(self, error: str) -> None:
        """add an error and mark as invalid."""
        self.errors.append(error)
        self.valid = False

    def add_warning(self, warning: str) -> None:
        """add a warning without invalidating."""
        self.warnings.append(warning)


class RequestValidator:
    """validates analysis requests before they reach the orchestrator."""

    SOLIDITY_PRAGMA_PATTERN = re.compile(r'pragma\s+solidity\s+[\^~>=<\s\d.]+;')
    CONTRACT_KEYWORD_PATTERN = re.compile(r'\b(contract|library|interface)\s+[A-Za-z_]')
    ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{40}$')
    CHAIN_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{1,64}$')

    # 1mb of contract source
    MAX_SOURCE_BYTES = 1024 * 1024

    def validate_source(self, source: Any, result: ValidationResult) -> None:
        if source is None:
            result.add_error("contractCode is required")
            return
        if not isinstance(source, str):
            result.add_error("contractCode must be a string")
            return
        if not source.strip():
            result.add_error("contractCode must not be empty")
            return

        size = len(source.encode("utf-8"))
        if size > self.MAX_SOURCE_BYTES:
            result.add_error(f"contractCode too large: {size} bytes (max {self.MAX_SOURCE_BYTES})")
            return

        if not self.CONTRACT_KEYWORD_PATTERN.search(source):
            result.add_warning("contractCode may not be valid Solidity (no contract/library/interface declaration)")
        if not self.SOLIDITY_PRAGMA_PATTERN.search(source):
            result.add_warning("contractCode has no pragma solidity directive")

    def validate_payload(self, payload: Mapping[str, Any]) -> ValidationResult:
        """validate a raw request payload ({contractCode, chain, agents?, analysisMode?})"""
        result = ValidationResult(valid=True)

        if not isinstance(payload, Mapping):
            result.add_error("request body must be an object")
            return result

        self.validate_source(payload.get("contractCode"), result)

        chain = payload.get("chain", "ethereum")
        if not isinstance(chain, str) or not self.CHAIN_PATTERN.match(chain):
            result.add_error(f"invalid chain identifier: {chain!r}")

        agents = payload.get("agents")
        if agents is not None:
            if not isinstance(agents, (list, tuple)) or not all(isinstance(a, str) for a in agents):
                result.add_error("agents must be a list of agent ids")

        mode = payload.get("analysisMode")
        if mode is not None and mode not in {m.value for m in AnalysisMode}:
            result.add_error(f"invalid analysisMode: {mode!r} (expected quick or comprehensive)")

        address = payload.get("contractAddress")
        if address is not None and (not isinstance(address, str) or not self.ADDRESS_PATTERN.match(address)):
            result.add_error(f"invalid contractAddress: {address!r}")

        return result


def parse_request(payload: Mapping[str, Any], validator: Optional[RequestValidator] = None) -> AnalysisRequest:
    """build an AnalysisRequest from its wire form or raise RequestValidationError"""
    validator = validator or RequestValidator()
    result = validator.validate_payload(payload)
    if not result:
        raise RequestValidationError(result)

    mode = payload.get("analysisMode") or AnalysisMode.COMPREHENSIVE.value
    return AnalysisRequest(
        contract_code=payload["contractCode"],
        chain=payload.get("chain", "ethereum"),
        agents=tuple(payload.get("agents") or ()),
        analysis_mode=AnalysisMode(mode),
        contract_address=payload.get("contractAddress"),
    )


def validate_request(request: AnalysisRequest, validator: Optional[RequestValidator] = None) -> ValidationResult:
    """validate an already-constructed request"""
    validator = validator or RequestValidator()
    payload: Dict[str, Any] = {
        "contractCode": request.contract_code,
        "chain": request.chain,
        "agents": list(request.agents),
        "analysisMode": request.analysis_mode.value if isinstance(request.analysis_mode, AnalysisMode) else request.analysis_mode,
    }
    if request.contract_address is not None:
        payload["contractAddress"] = request.contract_address
    return validator.validate_payload(payload)
