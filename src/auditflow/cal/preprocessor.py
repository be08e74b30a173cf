"""regex-level contract summarizer: name, size, complexity and keyword characteristics"""
import logging
import re
from typing import List, Tuple

from auditflow.models.findings import (
    AnalysisRequest,
    ComplexityClass,
    ContractCharacteristics,
    ContractInfo,
)

logger = logging.getLogger(__name__)


class PreprocessingError(Exception):
    """contract source could not be summarized"""


# string literals are matched first so a "//" inside one is never read as a comment
SOURCE_TOKEN = re.compile(
    r'"(?:\\.|[^"\\\n])*"'
    r"|'(?:\\.|[^'\\\n])*'"
    r'|//[^\n]*'
    r'|/\*.*?(?:\*/|\Z)',
    re.DOTALL,
)
WHITESPACE = re.compile(r'\s+')

CONTRACT_PATTERN = re.compile(r'\b(?:abstract\s+contract|contract|library|interface)\s+(\w+)')
FUNCTION_PATTERN = re.compile(r'\bfunction\s+(\w+)')
MODIFIER_PATTERN = re.compile(r'\bmodifier\s+\w+')
EVENT_PATTERN = re.compile(r'\bevent\s+\w+')
BRANCH_PATTERN = re.compile(r'\bif\b|\bwhile\b|\bfor\b|&&|\|\||\?')

# keyword sets, matched against lowercased code
DEFI_KEYWORDS = (
    'swap', 'pool', 'liquidity', 'stake', 'yield', 'farm', 'vault',
    'lending', 'borrow', 'collateral', 'token', 'erc20', 'ierc20',
)
CROSS_CHAIN_KEYWORDS = (
    'bridge', 'relay', 'crosschain', 'multichain', 'portal',
    'layerzero', 'chainlink', 'axelar', 'wormhole',
)
MEV_KEYWORDS = (
    'flashloan', 'arbitrage', 'frontrun', 'sandwich', 'mev',
    'auction', 'priority', 'mempool', 'bundle',
)
GOVERNANCE_KEYWORDS = ('vote', 'proposal', 'governance', 'delegate', 'quorum')
UPGRADE_KEYWORDS = ('proxy', 'upgrade', 'implementation', 'beacon')
ORACLE_KEYWORDS = ('oracle', 'chainlink', 'price', 'feed', 'aggregator')

PAYABLE_EXTERNAL = re.compile(r'\bfunction\s+\w+\s*\([^)]*\)[^{;]*\bexternal\b[^{;]*\bpayable\b|'
                              r'\bfunction\s+\w+\s*\([^)]*\)[^{;]*\bpayable\b[^{;]*\bexternal\b')

# weighted structure score buckets
LOW_COMPLEXITY_MAX = 20
MEDIUM_COMPLEXITY_MAX = 50


def _drop_comments(source: str, keep_newlines: bool) -> str:
    def replace(match: re.Match) -> str:
        token = match.group(0)
        if token[0] in '"\'':
            return token
        if token.startswith('//'):
            return ''
        return '\n' * token.count('\n') if keep_newlines else ' '

    return SOURCE_TOKEN.sub(replace, source)


def strip_comments(source: str) -> str:
    return _drop_comments(source, keep_newlines=False)


def mask_comments(source: str) -> str:
    """strip comments but keep newlines so line numbers still line up"""
    return _drop_comments(source, keep_newlines=True)


def normalize_source(source: str) -> str:
    """comment-free, whitespace-collapsed source used for fingerprinting"""
    return WHITESPACE.sub(' ', strip_comments(source)).strip()


def cyclomatic_complexity(source: str) -> int:
    """1 + number of branch points (if/while/for/&&/||/?), comments ignored"""
    return 1 + len(BRANCH_PATTERN.findall(strip_comments(source)))


def _count_lines(source: str) -> Tuple[int, int, int]:
    total = code = comments = 0
    in_block = False
    for raw in source.split('\n'):
        total += 1
        line = raw.strip()
        if not line:
            continue
        if in_block:
            comments += 1
            if '*/' in line:
                in_block = False
            continue
        if line.startswith('//'):
            comments += 1
        elif line.startswith('/*'):
            comments += 1
            in_block = '*/' not in line
        else:
            code += 1
    return total, code, comments


def _has_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def extract_characteristics(source: str, functions: List[str]) -> ContractCharacteristics:
    text = source.lower()
    function_names = [name.lower() for name in functions]
    return ContractCharacteristics(
        is_defi=_has_any(text, DEFI_KEYWORDS) or any(_has_any(name, DEFI_KEYWORDS) for name in function_names),
        is_cross_chain=_has_any(text, CROSS_CHAIN_KEYWORDS),
        has_mev_risk=_has_any(text, MEV_KEYWORDS) or bool(PAYABLE_EXTERNAL.search(source)),
        has_governance=_has_any(text, GOVERNANCE_KEYWORDS),
        is_upgradeable=_has_any(text, UPGRADE_KEYWORDS),
        has_oracles=_has_any(text, ORACLE_KEYWORDS),
    )


def classify_complexity(function_count: int, modifier_count: int, event_count: int, contract_count: int) -> ComplexityClass:
    score = function_count * 2 + modifier_count * 1.5 + event_count * 0.5 + contract_count * 3
    if score <= LOW_COMPLEXITY_MAX:
        return ComplexityClass.LOW
    if score <= MEDIUM_COMPLEXITY_MAX:
        return ComplexityClass.MEDIUM
    return ComplexityClass.HIGH


class ContractPreprocessor:
    """turns raw contract source into a ContractInfo, once per request"""

    def preprocess(self, request: AnalysisRequest) -> ContractInfo:
        source = request.contract_code
        if not isinstance(source, str) or not source.strip():
            raise PreprocessingError("contract source is empty")

        clean = strip_comments(source)
        if not clean.strip():
            raise PreprocessingError("contract source contains only comments")

        contracts = CONTRACT_PATTERN.findall(clean)
        functions = FUNCTION_PATTERN.findall(clean)
        modifier_count = len(MODIFIER_PATTERN.findall(clean))
        event_count = len(EVENT_PATTERN.findall(clean))
        total, code, comments = _count_lines(source)

        info = ContractInfo(
            name=self._pick_name(contracts),
            source=source,
            chain=request.chain,
            analysis_mode=request.analysis_mode,
            complexity=classify_complexity(len(functions), modifier_count, event_count, len(contracts)),
            cyclomatic_complexity=cyclomatic_complexity(source),
            size_bytes=len(source.encode('utf-8')),
            line_count=total,
            code_lines=code,
            comment_lines=comments,
            function_count=len(functions),
            modifier_count=modifier_count,
            event_count=event_count,
            functions=tuple(functions),
            characteristics=extract_characteristics(clean, functions),
            contract_address=request.contract_address,
        )
        logger.debug(f"[preprocess] {info!r}", extra={"contract": info.name, "metrics": info.metrics()})
        return info

    @staticmethod
    def _pick_name(contracts: List[str]) -> str:
        # last declared contract is usually the deployable one; interfaces/libraries come first
        if not contracts:
            return "Unknown"
        return contracts[-1]
