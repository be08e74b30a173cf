"""
pattern-based contract heuristics

Line-aware regex checks grouped by agent focus. They back the offline
inference backend so the pipeline produces real findings without a model
service, and they are deliberately conservative: every hit carries a
confidence that the aggregator thresholds like any model-reported finding.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from auditflow.cal.preprocessor import mask_comments


@dataclass
class FunctionSpan:
    """one function with its header and body, line numbers are 1-based"""
    name: str
    header: str
    start_line: int
    end_line: int
    body_lines: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(text for _, text in self.body_lines)

    @property
    def length(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def is_public(self) -> bool:
        return bool(re.search(r'\b(public|external)\b', self.header))


@dataclass
class HeuristicFinding:
    name: str
    category: str
    severity: str
    confidence: float
    lines: Tuple[int, int]
    description: str
    recommendation: str
    impact: str = ""

    def to_payload(self) -> Dict:
        start, end = self.lines
        return {
            "name": self.name,
            "description": self.description,
            "severity": self.severity,
            "category": self.category,
            "affectedLines": list(range(start, end + 1)),
            "recommendation": self.recommendation,
            "impact": self.impact,
            "confidence": self.confidence,
        }


@dataclass
class GasNote:
    description: str
    lines: Tuple[int, ...]
    potential_savings: str
    implementation: str

    def to_payload(self) -> Dict:
        return {
            "description": self.description,
            "affectedLines": list(self.lines),
            "potentialSavings": self.potential_savings,
            "implementation": self.implementation,
        }


FUNCTION_START = re.compile(r'\bfunction\s+(\w+)\s*\(')
STATE_VAR_DECL = re.compile(
    r'^\s*(?:mapping\s*\(.*\)|[A-Za-z_][\w.]*(?:\[\d*\])*)\s+'
    r'(?:(?:public|private|internal|constant|immutable|override)\s+)*'
    r'([A-Za-z_]\w*)\s*(?:=[^;]*)?;\s*$'
)

EXTERNAL_CALL = re.compile(r'\.call\s*[{(]|\.send\s*\(|\.transfer\s*\(\s*[^,()]*\)')
LOW_LEVEL_CALL = re.compile(r'\.(call|send)\s*[{(]')
INDEXED_WRITE = re.compile(r'\b(\w+)\s*(?:\[[^\]]*\])+\s*(?:[-+*/]?=)(?!=)')
PLAIN_WRITE = re.compile(r'(?<![.\w])(\w+)\s*(?:[-+*/]?=)(?!=)')
DELETE_WRITE = re.compile(r'\bdelete\s+(\w+)')
REENTRANCY_GUARD = re.compile(r'\bnonReentrant\b|\bnoReentrancy\b|\block\b')
ACCESS_GUARD = re.compile(r'\bonly\w*\b|\bauth\b|\brequiresAuth\b|\bhasRole\b|\bonlyRole\b')
SENDER_CHECK = re.compile(r'msg\.sender\s*==|==\s*msg\.sender|_checkOwner\s*\(|hasRole\s*\(|_msgSender\(\)\s*==')
PRIVILEGED_NAME = re.compile(
    r'^(set|update|change|withdrawAll|mint|burn|pause|unpause|upgrade|initialize|'
    r'transferOwnership|sweep|emergency|kill|destroy)', re.IGNORECASE
)
OLD_PRAGMA = re.compile(r'pragma\s+solidity\s*[\^~>=<]*\s*0\.[4-7]\.')
ARITHMETIC = re.compile(r'[^=!<>]\s*(?:\+=|-=|\*=|\+|-|\*)\s*[\w(]')

SKIPPED_IDENTIFIERS = {"return", "if", "require", "emit", "bool", "success", "uint", "uint256", "address"}


class SourceModel:
    """comment-masked, line-indexed view of one contract source"""

    def __init__(self, source: str):
        self.raw = source
        self.text = mask_comments(source)
        self.lines = self.text.split("\n")
        self.functions = self._parse_functions()
        self.state_vars = self._parse_state_vars()

    def _line_of(self, offset: int) -> int:
        return self.text.count("\n", 0, offset) + 1

    def _parse_functions(self) -> List[FunctionSpan]:
        spans = []
        for match in FUNCTION_START.finditer(self.text):
            brace = self.text.find("{", match.end())
            semi = self.text.find(";", match.end())
            if brace == -1 or (semi != -1 and semi < brace):
                continue  # interface or abstract declaration
            depth = 0
            end = brace
            for idx in range(brace, len(self.text)):
                ch = self.text[idx]
                if ch == "{":
                    depth += 1
                elif ch == "}":
                    depth -= 1
                    if depth == 0:
                        end = idx
                        break
            start_line = self._line_of(match.start())
            body_start = self._line_of(brace)
            end_line = self._line_of(end)
            body_lines = [
                (n, self.lines[n - 1]) for n in range(body_start, end_line + 1)
            ]
            spans.append(FunctionSpan(
                name=match.group(1),
                header=self.text[match.start():brace],
                start_line=start_line,
                end_line=end_line,
                body_lines=body_lines,
            ))
        return spans

    def _parse_state_vars(self) -> Set[str]:
        inside: Set[int] = set()
        for fn in self.functions:
            inside.update(range(fn.start_line, fn.end_line + 1))
        names = set()
        for number, line in enumerate(self.lines, start=1):
            if number in inside:
                continue
            match = STATE_VAR_DECL.match(line)
            if match and not line.strip().startswith(("using", "import", "pragma", "return", "emit")):
                names.add(match.group(1))
        return names

    def grep(self, pattern: re.Pattern) -> List[Tuple[int, str]]:
        return [(n, line) for n, line in enumerate(self.lines, start=1) if pattern.search(line)]

    def function_named(self, pattern: re.Pattern) -> List[FunctionSpan]:
        return [fn for fn in self.functions if pattern.search(fn.name)]

    def is_state_write(self, line: str) -> Optional[str]:
        for pattern in (INDEXED_WRITE, DELETE_WRITE):
            match = pattern.search(line)
            if match and (not self.state_vars or match.group(1) in self.state_vars):
                return match.group(1)
        match = PLAIN_WRITE.search(line)
        if match and match.group(1) in self.state_vars and match.group(1) not in SKIPPED_IDENTIFIERS:
            return match.group(1)
        return None


def _included(quick: bool, severity: str) -> bool:
    """quick mode skips low-severity rules"""
    return not (quick and severity == "Low")


# security

def find_reentrancy(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for fn in model.functions:
        if REENTRANCY_GUARD.search(fn.header):
            continue
        call_line = None
        for number, line in fn.body_lines:
            if call_line is None:
                if EXTERNAL_CALL.search(line):
                    call_line = number
                continue
            written = model.is_state_write(line)
            if written:
                findings.append(HeuristicFinding(
                    name="Reentrancy",
                    category="reentrancy",
                    severity="High",
                    confidence=0.9,
                    lines=(call_line, number),
                    description=(
                        f"`{fn.name}` performs an external call on line {call_line} before updating "
                        f"`{written}` on line {number}; a re-entrant caller observes the stale state."
                    ),
                    recommendation=(
                        "Follow checks-effects-interactions: update state before the external call "
                        "or protect the function with a reentrancy guard."
                    ),
                    impact="Repeated withdrawals can drain the contract balance.",
                ))
                break
    return findings


def find_tx_origin(model: SourceModel) -> List[HeuristicFinding]:
    return [
        HeuristicFinding(
            name="tx.origin authentication",
            category="tx-origin",
            severity="High",
            confidence=0.9,
            lines=(n, n),
            description=f"Line {n} relies on tx.origin, which a malicious intermediate contract can spoof.",
            recommendation="Use msg.sender for authorization checks.",
            impact="Phishing contracts can act with the victim's privileges.",
        )
        for n, _ in model.grep(re.compile(r'\btx\.origin\b'))
    ]


def find_delegatecall(model: SourceModel) -> List[HeuristicFinding]:
    return [
        HeuristicFinding(
            name="Delegatecall usage",
            category="delegatecall",
            severity="Medium",
            confidence=0.8,
            lines=(n, n),
            description=f"Line {n} uses delegatecall; the callee executes with this contract's storage.",
            recommendation="Restrict delegatecall targets to trusted, immutable implementations.",
            impact="An attacker-controlled target can overwrite storage or destroy the contract.",
        )
        for n, _ in model.grep(re.compile(r'\.delegatecall\s*\('))
    ]


def find_selfdestruct(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for fn in model.functions:
        for number, line in fn.body_lines:
            if re.search(r'\b(selfdestruct|suicide)\s*\(', line):
                guarded = ACCESS_GUARD.search(fn.header) or SENDER_CHECK.search(fn.body)
                findings.append(HeuristicFinding(
                    name="Unprotected selfdestruct" if not guarded else "Selfdestruct present",
                    category="access-control",
                    severity="High" if not guarded else "Low",
                    confidence=0.85 if not guarded else 0.7,
                    lines=(number, number),
                    description=f"`{fn.name}` can destroy the contract on line {number}.",
                    recommendation="Remove selfdestruct or restrict it to a governed owner.",
                    impact="Contract code and balance can be removed permanently.",
                ))
    return findings


def find_unchecked_calls(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for number, line in model.grep(LOW_LEVEL_CALL):
        stripped = line.strip()
        if re.search(r'\(\s*bool\b|=\s*[\w.]*\.(call|send)|require\s*\(|if\s*\(|assert\s*\(|return\b', stripped):
            continue
        findings.append(HeuristicFinding(
            name="Unchecked low-level call",
            category="unchecked-calls",
            severity="Medium",
            confidence=0.85,
            lines=(number, number),
            description=f"The return value of the low-level call on line {number} is ignored.",
            recommendation="Check the success flag and revert on failure.",
            impact="Failed transfers go unnoticed and accounting diverges.",
        ))
    return findings


def find_timestamp_dependence(model: SourceModel) -> List[HeuristicFinding]:
    pattern = re.compile(r'(if|require|while)\s*\(.*\b(block\.timestamp|now)\b')
    return [
        HeuristicFinding(
            name="Timestamp dependence",
            category="timestamp-dependence",
            severity="Low",
            confidence=0.6,
            lines=(n, n),
            description=f"Control flow on line {n} depends on the block timestamp.",
            recommendation="Tolerate a few seconds of validator drift or use block numbers.",
        )
        for n, _ in model.grep(pattern)
    ]


def find_missing_access_control(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for fn in model.function_named(PRIVILEGED_NAME):
        if not fn.is_public or re.search(r'\b(view|pure)\b', fn.header):
            continue
        if ACCESS_GUARD.search(fn.header) or SENDER_CHECK.search(fn.body):
            continue
        if not any(model.is_state_write(line) for _, line in fn.body_lines) and "selfdestruct" not in fn.body:
            continue
        findings.append(HeuristicFinding(
            name="Missing access control",
            category="access-control",
            severity="High",
            confidence=0.75,
            lines=(fn.start_line, fn.end_line),
            description=f"Privileged function `{fn.name}` changes state without any caller restriction.",
            recommendation="Add an owner or role check (e.g. onlyOwner / AccessControl).",
            impact="Anyone can change critical configuration or mint/withdraw assets.",
        ))
    return findings


def find_legacy_arithmetic(model: SourceModel) -> List[HeuristicFinding]:
    if not OLD_PRAGMA.search(model.text) or "SafeMath" in model.text:
        return []
    hits = [n for fn in model.functions for n, line in fn.body_lines if ARITHMETIC.search(line)]
    if not hits:
        return []
    return [HeuristicFinding(
        name="Unchecked arithmetic",
        category="arithmetic",
        severity="Medium",
        confidence=0.7,
        lines=(hits[0], hits[-1]),
        description="Compiler version predates built-in overflow checks and SafeMath is not used.",
        recommendation="Upgrade to Solidity >=0.8 or use SafeMath for arithmetic.",
        impact="Balances can wrap around on overflow or underflow.",
    )]


# defi / economics

def find_spot_price_oracle(model: SourceModel) -> List[HeuristicFinding]:
    return [
        HeuristicFinding(
            name="Spot price oracle",
            category="oracle",
            severity="High",
            confidence=0.75,
            lines=(n, n),
            description=f"Line {n} reads an instantaneous pool price that can be moved within one transaction.",
            recommendation="Use a TWAP or a decentralized oracle such as Chainlink with staleness checks.",
            impact="Flash-loan price manipulation can drain collateralized positions.",
        )
        for n, _ in model.grep(re.compile(r'\bgetReserves\s*\(|\bslot0\s*\(|\blatestAnswer\s*\('))
    ]


def find_balance_based_pricing(model: SourceModel) -> List[HeuristicFinding]:
    pattern = re.compile(r'balanceOf\s*\(\s*address\s*\(\s*this\s*\)\s*\).*[*/]|[*/].*balanceOf\s*\(\s*address\s*\(\s*this\s*\)\s*\)')
    return [
        HeuristicFinding(
            name="Donation-sensitive share pricing",
            category="price-manipulation",
            severity="Medium",
            confidence=0.65,
            lines=(n, n),
            description=f"Line {n} derives a rate from the contract's own token balance, which direct transfers inflate.",
            recommendation="Track deposits in internal accounting instead of reading balanceOf(this).",
            impact="First depositor / donation attacks skew share prices.",
        )
        for n, _ in model.grep(pattern)
    ]


def find_flash_loan_balance_check(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for fn in model.function_named(re.compile(r'flash', re.IGNORECASE)):
        for number, line in fn.body_lines:
            if re.search(r'(address\s*\(\s*this\s*\)\.balance|balanceOf\s*\(\s*address\s*\(\s*this\s*\)\s*\))\s*>=', line):
                findings.append(HeuristicFinding(
                    name="Balance-based flash loan repayment",
                    category="flash-loan",
                    severity="Medium",
                    confidence=0.7,
                    lines=(fn.start_line, number),
                    description=f"`{fn.name}` validates repayment via the raw balance, which deposits made during the callback also satisfy.",
                    recommendation="Pull repayment explicitly and reject re-entrant deposits during the loan.",
                    impact="Borrowed funds can be re-deposited and later withdrawn as if owned.",
                ))
                break
    return findings


def find_precision_loss(model: SourceModel) -> List[HeuristicFinding]:
    pattern = re.compile(r'\w\s*/\s*[\w.()]+\s*\*\s*\w')
    return [
        HeuristicFinding(
            name="Division before multiplication",
            category="arithmetic",
            severity="Low",
            confidence=0.8,
            lines=(n, n),
            description=f"Line {n} divides before multiplying, truncating intermediate results.",
            recommendation="Multiply first, then divide, or use a fixed-point math library.",
            impact="Rounding errors accumulate in fees and rewards.",
        )
        for n, _ in model.grep(pattern)
    ]


def find_uncapped_mint(model: SourceModel) -> List[HeuristicFinding]:
    if re.search(r'\b(maxSupply|MAX_SUPPLY|cap)\b', model.text):
        return []
    return [
        HeuristicFinding(
            name="Uncapped token supply",
            category="tokenomics",
            severity="Medium",
            confidence=0.6,
            lines=(fn.start_line, fn.end_line),
            description=f"`{fn.name}` increases supply without any maximum supply bound.",
            recommendation="Enforce a supply cap or document the inflation policy.",
            impact="Unbounded inflation dilutes holders.",
        )
        for fn in model.function_named(re.compile(r'^_?mint$', re.IGNORECASE))
        if re.search(r'totalSupply|_totalSupply', fn.body)
    ]


# mev

SWAP_NAME = re.compile(r'swap', re.IGNORECASE)


def find_missing_slippage(model: SourceModel) -> List[HeuristicFinding]:
    findings = []
    for fn in model.function_named(SWAP_NAME):
        if not fn.is_public:
            continue
        if not re.search(r'min\w*|Min\w*', fn.header):
            findings.append(HeuristicFinding(
                name="Missing slippage protection",
                category="slippage",
                severity="Medium",
                confidence=0.75,
                lines=(fn.start_line, fn.start_line),
                description=f"`{fn.name}` accepts no minimum output amount.",
                recommendation="Add an amountOutMin parameter and revert when it is not met.",
                impact="Sandwich attacks extract value from every swap.",
            ))
        if not re.search(r'deadline', fn.header, re.IGNORECASE):
            findings.append(HeuristicFinding(
                name="Missing transaction deadline",
                category="front-running",
                severity="Low",
                confidence=0.7,
                lines=(fn.start_line, fn.start_line),
                description=f"`{fn.name}` has no deadline, so a pending transaction can be executed much later.",
                recommendation="Accept a deadline and require block.timestamp <= deadline.",
            ))
    return findings


def find_weak_randomness(model: SourceModel) -> List[HeuristicFinding]:
    pattern = re.compile(r'keccak256\s*\(.*\b(block\.timestamp|block\.difficulty|block\.prevrandao|blockhash|block\.number)\b')
    return [
        HeuristicFinding(
            name="Predictable randomness",
            category="weak-randomness",
            severity="High",
            confidence=0.85,
            lines=(n, n),
            description=f"Line {n} derives randomness from block data that validators and searchers can predict.",
            recommendation="Use a verifiable randomness source such as Chainlink VRF or commit-reveal.",
            impact="Outcomes can be front-run or chosen by the block producer.",
        )
        for n, _ in model.grep(pattern)
    ]


# cross-chain

def find_signature_replay(model: SourceModel) -> List[HeuristicFinding]:
    if re.search(r'\bchainid\b|block\.chainid|DOMAIN_SEPARATOR|EIP712', model.text):
        return []
    return [
        HeuristicFinding(
            name="Signature replay across chains",
            category="signature-replay",
            severity="Medium",
            confidence=0.75,
            lines=(n, n),
            description=f"Signature recovered on line {n} does not bind the chain id or a domain separator.",
            recommendation="Use EIP-712 typed data with chainId and a per-signer nonce.",
            impact="A signature valid on one chain can be replayed on another.",
        )
        for n, _ in model.grep(re.compile(r'\becrecover\s*\(|\.recover\s*\('))
    ]


def find_message_replay(model: SourceModel) -> List[HeuristicFinding]:
    if re.search(r'\b(nonce|processed|executed|consumed)\w*\s*\[', model.text):
        return []
    handlers = model.function_named(re.compile(r'(receive|execute|process|handle)\w*message|lzReceive|_nonblockingLzReceive', re.IGNORECASE))
    return [
        HeuristicFinding(
            name="Cross-chain message replay",
            category="replay",
            severity="High",
            confidence=0.7,
            lines=(fn.start_line, fn.end_line),
            description=f"`{fn.name}` handles bridged messages without tracking which ones were already processed.",
            recommendation="Record message ids or nonces and reject duplicates.",
            impact="A relayed message can be executed more than once.",
        )
        for fn in handlers if fn.is_public
    ]


# governance

def find_flash_vote(model: SourceModel) -> List[HeuristicFinding]:
    if re.search(r'getPastVotes|getPriorVotes|snapshot', model.text, re.IGNORECASE):
        return []
    findings = []
    for fn in model.function_named(re.compile(r'vote|propose', re.IGNORECASE)):
        for number, line in fn.body_lines:
            if "balanceOf(" in line.replace(" ", ""):
                findings.append(HeuristicFinding(
                    name="Flash-loan voting power",
                    category="governance",
                    severity="High",
                    confidence=0.75,
                    lines=(number, number),
                    description=f"`{fn.name}` weighs votes by the current token balance on line {number}.",
                    recommendation="Use checkpointed voting power from a past block (ERC20Votes).",
                    impact="Borrowed tokens can pass or block proposals.",
                ))
                break
    return findings


def find_missing_timelock(model: SourceModel) -> List[HeuristicFinding]:
    if re.search(r'timelock|\beta\b|delay', model.text, re.IGNORECASE):
        return []
    return [
        HeuristicFinding(
            name="Proposal execution without timelock",
            category="governance",
            severity="Medium",
            confidence=0.65,
            lines=(fn.start_line, fn.end_line),
            description=f"`{fn.name}` executes arbitrary calls with no delay after a proposal passes.",
            recommendation="Queue passed proposals behind a timelock.",
            impact="Token holders cannot exit before a malicious proposal executes.",
        )
        for fn in model.function_named(re.compile(r'^execute', re.IGNORECASE))
        if fn.is_public and LOW_LEVEL_CALL.search(fn.body)
    ]


AGENT_RULES = {
    "security": (
        find_reentrancy, find_tx_origin, find_delegatecall, find_selfdestruct,
        find_unchecked_calls, find_timestamp_dependence, find_missing_access_control,
        find_legacy_arithmetic,
    ),
    "defi": (find_spot_price_oracle, find_balance_based_pricing, find_flash_loan_balance_check),
    "economics": (find_precision_loss, find_uncapped_mint, find_balance_based_pricing),
    "mev": (find_missing_slippage, find_weak_randomness),
    "crossChain": (find_signature_replay, find_message_replay),
    "governance": (find_flash_vote, find_missing_timelock),
    "quality": (),
    "gasOptimization": (),
}


def run_rules(agent_id: str, model: SourceModel, quick: bool = False) -> List[HeuristicFinding]:
    findings = []
    for rule in AGENT_RULES.get(agent_id, ()):
        findings.extend(f for f in rule(model) if _included(quick, f.severity))
    return findings


# gas and quality

def gas_notes(model: SourceModel) -> List[GasNote]:
    notes = []
    length_loops = [n for n, _ in model.grep(re.compile(r'for\s*\([^;]*;[^;]*\.length'))]
    if length_loops:
        notes.append(GasNote(
            description="Cache array length outside of loops",
            lines=tuple(length_loops),
            potential_savings="~100 gas per iteration",
            implementation="Read array.length into a local variable before the loop.",
        ))
    postfix = [n for n, _ in model.grep(re.compile(r'for\s*\(.*\b\w+\+\+\s*\)'))]
    if postfix:
        notes.append(GasNote(
            description="Use prefix increment in loops",
            lines=tuple(postfix),
            potential_savings="~5 gas per iteration",
            implementation="Replace i++ with ++i, or wrap the increment in an unchecked block.",
        ))
    long_reverts = [n for n, line in model.grep(re.compile(r'require\s*\(.*"([^"]{33,})"'))]
    if long_reverts:
        notes.append(GasNote(
            description="Shorten revert strings or use custom errors",
            lines=tuple(long_reverts),
            potential_savings="~deployment cost per string",
            implementation="Declare custom errors and revert with them instead of long strings.",
        ))
    gt_zero = [n for n, _ in model.grep(re.compile(r'require\s*\([^;]*>\s*0\b'))]
    if gt_zero:
        notes.append(GasNote(
            description="Use != 0 instead of > 0 for unsigned comparisons",
            lines=tuple(gt_zero),
            potential_savings="~6 gas per check",
            implementation="Compare unsigned integers with != 0.",
        ))
    return notes


def code_quality(model: SourceModel) -> Tuple[int, List[str], List[str]]:
    """returns (score, issues, strengths)"""
    issues: List[str] = []
    strengths: List[str] = []
    raw = model.raw

    if re.search(r'pragma\s+solidity\s*\^', raw):
        issues.append("Floating pragma; lock the compiler version")
    if "SPDX-License-Identifier" in raw:
        strengths.append("Declares an SPDX license identifier")
    else:
        issues.append("Missing SPDX license identifier")
    if not re.search(r'///|/\*\*|@notice|@dev', raw):
        issues.append("Missing NatSpec documentation")

    writes = any(model.is_state_write(line) for fn in model.functions for _, line in fn.body_lines)
    if re.search(r'\bemit\s+\w+', model.text):
        strengths.append("Emits events for state changes")
    elif writes:
        issues.append("State changes do not emit events")

    if re.search(r'require\s*\([^;]*,\s*"', model.text):
        strengths.append("Input validation with descriptive revert messages")
    if re.search(r'\berror\s+\w+\s*\(', model.text):
        strengths.append("Uses custom errors")
    if re.search(r'nonReentrant|ReentrancyGuard', model.text):
        strengths.append("Uses a reentrancy guard")
    if re.search(r'@openzeppelin', raw):
        strengths.append("Builds on audited OpenZeppelin libraries")

    for fn in model.functions:
        if fn.length > 50:
            issues.append(f"Function `{fn.name}` is long ({fn.length} lines); consider splitting it")

    score = max(40, min(100, 95 - 10 * len(issues) + 2 * len(strengths)))
    return score, issues, strengths


SEVERITY_DEDUCTIONS = {"Critical": 30, "High": 20, "Medium": 10, "Low": 5}


def default_score(findings: List[HeuristicFinding]) -> int:
    """90 when nothing was found, otherwise 100 minus per-severity deductions"""
    if not findings:
        return 90
    deductions = sum(SEVERITY_DEDUCTIONS.get(f.severity, 5) for f in findings)
    return max(0, 100 - deductions)
