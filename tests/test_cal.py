"""tests for contract preprocessing and pattern heuristics"""

import textwrap

import pytest

from auditflow.cal.heuristics import (
    SourceModel,
    code_quality,
    default_score,
    find_missing_access_control,
    find_reentrancy,
    find_selfdestruct,
    find_tx_origin,
    find_unchecked_calls,
    gas_notes,
    run_rules,
)
from auditflow.cal.preprocessor import (
    ContractPreprocessor,
    PreprocessingError,
    classify_complexity,
    cyclomatic_complexity,
    mask_comments,
    normalize_source,
)
from auditflow.models.findings import AnalysisMode, AnalysisRequest, ComplexityClass

from conftest import REENTRANT_VAULT, SAFE_COUNTER


def _model(source):
    return SourceModel(textwrap.dedent(source))


class TestPreprocessor:

    def test_summarizes_contract(self):
        info = ContractPreprocessor().preprocess(AnalysisRequest(contract_code=REENTRANT_VAULT, chain="arbitrum"))
        assert info.name == "Vault"
        assert info.chain == "arbitrum"
        assert info.function_count == 2
        assert info.functions == ("deposit", "withdraw")
        assert info.size_bytes == len(REENTRANT_VAULT.encode("utf-8"))
        assert info.complexity == ComplexityClass.LOW
        assert info.characteristics.is_defi
        assert info.comment_lines == 1
        assert info.metrics()["functionCount"] == 2

    def test_name_is_last_declared_contract(self):
        source = "interface IToken { function f() external; }\nlibrary L {}\ncontract Main {}"
        info = ContractPreprocessor().preprocess(AnalysisRequest(contract_code=source))
        assert info.name == "Main"

    def test_empty_and_comment_only_sources_fail(self):
        with pytest.raises(PreprocessingError):
            ContractPreprocessor().preprocess(AnalysisRequest(contract_code="   "))
        with pytest.raises(PreprocessingError):
            ContractPreprocessor().preprocess(AnalysisRequest(contract_code="// nothing\n/* here */"))

    def test_characteristics_from_keywords(self):
        source = "contract Bridge { function relayMessage() external {} function vote() external {} address proxy; }"
        info = ContractPreprocessor().preprocess(AnalysisRequest(contract_code=source))
        chars = info.characteristics
        assert chars.is_cross_chain
        assert chars.has_governance
        assert chars.is_upgradeable
        assert not chars.has_oracles

    def test_normalize_source_ignores_comments_and_whitespace(self):
        a = "contract A {\n  // comment\n  uint x;\n}"
        b = "contract A { /* other */ uint   x; }"
        assert normalize_source(a) == normalize_source(b)

    def test_comment_markers_inside_strings_are_code(self):
        good = 'contract A { string public url = "https://good.example/a"; }'
        evil = ('contract A { string public url = "https://evil.example/b"; '
                'function kill() public { selfdestruct(payable(msg.sender)); } }')
        assert "selfdestruct" in normalize_source(evil)
        assert normalize_source(good) != normalize_source(evil)
        assert normalize_source('x = "a // b"; // gone') == 'x = "a // b";'
        assert normalize_source("s = 'it/*s'; /* gone */ y;") == "s = 'it/*s'; y;"

    def test_mask_keeps_line_numbers_and_strings(self):
        source = 'a = "//x"; // note\n/* one\ntwo */ b;'
        assert mask_comments(source) == 'a = "//x"; \n\n b;'

    def test_complexity(self):
        assert cyclomatic_complexity("if (a && b) { } // if") == 3
        assert classify_complexity(5, 0, 0, 1) == ComplexityClass.LOW
        assert classify_complexity(15, 2, 2, 1) == ComplexityClass.MEDIUM
        assert classify_complexity(30, 4, 4, 2) == ComplexityClass.HIGH


class TestHeuristics:

    def test_reentrancy_detected_with_lines(self):
        model = SourceModel(REENTRANT_VAULT)
        findings = find_reentrancy(model)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.category == "reentrancy"
        assert finding.severity == "High"
        call_line = next(n for n, line in enumerate(REENTRANT_VAULT.split("\n"), 1) if ".call{" in line)
        assert finding.lines[0] == call_line
        assert finding.lines[1] > call_line

    def test_reentrancy_guard_suppresses_finding(self):
        guarded = REENTRANT_VAULT.replace("function withdraw() external {", "function withdraw() external nonReentrant {")
        assert find_reentrancy(SourceModel(guarded)) == []

    def test_state_update_before_call_is_clean(self):
        model = _model("""
            contract Safe {
                mapping(address => uint256) balances;
                function withdraw() external {
                    uint256 amount = balances[msg.sender];
                    balances[msg.sender] = 0;
                    (bool ok, ) = msg.sender.call{value: amount}("");
                    require(ok);
                }
            }
        """)
        assert find_reentrancy(model) == []

    def test_tx_origin_and_unchecked_call(self):
        model = _model("""
            contract Wallet {
                address owner;
                function pay(address to) external {
                    require(tx.origin == owner);
                    payable(to).send(1 ether);
                }
            }
        """)
        assert [f.category for f in find_tx_origin(model)] == ["tx-origin"]
        assert [f.category for f in find_unchecked_calls(model)] == ["unchecked-calls"]

    def test_missing_access_control_on_setter(self):
        model = _model("""
            contract Config {
                address owner;
                uint256 fee;
                function setFee(uint256 value) external {
                    fee = value;
                }
                function setOwner(address next) external {
                    require(msg.sender == owner);
                    owner = next;
                }
            }
        """)
        findings = find_missing_access_control(model)
        assert len(findings) == 1
        assert "setFee" in findings[0].description

    def test_comments_do_not_trigger_rules(self):
        model = _model("""
            contract Quiet {
                // tx.origin is never used here
                function f() external {}
            }
        """)
        assert find_tx_origin(model) == []

    def test_code_after_url_string_is_analyzed(self):
        model = SourceModel(
            'contract A { string public url = "https://evil.example/b"; '
            'function kill() public { selfdestruct(payable(msg.sender)); } }'
        )
        findings = find_selfdestruct(model)
        assert [f.name for f in findings] == ["Unprotected selfdestruct"]
        assert findings[0].lines == (1, 1)

    def test_quick_mode_skips_low_severity(self):
        model = _model("""
            contract Clock {
                uint256 start;
                function open() external {
                    require(block.timestamp > start);
                }
            }
        """)
        assert [f.severity for f in run_rules("security", model)] == ["Low"]
        assert run_rules("security", model, quick=True) == []

    def test_default_score(self):
        model = SourceModel(REENTRANT_VAULT)
        assert default_score([]) == 90
        assert default_score(run_rules("security", model)) == 80

    def test_gas_and_quality_notes(self):
        model = SourceModel(REENTRANT_VAULT)
        descriptions = [n.description for n in gas_notes(model)]
        assert "Use != 0 instead of > 0 for unsigned comparisons" in descriptions

        score, issues, strengths = code_quality(SourceModel(SAFE_COUNTER))
        assert "Emits events for state changes" in strengths
        assert "Missing SPDX license identifier" in issues
        assert 40 <= score <= 100

    def test_unknown_agent_has_no_rules(self):
        assert run_rules("nonexistent", SourceModel(REENTRANT_VAULT)) == []


def test_quick_mode_request_flows_into_contract_info():
    info = ContractPreprocessor().preprocess(
        AnalysisRequest(contract_code=SAFE_COUNTER, analysis_mode=AnalysisMode.QUICK)
    )
    assert info.analysis_mode == AnalysisMode.QUICK
    assert info.event_count == 1
