import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from auditflow.config import PipelineConfig  # noqa: E402


REENTRANT_VAULT = """
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Vault {
    mapping(address => uint256) public balances;

    function deposit() external payable {
        balances[msg.sender] += msg.value;
    }

    function withdraw() external {
        uint256 amount = balances[msg.sender];
        require(amount > 0, "empty");
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok, "transfer failed");
        balances[msg.sender] = 0;
    }
}
"""

SAFE_COUNTER = """
pragma solidity ^0.8.0;

/// @notice simple counter
contract Counter {
    uint256 public count;
    event Incremented(uint256 value);

    function increment() external {
        count += 1;
        emit Incremented(count);
    }
}
"""


@pytest.fixture
def settings(tmp_path):
    """isolated settings: ledger and logs under tmp_path, fast retries"""
    cfg = PipelineConfig()
    cfg.PROJECT_ROOT = tmp_path
    cfg.LEDGER_ENABLED = True
    cfg.LEDGER_PATH = tmp_path / "ledger" / "audit.ledger"
    cfg.MAX_CONCURRENT_AGENTS = 6
    cfg.ANALYSIS_TIMEOUT_MS = 5000
    cfg.AGENT_TIMEOUT_MS = None
    cfg.RETRY_ATTEMPTS = 2
    cfg.RETRY_BACKOFF_MS = 0
    cfg.DEFAULT_AGENTS = ("security", "quality")
    cfg.CONFIDENCE_THRESHOLD = 0.7
    cfg.RISK_HIGH_THRESHOLD = 80
    cfg.RISK_MEDIUM_THRESHOLD = 60
    cfg.CACHE_TTL_SECONDS = 3600.0
    cfg.CACHE_MAX_ENTRIES = 256
    cfg.LEDGER_QUEUE_SIZE = 256
    cfg.LLM_API_KEY = ""
    cfg.LOG_EVENTS = False
    cfg.LOG_TO_SQLITE = False
    return cfg
