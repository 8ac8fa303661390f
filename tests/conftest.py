"""
Pytest fixtures for the ethbind tests.
"""
import time
from typing import Any, Dict, Iterable, Optional
from unittest.mock import MagicMock

import pytest
from eth_utils import to_checksum_address

from ethbind._rate_limited_log import reset_rate_limits
from ethbind.abi import encode_tuple
from ethbind.config import EthereumConfig, NetworkConfig
from ethbind.models import Log, TxReceipt
from ethbind.signer import LocalSigner
from ethbind.transport import Transport

# Well-known development key (hardhat / anvil account #0)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

TOKEN_ADDRESS = to_checksum_address("0x" + "ab" * 20)
ALICE = to_checksum_address("0x" + "11" * 20)
BOB = to_checksum_address("0x" + "22" * 20)

TX_HASH = "0x" + "aa" * 32
BLOCK_HASH = "0x" + "bb" * 32

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def address_topic(address: str) -> str:
    """Topic word for an indexed address"""
    return "0x" + "00" * 12 + address[2:].lower()


def make_log(
    address: str = TOKEN_ADDRESS,
    topics: Iterable[str] = (),
    data: bytes = b"",
    block_number: int = 1,
    log_index: int = 0,
    tx_hash: str = TX_HASH
) -> Log:
    return Log.from_rpc({
        "address": address,
        "topics": list(topics),
        "data": "0x" + data.hex(),
        "blockNumber": block_number,
        "blockHash": BLOCK_HASH,
        "transactionHash": tx_hash,
        "transactionIndex": 0,
        "logIndex": log_index,
        "removed": False,
    })


def make_transfer_log(sender: str = ALICE, recipient: str = BOB, value: int = 100, **kwargs: Any) -> Log:
    return make_log(
        topics=[TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        data=encode_tuple(["uint256"], [value]),
        **kwargs
    )


def make_receipt(
    status: Optional[int] = 1,
    block_number: int = 10,
    tx_hash: str = TX_HASH,
    logs: Iterable[Log] = (),
    contract_address: Optional[str] = None
) -> TxReceipt:
    raw: Dict[str, Any] = {
        "transactionHash": tx_hash,
        "blockNumber": hex(block_number),
        "blockHash": BLOCK_HASH,
        "gasUsed": "0x5208",
        "from": TEST_ADDRESS,
        "to": TOKEN_ADDRESS,
        "contractAddress": contract_address,
        "logs": list(logs),
    }
    if status is not None:
        raw["status"] = hex(status)
    return TxReceipt.from_rpc(raw)


# Make time.sleep instantaneous so polling loops don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_shared_state():
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    yield
    reset_rate_limits()
    NetworkConfig._networks_cache = None


@pytest.fixture
def transport():
    """Transport mock answering like an idle development node"""
    mock = MagicMock(spec=Transport)
    mock.chain_id.return_value = 1337
    mock.gas_price.return_value = 1_000_000_000
    mock.estimate_gas.return_value = 50_000
    mock.get_transaction_count.return_value = 0
    mock.send_raw_transaction.return_value = TX_HASH
    mock.get_receipt.return_value = None
    mock.get_code.return_value = b"\x60\x80"
    mock.block_number.return_value = 100
    mock.get_logs.return_value = []
    mock.new_filter.return_value = "0xfilter"
    mock.get_filter_changes.return_value = []
    mock.uninstall_filter.return_value = True
    return mock


@pytest.fixture
def signer():
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def config():
    """Fast polling settings"""
    return EthereumConfig(
        poll_interval=0.01,
        max_poll_interval=0.05,
        max_attempts=5,
        receipt_timeout=5.0,
        max_transport_retries=2
    )
