"""
Data models for the ethbind package.
"""
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import InvalidStateTransition
from .utils import hex_to_bytes, to_hex


def _rpc_int(value: Any) -> Any:
    if isinstance(value, str):
        return int(value, 16) if value[:2] in ("0x", "0X") else int(value)
    return value


def _rpc_hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    return value


class Log(BaseModel):
    """An event log as returned by ``eth_getLogs`` or a receipt"""
    model_config = ConfigDict(populate_by_name=True)

    address: str
    topics: List[bytes] = Field(default_factory=list, max_length=4)
    data: bytes = b""
    block_number: Optional[int] = Field(None, alias="blockNumber")
    block_hash: Optional[str] = Field(None, alias="blockHash")
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    transaction_index: Optional[int] = Field(None, alias="transactionIndex")
    log_index: Optional[int] = Field(None, alias="logIndex")
    removed: bool = False

    @field_validator("address", mode="before")
    @classmethod
    def _checksum(cls, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray)):
            value = to_hex(bytes(value))
        return to_checksum_address(value)

    @field_validator("topics", mode="before")
    @classmethod
    def _topics(cls, value: Any) -> Any:
        topics = [hex_to_bytes(t) for t in value]
        for t in topics:
            if len(t) != 32:
                raise ValueError(f"Topic must be 32 bytes, got {len(t)}")
        return topics

    @field_validator("data", mode="before")
    @classmethod
    def _data(cls, value: Any) -> Any:
        return hex_to_bytes(value) if value is not None else b""

    @field_validator("block_number", "transaction_index", "log_index", mode="before")
    @classmethod
    def _ints(cls, value: Any) -> Any:
        return _rpc_int(value)

    @field_validator("block_hash", "transaction_hash", mode="before")
    @classmethod
    def _hashes(cls, value: Any) -> Any:
        return _rpc_hex(value)

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "Log":
        """Build a Log from a JSON-RPC log object or a web3 AttributeDict"""
        return cls.model_validate(dict(raw))


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: Optional[int] = None
    gas_used: int = Field(0, alias="gasUsed")
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    logs: List[Log] = Field(default_factory=list)

    @field_validator("block_number", "status", "gas_used", mode="before")
    @classmethod
    def _ints(cls, value: Any) -> Any:
        return _rpc_int(value)

    @field_validator("tx_hash", "block_hash", mode="before")
    @classmethod
    def _hashes(cls, value: Any) -> Any:
        return _rpc_hex(value)

    @field_validator("logs", mode="before")
    @classmethod
    def _logs(cls, value: Any) -> Any:
        return [v if isinstance(v, Log) else dict(v) for v in (value or [])]

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def status_known(self) -> bool:
        """False for receipts without a ``status`` field (pre-Byzantium)"""
        return self.status is not None

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "TxReceipt":
        """Build a receipt from a JSON-RPC receipt object or a web3 AttributeDict"""
        return cls.model_validate(dict(raw))


class TxState(str, Enum):
    """Transaction lifecycle states"""
    BUILT = "built"
    SUBMITTED = "submitted"
    PENDING = "pending"
    MINED = "mined"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({TxState.CONFIRMED, TxState.REVERTED, TxState.TIMED_OUT})

_TRANSITIONS: Dict[TxState, Tuple[TxState, ...]] = {
    TxState.BUILT: (TxState.SUBMITTED, TxState.MINED),
    TxState.SUBMITTED: (TxState.PENDING, TxState.MINED, TxState.TIMED_OUT),
    TxState.PENDING: (TxState.MINED, TxState.TIMED_OUT),
    TxState.MINED: (TxState.CONFIRMED, TxState.REVERTED),
}


class PendingTransaction:
    """
    Handle for a submitted transaction.

    Created by ``Invoker.submit`` (or ``Invoker.track`` for a known hash) and
    advanced only by the invoker's polling loop. A ``TIMED_OUT`` handle makes
    no claim about the outcome; the transaction may still be mined and can be
    re-polled through a new handle for the same hash.
    """

    def __init__(self, tx_hash: str, sender: Optional[str] = None, nonce: Optional[int] = None,
                 call_data: bytes = b"", to: Optional[str] = None, value: int = 0):
        self.tx_hash = tx_hash
        self.sender = sender
        self.nonce = nonce
        self.call_data = call_data
        self.to = to
        self.value = value
        self.state = TxState.SUBMITTED
        self.receipt: Optional[TxReceipt] = None
        self.revert_reason: Optional[str] = None
        self.attempts = 0
        self.submitted_at = time.monotonic()
        self._lock = threading.Lock()

    def transition(self, new_state: TxState) -> None:
        """
        Move to ``new_state``.

        Raises:
            InvalidStateTransition: If the lifecycle does not allow the move
        """
        with self._lock:
            allowed = _TRANSITIONS.get(self.state, ())
            if new_state not in allowed:
                raise InvalidStateTransition(
                    f"Transaction {self.tx_hash}: cannot move from {self.state.value} to {new_state.value}"
                )
            self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def confirmed(self) -> bool:
        return self.state == TxState.CONFIRMED

    @property
    def reverted(self) -> bool:
        return self.state == TxState.REVERTED

    @property
    def timed_out(self) -> bool:
        return self.state == TxState.TIMED_OUT

    def __repr__(self) -> str:
        return f"PendingTransaction(tx_hash={self.tx_hash!r}, state={self.state.value})"
