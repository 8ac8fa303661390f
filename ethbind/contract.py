"""
Generic contract bindings.

A ``ContractInterface`` is the data describing one contract (functions,
events, constructor, optional creation bytecode). A ``BoundContract`` pairs
an interface with an address and an ``Invoker``; every contract uses this
single invocation path instead of a generated class per contract.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from eth_utils import is_address, to_checksum_address

from .abi.signatures import EventSignature, FunctionSignature
from .abi.types import AbiType, parse_abi_param
from .calls import CallDecoder, EncodedCall, build_call
from .events import DecodedEvent, EventDecoder, decode, decode_receipt, topic_filter
from .invoker import Invoker
from .models import PendingTransaction, TxReceipt
from .subscriptions import LogSubscription, OverflowPolicy, historical_logs
from .transport import BlockId
from .utils import HexLike, hex_to_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractInterface:
    """
    Function and event tables of one contract.

    Functions are addressable by name, or by canonical signature when the
    name is overloaded (``"transfer(address,uint256)"``).
    """
    name: str
    functions: Tuple[FunctionSignature, ...] = ()
    events: Tuple[EventSignature, ...] = ()
    constructor_inputs: Tuple[AbiType, ...] = ()
    constructor_payable: bool = False
    bytecode: Optional[bytes] = None
    abi: Tuple[Dict[str, Any], ...] = field(default=(), compare=False, repr=False)

    @classmethod
    def from_abi(
        cls,
        abi: Sequence[Dict[str, Any]],
        bytecode: Optional[HexLike] = None,
        name: str = "Contract"
    ) -> "ContractInterface":
        """
        Build an interface from a JSON ABI.

        Entries other than functions, events and the constructor (fallback,
        receive, custom errors) are kept in ``abi`` but not tabled.
        """
        functions: List[FunctionSignature] = []
        events: List[EventSignature] = []
        constructor_inputs: Tuple[AbiType, ...] = ()
        constructor_payable = False

        for entry in abi:
            kind = entry.get("type", "function")
            if kind == "function":
                functions.append(FunctionSignature.from_abi(entry))
            elif kind == "event":
                events.append(EventSignature.from_abi(entry))
            elif kind == "constructor":
                constructor_inputs = tuple(parse_abi_param(p) for p in entry.get("inputs", []))
                constructor_payable = (
                    entry.get("stateMutability") == "payable" or bool(entry.get("payable"))
                )

        return cls(
            name=name,
            functions=tuple(functions),
            events=tuple(events),
            constructor_inputs=constructor_inputs,
            constructor_payable=constructor_payable,
            bytecode=hex_to_bytes(bytecode) if bytecode else None,
            abi=tuple(abi)
        )

    def function(self, key: str) -> FunctionSignature:
        """
        Look up a function by name or canonical signature.

        Raises:
            ValueError: If the function is unknown, or the name is overloaded
        """
        if "(" in key:
            canonical = FunctionSignature.parse(key).canonical
            for f in self.functions:
                if f.canonical == canonical:
                    return f
            raise ValueError(f"{self.name} has no function {key}")

        candidates = [f for f in self.functions if f.name == key]
        if not candidates:
            raise ValueError(f"{self.name} has no function {key}")
        if len(candidates) > 1:
            overloads = ", ".join(f.canonical for f in candidates)
            raise ValueError(f"{self.name}.{key} is overloaded, use one of: {overloads}")
        return candidates[0]

    def event(self, key: str) -> EventSignature:
        """
        Look up an event by name or canonical signature.

        Raises:
            ValueError: If the event is unknown, or the name is overloaded
        """
        if "(" in key:
            canonical = key.replace(" ", "")
            candidates = [e for e in self.events if e.canonical == canonical]
        else:
            candidates = [e for e in self.events if e.name == key]
        if not candidates:
            raise ValueError(f"{self.name} has no event {key}")
        if len(candidates) > 1:
            raise ValueError(f"{self.name}.{key} is overloaded, use its canonical signature")
        return candidates[0]

    @property
    def function_names(self) -> List[str]:
        return sorted({f.name for f in self.functions})

    @property
    def event_names(self) -> List[str]:
        return sorted({e.name for e in self.events})

    def event_decoder(self) -> EventDecoder:
        return EventDecoder(self.events)

    def call_decoder(self) -> CallDecoder:
        decoder = CallDecoder()
        for f in self.functions:
            decoder.add_function(f)
        return decoder

    def with_bytecode(self, bytecode: HexLike) -> "ContractInterface":
        return ContractInterface(
            name=self.name,
            functions=self.functions,
            events=self.events,
            constructor_inputs=self.constructor_inputs,
            constructor_payable=self.constructor_payable,
            bytecode=hex_to_bytes(bytecode),
            abi=self.abi
        )


class BoundContract:
    """
    A contract interface bound to a deployed address.

    Example:
        token = BoundContract(address, load_interface("erc20"), invoker)
        balance = token.call("balanceOf", holder)
        receipt = token.transact("transfer", recipient, 10)
        transfers = token.decode_events("Transfer", receipt)
    """

    def __init__(self, address: str, interface: ContractInterface, invoker: Invoker):
        if not is_address(address):
            raise ValueError(f"Invalid contract address: {address}")
        self.address = to_checksum_address(address)
        self.interface = interface
        self.invoker = invoker

    def __repr__(self) -> str:
        return f"BoundContract({self.interface.name} at {self.address})"

    def encode(self, name: str, *args: Any) -> EncodedCall:
        return build_call(self.interface.function(name), args)

    def call(self, name: str, *args: Any, block: BlockId = "latest", sender: Optional[str] = None) -> Any:
        """
        Read-only call.

        Returns:
            The single output value when the function has one output, the
            list of outputs otherwise (None when it has none)
        """
        signature = self.interface.function(name)
        result = self.invoker.call(self.address, signature, args, block=block, sender=sender)
        if not signature.outputs:
            return None
        if len(signature.outputs) == 1:
            return result[0]
        return result

    def submit(
        self,
        name: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None
    ) -> PendingTransaction:
        """Submit a state-changing call without waiting for the receipt."""
        signature = self.interface.function(name)
        return self.invoker.submit(self.address, signature, args, value=value, gas=gas, gas_price=gas_price)

    def transact(
        self,
        name: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> TxReceipt:
        """
        Submit a state-changing call and wait for it to be mined.

        Raises:
            RevertError: If the transaction reverted
            TransactionTimeoutError: If no receipt arrived in time
        """
        signature = self.interface.function(name)
        return self.invoker.transact(
            self.address, signature, args, value=value, gas=gas, gas_price=gas_price, timeout=timeout
        )

    def decode_events(self, name: str, receipt: Union[TxReceipt, Dict[str, Any]]) -> List[DecodedEvent]:
        """All ``name`` events this contract emitted in ``receipt``."""
        return decode_receipt(receipt, self.interface.event(name), address=self.address)

    def get_logs(
        self,
        name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
        chunk_size: int = 1000,
        **filters: Any
    ) -> Iterator[DecodedEvent]:
        """
        Historical ``name`` events in a block range.

        Args:
            name: Event name
            from_block: First block, inclusive
            to_block: Last block, inclusive (default: current head)
            chunk_size: Blocks per request
            **filters: Values for indexed parameters
        """
        event = self.interface.event(name)
        topics = topic_filter(event, **filters)
        logs = historical_logs(
            self.invoker.transport, self.address, topics, from_block, to_block, chunk_size
        )
        for log in logs:
            yield decode(log, event)

    def subscribe(
        self,
        name: str,
        from_block: BlockId = "latest",
        buffer_size: int = 1024,
        overflow: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
        poll_interval: float = 1.0,
        **filters: Any
    ) -> LogSubscription:
        """
        Live subscription to ``name`` events, delivered decoded.

        The subscription is not started; use it as a context manager or
        call ``start()``.
        """
        event = self.interface.event(name)
        return LogSubscription(
            self.invoker.transport,
            address=self.address,
            topics=topic_filter(event, **filters),
            from_block=from_block,
            event=event,
            buffer_size=buffer_size,
            overflow=overflow,
            poll_interval=poll_interval
        )

    @classmethod
    def deploy(
        cls,
        interface: ContractInterface,
        invoker: Invoker,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> "BoundContract":
        """
        Deploy ``interface`` and bind the result.

        Raises:
            ValueError: If the interface carries no bytecode
        """
        if not interface.bytecode:
            raise ValueError(f"No bytecode available to deploy {interface.name}")
        receipt = invoker.deploy(
            interface.bytecode, interface.constructor_inputs, args, value=value, gas=gas, timeout=timeout
        )
        if not receipt.contract_address:
            raise ValueError(f"Receipt {receipt.tx_hash} carries no contract address")
        return cls(receipt.contract_address, interface, invoker)
