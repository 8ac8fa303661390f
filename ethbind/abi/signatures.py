"""
Function and event signatures.

A signature is an immutable description of a contract function or event.
Its identifier is the Keccak-256 hash of the canonical signature string
``name(type1,type2,...)``: the first 4 bytes for a function selector, the
full 32 bytes for an event topic.
"""
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import EncodingError
from ..utils import keccak256, to_hex
from .types import AbiType, parse_abi_param, parse_type, split_types

READ_ONLY_MUTABILITY = ("view", "pure")


@lru_cache(maxsize=4096)
def signature_hash(canonical_signature: str) -> bytes:
    """Keccak-256 hash of a canonical signature string."""
    return keccak256(canonical_signature.encode("utf-8"))


def function_selector(canonical_signature: str) -> bytes:
    """
    4-byte selector of a canonical function signature.

    >>> function_selector("transfer(address,uint256)").hex()
    'a9059cbb'
    """
    return signature_hash(canonical_signature)[:4]


def event_topic(canonical_signature: str) -> bytes:
    """32-byte topic of a canonical event signature."""
    return signature_hash(canonical_signature)


@dataclass(frozen=True)
class FunctionSignature:
    """
    Immutable description of a contract function.

    Attributes:
        name: Function name
        inputs: Input types in declaration order
        outputs: Output types in declaration order
        input_names: Input parameter names (may be empty strings)
        output_names: Output names (may be empty strings)
        state_mutability: ``view``, ``pure``, ``nonpayable`` or ``payable``
    """
    name: str
    inputs: Tuple[AbiType, ...] = ()
    outputs: Tuple[AbiType, ...] = ()
    input_names: Tuple[str, ...] = field(default=(), compare=False)
    output_names: Tuple[str, ...] = field(default=(), compare=False)
    state_mutability: str = field(default="nonpayable", compare=False)

    @property
    def canonical(self) -> str:
        return f"{self.name}(" + ",".join(t.canonical for t in self.inputs) + ")"

    @property
    def selector(self) -> bytes:
        return function_selector(self.canonical)

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in READ_ONLY_MUTABILITY

    @property
    def is_payable(self) -> bool:
        return self.state_mutability == "payable"

    @classmethod
    def parse(
        cls,
        signature: str,
        outputs: Optional[List[str]] = None,
        state_mutability: str = "nonpayable"
    ) -> "FunctionSignature":
        """
        Build a signature from a string such as ``"transfer(address,uint256)"``.

        Args:
            signature: Function signature text; ``uint`` style aliases are normalized
            outputs: Optional output type strings
            state_mutability: Mutability of the function

        Raises:
            EncodingError: If the signature text is malformed
        """
        name, inputs = _split_signature(signature)
        return cls(
            name=name,
            inputs=tuple(parse_type(t) for t in inputs),
            outputs=tuple(parse_type(t) for t in (outputs or [])),
            state_mutability=state_mutability
        )

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "FunctionSignature":
        """Build a signature from a JSON ABI ``function`` entry."""
        inputs = entry.get("inputs", [])
        outputs = entry.get("outputs", []) or []
        mutability = entry.get("stateMutability")
        if mutability is None:
            # pre-0.5 ABI files only carry the constant/payable flags
            if entry.get("constant"):
                mutability = "view"
            elif entry.get("payable"):
                mutability = "payable"
            else:
                mutability = "nonpayable"
        return cls(
            name=entry.get("name", ""),
            inputs=tuple(parse_abi_param(p) for p in inputs),
            outputs=tuple(parse_abi_param(p) for p in outputs),
            input_names=tuple(p.get("name", "") for p in inputs),
            output_names=tuple(p.get("name", "") for p in outputs),
            state_mutability=mutability
        )

    def __str__(self) -> str:
        return self.canonical


@dataclass(frozen=True)
class EventParam:
    """One event parameter."""
    name: str
    type: AbiType
    indexed: bool = False


@dataclass(frozen=True)
class EventSignature:
    """
    Immutable description of a contract event.

    Non-anonymous events use ``topics[0]`` for the event topic and may index
    up to 3 parameters; anonymous events have no topic slot and may index up
    to 4.
    """
    name: str
    params: Tuple[EventParam, ...] = ()
    anonymous: bool = False

    def __post_init__(self):
        limit = 4 if self.anonymous else 3
        if len(self.indexed_params) > limit:
            raise EncodingError(
                f"Event {self.name} indexes {len(self.indexed_params)} parameters, at most {limit} allowed"
            )

    @property
    def canonical(self) -> str:
        return f"{self.name}(" + ",".join(p.type.canonical for p in self.params) + ")"

    @property
    def topic(self) -> bytes:
        return event_topic(self.canonical)

    @property
    def topic_hex(self) -> str:
        return to_hex(self.topic)

    @property
    def indexed_params(self) -> Tuple[EventParam, ...]:
        return tuple(p for p in self.params if p.indexed)

    @property
    def data_params(self) -> Tuple[EventParam, ...]:
        return tuple(p for p in self.params if not p.indexed)

    @property
    def topic_count(self) -> int:
        """Number of topics a matching log carries."""
        return len(self.indexed_params) + (0 if self.anonymous else 1)

    @classmethod
    def parse(cls, signature: str, indexed: Optional[List[bool]] = None, names: Optional[List[str]] = None,
              anonymous: bool = False) -> "EventSignature":
        """
        Build an event from text such as ``"Transfer(address,address,uint256)"``.

        Args:
            signature: Event signature text
            indexed: Indexed flags per parameter (default: none indexed)
            names: Parameter names (default: ``arg0``, ``arg1``, ...)
            anonymous: Whether the event is anonymous
        """
        name, types = _split_signature(signature)
        indexed = indexed or [False] * len(types)
        names = names or [f"arg{i}" for i in range(len(types))]
        if len(indexed) != len(types) or len(names) != len(types):
            raise EncodingError(f"Parameter metadata does not match {signature}")
        return cls(
            name=name,
            params=tuple(
                EventParam(n, parse_type(t), flag) for n, t, flag in zip(names, types, indexed)
            ),
            anonymous=anonymous
        )

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "EventSignature":
        """Build an event from a JSON ABI ``event`` entry."""
        params = []
        for i, p in enumerate(entry.get("inputs", [])):
            params.append(EventParam(p.get("name") or f"arg{i}", parse_abi_param(p), bool(p.get("indexed"))))
        return cls(name=entry["name"], params=tuple(params), anonymous=bool(entry.get("anonymous")))

    def __str__(self) -> str:
        return self.canonical


def _split_signature(signature: str) -> Tuple[str, Tuple[str, ...]]:
    text = signature.strip().replace(" ", "")
    paren = text.find("(")
    if paren <= 0 or not text.endswith(")"):
        raise EncodingError(f"Invalid signature: {signature}")
    return text[:paren], split_types(text[paren + 1:-1])
