"""
Call data assembly and return value decoding.

This module never performs I/O: it turns a function signature and arguments
into call data, and return (or revert) payloads back into Python values.
Whether a call reverted or targeted an address without code is decided by
the invoker, not here.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .abi.codec import decode_tuple, encode_tuple
from .abi.signatures import FunctionSignature, function_selector
from .abi.types import AbiType
from .exceptions import DecodingError, EncodingError, SelectorMismatch
from .utils import HexLike, hex_to_bytes, to_hex

logger = logging.getLogger(__name__)

ERROR_SELECTOR = function_selector("Error(string)")  # 0x08c379a0
PANIC_SELECTOR = function_selector("Panic(uint256)")  # 0x4e487b71

PANIC_CODES = {
    0x00: "generic compiler panic",
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum value",
    0x22: "invalid storage byte array encoding",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to zero-initialized function",
}


@dataclass(frozen=True)
class EncodedCall:
    """Selector plus ABI encoded arguments, sent verbatim to the node."""
    selector: bytes
    data: bytes

    def hex(self) -> str:
        return to_hex(self.data)

    @property
    def arguments(self) -> bytes:
        return self.data[4:]


def build_call(signature: FunctionSignature, args: Sequence[Any]) -> EncodedCall:
    """
    Encode a function call.

    Args:
        signature: Function being called
        args: Argument values in declaration order

    Returns:
        EncodedCall with the selector and full call data

    Raises:
        EncodingError: If the argument count or any value does not match
    """
    if len(args) != len(signature.inputs):
        raise EncodingError(
            f"{signature.canonical} takes {len(signature.inputs)} arguments, got {len(args)}"
        )
    try:
        encoded = encode_tuple(signature.inputs, list(args))
    except EncodingError as e:
        raise EncodingError(f"Cannot encode arguments for {signature.canonical}: {e}") from e

    selector = signature.selector
    logger.debug(f"Built call {signature.canonical} selector=0x{selector.hex()} size={4 + len(encoded)}")
    return EncodedCall(selector=selector, data=selector + encoded)


def decode_return(data: Optional[HexLike], outputs: Sequence[AbiType]) -> List[Any]:
    """
    Decode a return payload as a tuple of ``outputs``.

    A function without outputs decodes to an empty list and accepts an empty
    or missing payload.

    Raises:
        DecodingError: If the payload does not hold the declared outputs
    """
    if not outputs:
        return []
    payload = hex_to_bytes(data) if data is not None else b""
    if not payload:
        raise DecodingError(f"Empty return data for {len(outputs)} declared output(s)")
    return decode_tuple(outputs, payload)


def decode_call_arguments(signature: FunctionSignature, data: HexLike) -> List[Any]:
    """
    Decode the arguments of call data produced for ``signature``.

    Raises:
        SelectorMismatch: If the call data targets another function
    """
    payload = hex_to_bytes(data)
    if payload[:4] != signature.selector:
        raise SelectorMismatch(
            f"Call data selector 0x{payload[:4].hex()} is not {signature.canonical}",
            expected=signature.selector,
            actual=payload[:4]
        )
    return decode_tuple(signature.inputs, payload[4:])


def encode_constructor(bytecode: HexLike, types: Sequence[AbiType] = (), args: Sequence[Any] = ()) -> bytes:
    """Creation code: contract bytecode followed by encoded constructor arguments."""
    code = hex_to_bytes(bytecode)
    if not code:
        raise EncodingError("Contract bytecode is empty")
    return code + encode_tuple(list(types), list(args))


def decode_revert_reason(data: Optional[HexLike]) -> Optional[str]:
    """
    Best-effort decoding of revert data.

    Recognizes ``Error(string)`` and ``Panic(uint256)`` payloads. Anything
    else (custom errors, empty data) yields None.
    """
    if data is None:
        return None
    try:
        payload = hex_to_bytes(data)
    except EncodingError:
        return None
    if len(payload) < 4:
        return None

    selector, body = payload[:4], payload[4:]
    try:
        if selector == ERROR_SELECTOR:
            return decode_tuple(["string"], body)[0]
        if selector == PANIC_SELECTOR:
            code = decode_tuple(["uint256"], body)[0]
            return f"Panic(0x{code:02x}): {PANIC_CODES.get(code, 'unknown panic code')}"
    except DecodingError as e:
        logger.debug(f"Malformed revert payload: {e}")
    return None


@dataclass(frozen=True)
class DecodedParam:
    name: str
    type: str
    value: Any


@dataclass(frozen=True)
class DecodedCall:
    """Call data decoded back into a function name and its parameters."""
    name: str
    signature: str
    params: Tuple[DecodedParam, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {p.name: p.value for p in self.params}


class CallDecoder:
    """
    Registry decoding raw call data by selector.

    ABIs are added as JSON ABI lists; every function entry is indexed by its
    selector so arbitrary transaction input can be mapped back to a named
    function and its arguments.
    """

    def __init__(self):
        self._functions: Dict[bytes, FunctionSignature] = {}

    def add_abi(self, abi: Iterable[Dict[str, Any]]) -> None:
        for entry in abi:
            if entry.get("type", "function") == "function" and entry.get("name"):
                fn = FunctionSignature.from_abi(entry)
                self._functions[fn.selector] = fn

    def remove_abi(self, abi: Iterable[Dict[str, Any]]) -> None:
        for entry in abi:
            if entry.get("type", "function") == "function" and entry.get("name"):
                self._functions.pop(FunctionSignature.from_abi(entry).selector, None)

    def add_function(self, signature: FunctionSignature) -> None:
        self._functions[signature.selector] = signature

    def __contains__(self, selector: Union[bytes, str]) -> bool:
        return hex_to_bytes(selector) in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def decode_input(self, data: HexLike) -> DecodedCall:
        """
        Decode call data into a DecodedCall.

        Raises:
            SelectorMismatch: If no registered function has this selector
            DecodingError: If the arguments cannot be decoded
        """
        payload = hex_to_bytes(data)
        if len(payload) < 4:
            raise DecodingError(f"Call data too short for a selector: {len(payload)} bytes")
        fn = self._functions.get(payload[:4])
        if fn is None:
            raise SelectorMismatch(
                f"Unknown selector 0x{payload[:4].hex()}; add the corresponding ABI first",
                actual=payload[:4]
            )

        values = decode_tuple(fn.inputs, payload[4:])
        names = fn.input_names or tuple("" for _ in fn.inputs)
        params = tuple(
            DecodedParam(name or f"arg{i}", t.canonical, v)
            for i, (name, t, v) in enumerate(zip(names, fn.inputs, values))
        )
        return DecodedCall(name=fn.name, signature=fn.canonical, params=params)
