"""
ABI value codec.

Encodes Python values into the 32-byte word format of the Ethereum ABI and
decodes them back. Values are plain Python objects validated against their
AbiType at encode time:

- ``bool`` for ``bool``
- ``int`` for ``uintN``/``intN``
- ``str`` (0x hex) or 20 ``bytes`` for ``address``; decoded as a checksum string
- ``bytes`` (or 0x hex ``str``) for ``bytesN`` and ``bytes``
- ``str`` for ``string``
- ``list``/``tuple`` for arrays (decoded as ``list``) and tuples (decoded as ``tuple``)

Sequences (tuples, array elements, function arguments) use head/tail layout:
static members are written inline in the head, dynamic members are replaced
by an offset, relative to the start of the head, into the tail.
"""
import logging
from typing import Any, List, Sequence, Tuple, Union

from eth_utils import is_address, to_checksum_address

from ..exceptions import DecodingError, EncodingError
from ..utils import ceil32, hex_to_bytes, pad_left, pad_right
from .types import (
    WORD_SIZE, AbiType, AddressType, BoolType, BytesType, DynamicArrayType,
    FixedArrayType, FixedBytesType, IntType, StringType, TupleType, UIntType,
    is_value_type, parse_type
)

logger = logging.getLogger(__name__)

TypeLike = Union[AbiType, str]

_UINT256_MOD = 1 << 256


def _coerce(abi_type: TypeLike) -> AbiType:
    return parse_type(abi_type) if isinstance(abi_type, str) else abi_type


def _uint_word(value: int) -> bytes:
    return value.to_bytes(WORD_SIZE, "big")


# ==================== Encoding ====================

def encode(abi_type: TypeLike, value: Any) -> bytes:
    """
    Encode a single value.

    Args:
        abi_type: Target type (AbiType or type string)
        value: Python value to encode

    Returns:
        The encoding; a whole number of 32-byte words

    Raises:
        EncodingError: If the value does not fit the type
    """
    t = _coerce(abi_type)

    if isinstance(t, BoolType):
        if not isinstance(value, bool):
            raise EncodingError(f"bool expects a bool, got {type(value).__name__}")
        return _uint_word(1 if value else 0)

    if isinstance(t, UIntType):
        _require_int(t, value)
        if value < 0 or value > t.max_value:
            raise EncodingError(f"Value {value} out of range for {t.canonical}")
        return _uint_word(value)

    if isinstance(t, IntType):
        _require_int(t, value)
        if value < t.min_value or value > t.max_value:
            raise EncodingError(f"Value {value} out of range for {t.canonical}")
        return _uint_word(value % _UINT256_MOD)

    if isinstance(t, AddressType):
        return pad_left(_address_bytes(value))

    if isinstance(t, FixedBytesType):
        raw = _as_bytes(t, value)
        if len(raw) != t.size:
            raise EncodingError(f"{t.canonical} expects exactly {t.size} bytes, got {len(raw)}")
        return pad_right(raw)

    if isinstance(t, BytesType):
        raw = _as_bytes(t, value)
        return _uint_word(len(raw)) + pad_right(raw)

    if isinstance(t, StringType):
        if not isinstance(value, str):
            raise EncodingError(f"string expects a str, got {type(value).__name__}")
        raw = value.encode("utf-8")
        return _uint_word(len(raw)) + pad_right(raw)

    if isinstance(t, FixedArrayType):
        items = _as_sequence(t, value)
        if len(items) != t.length:
            raise EncodingError(f"{t.canonical} expects {t.length} elements, got {len(items)}")
        return _encode_sequence([t.item] * t.length, items)

    if isinstance(t, DynamicArrayType):
        items = _as_sequence(t, value)
        return _uint_word(len(items)) + _encode_sequence([t.item] * len(items), items)

    if isinstance(t, TupleType):
        items = _as_sequence(t, value)
        if len(items) != len(t.components):
            raise EncodingError(f"{t.canonical} expects {len(t.components)} members, got {len(items)}")
        return _encode_sequence(t.components, items)

    raise EncodingError(f"Unsupported ABI type: {t!r}")


def _encode_sequence(types: Sequence[AbiType], values: Sequence[Any]) -> bytes:
    head_size = sum(t.head_size for t in types)
    heads: List[bytes] = []
    tails: List[bytes] = []
    tail_offset = head_size

    for t, v in zip(types, values):
        encoded = encode(t, v)
        if t.is_dynamic:
            heads.append(_uint_word(tail_offset))
            tails.append(encoded)
            tail_offset += len(encoded)
        else:
            heads.append(encoded)

    return b"".join(heads) + b"".join(tails)


def encode_tuple(types: Sequence[TypeLike], values: Sequence[Any]) -> bytes:
    """
    Encode a list of values as an ABI tuple (function arguments, event data).

    Raises:
        EncodingError: On count mismatch or invalid values
    """
    resolved = [_coerce(t) for t in types]
    if len(resolved) != len(values):
        raise EncodingError(f"Expected {len(resolved)} values, got {len(values)}")
    return _encode_sequence(resolved, list(values))


def _require_int(t: AbiType, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{t.canonical} expects an int, got {type(value).__name__}")


def _address_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise EncodingError(f"address expects 20 bytes, got {len(value)}")
        return bytes(value)
    if isinstance(value, str) and is_address(value):
        return bytes.fromhex(value[2:] if value[:2] in ("0x", "0X") else value)
    raise EncodingError(f"Invalid address: {value!r}")


def _as_bytes(t: AbiType, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str) and value[:2] in ("0x", "0X"):
        return hex_to_bytes(value)
    raise EncodingError(f"{t.canonical} expects bytes, got {type(value).__name__}")


def _as_sequence(t: AbiType, value: Any) -> List[Any]:
    if not isinstance(value, (list, tuple)):
        raise EncodingError(f"{t.canonical} expects a list or tuple, got {type(value).__name__}")
    return list(value)


def encode_packed_topic(abi_type: TypeLike, value: Any) -> bytes:
    """
    In-place encoding used for indexed event parameters.

    Value types encode to their 32-byte word. ``bytes`` and ``string`` encode
    to their raw contents; arrays and tuples to the concatenation of their
    members, each padded to a multiple of 32 bytes. The Keccak hash of this
    encoding is what a log stores in the topic slot of a reference type.
    """
    t = _coerce(abi_type)
    if is_value_type(t):
        return encode(t, value)
    if isinstance(t, BytesType):
        return _as_bytes(t, value)
    if isinstance(t, StringType):
        if not isinstance(value, str):
            raise EncodingError(f"string expects a str, got {type(value).__name__}")
        return value.encode("utf-8")
    if isinstance(t, (FixedArrayType, DynamicArrayType)):
        items = _as_sequence(t, value)
        if isinstance(t, FixedArrayType) and len(items) != t.length:
            raise EncodingError(f"{t.canonical} expects {t.length} elements, got {len(items)}")
        return b"".join(pad_right(encode_packed_topic(t.item, v)) for v in items)
    if isinstance(t, TupleType):
        items = _as_sequence(t, value)
        if len(items) != len(t.components):
            raise EncodingError(f"{t.canonical} expects {len(t.components)} members, got {len(items)}")
        return b"".join(pad_right(encode_packed_topic(c, v)) for c, v in zip(t.components, items))
    raise EncodingError(f"Unsupported ABI type: {t!r}")


# ==================== Decoding ====================

def decode(abi_type: TypeLike, data: bytes, offset: int = 0) -> Tuple[Any, int]:
    """
    Decode a single value whose encoding starts at ``offset``.

    For a static type the encoding is its inline head; for a dynamic type it
    is the data region an offset points to.

    Args:
        abi_type: Type to decode (AbiType or type string)
        data: Buffer holding the encoding
        offset: Start of the encoding in ``data``

    Returns:
        Tuple of (value, bytes consumed)

    Raises:
        DecodingError: On truncated buffers, out-of-bounds offsets or lengths,
            and non-canonical padding
    """
    t = _coerce(abi_type)
    value, end = _decode_at(t, bytes(data), offset)
    return value, end - offset


def decode_tuple(types: Sequence[TypeLike], data: bytes) -> List[Any]:
    """
    Decode ``data`` as an ABI tuple of ``types``.

    Returns:
        Decoded values in declaration order
    """
    resolved = [_coerce(t) for t in types]
    values, _ = _decode_sequence(resolved, bytes(data), 0)
    return values


def _read_word(data: bytes, pos: int) -> bytes:
    if pos < 0 or pos + WORD_SIZE > len(data):
        raise DecodingError(
            f"Truncated data: need 32 bytes at offset {pos}, buffer holds {len(data)}"
        )
    return data[pos:pos + WORD_SIZE]


def _read_uint(data: bytes, pos: int) -> int:
    return int.from_bytes(_read_word(data, pos), "big")


def _decode_at(t: AbiType, data: bytes, pos: int) -> Tuple[Any, int]:
    if isinstance(t, BoolType):
        raw = _read_uint(data, pos)
        if raw not in (0, 1):
            raise DecodingError(f"Invalid bool word at offset {pos}: {raw}")
        return raw == 1, pos + WORD_SIZE

    if isinstance(t, UIntType):
        raw = _read_uint(data, pos)
        if raw > t.max_value:
            raise DecodingError(f"Value at offset {pos} exceeds {t.canonical}")
        return raw, pos + WORD_SIZE

    if isinstance(t, IntType):
        raw = int.from_bytes(_read_word(data, pos), "big", signed=True)
        if raw < t.min_value or raw > t.max_value:
            raise DecodingError(f"Value at offset {pos} exceeds {t.canonical}")
        return raw, pos + WORD_SIZE

    if isinstance(t, AddressType):
        word = _read_word(data, pos)
        if any(word[:12]):
            raise DecodingError(f"Invalid address padding at offset {pos}")
        return to_checksum_address(word[12:]), pos + WORD_SIZE

    if isinstance(t, FixedBytesType):
        word = _read_word(data, pos)
        if any(word[t.size:]):
            raise DecodingError(f"Invalid {t.canonical} padding at offset {pos}")
        return word[:t.size], pos + WORD_SIZE

    if isinstance(t, (BytesType, StringType)):
        length = _read_uint(data, pos)
        start = pos + WORD_SIZE
        if length > len(data) - start:
            raise DecodingError(
                f"{t.canonical} length {length} at offset {pos} exceeds buffer of {len(data)} bytes"
            )
        raw = data[start:start + length]
        end = min(start + ceil32(length), len(data))
        if isinstance(t, StringType):
            try:
                return raw.decode("utf-8"), end
            except UnicodeDecodeError as e:
                raise DecodingError(f"Invalid UTF-8 in string at offset {pos}: {e}") from e
        return raw, end

    if isinstance(t, FixedArrayType):
        values, end = _decode_sequence([t.item] * t.length, data, pos)
        return values, end

    if isinstance(t, DynamicArrayType):
        count = _read_uint(data, pos)
        start = pos + WORD_SIZE
        # every element needs at least one head word
        if count > (len(data) - start) // max(t.item.head_size, WORD_SIZE):
            raise DecodingError(
                f"{t.canonical} length {count} at offset {pos} exceeds buffer of {len(data)} bytes"
            )
        values, end = _decode_sequence([t.item] * count, data, start)
        return values, end

    if isinstance(t, TupleType):
        values, end = _decode_sequence(list(t.components), data, pos)
        return tuple(values), end

    raise DecodingError(f"Unsupported ABI type: {t!r}")


def _decode_sequence(types: Sequence[AbiType], data: bytes, base: int) -> Tuple[List[Any], int]:
    values: List[Any] = []
    pos = base
    end = base

    for t in types:
        if t.is_dynamic:
            rel = _read_uint(data, pos)
            target = base + rel
            if target >= len(data):
                raise DecodingError(
                    f"Offset {rel} for {t.canonical} at {pos} points outside buffer of {len(data)} bytes"
                )
            value, value_end = _decode_at(t, data, target)
            pos += WORD_SIZE
            end = max(end, value_end)
        else:
            value, pos = _decode_at(t, data, pos)
        values.append(value)

    return values, max(pos, end)


def encode_single(type_str: str, value: Any) -> bytes:
    """Encode one value given its type string."""
    return encode(parse_type(type_str), value)


def decode_single(type_str: str, data: bytes) -> Any:
    """Decode one value, given its type string, from the start of ``data``."""
    return decode(parse_type(type_str), data, 0)[0]
