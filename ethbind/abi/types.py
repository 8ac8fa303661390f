"""
ABI type model.

The ABI type universe is closed: every type is one of the frozen dataclasses
below. Codec functions switch over these variants instead of dispatching on
per-type objects.
"""
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Tuple

from ..exceptions import EncodingError

WORD_SIZE = 32


@dataclass(frozen=True)
class AbiType:
    """Base class for ABI types."""

    @property
    def canonical(self) -> str:
        raise NotImplementedError

    @property
    def is_dynamic(self) -> bool:
        return False

    @property
    def head_size(self) -> int:
        """Bytes this type occupies in the head of an enclosing sequence."""
        return WORD_SIZE

    def __str__(self) -> str:
        return self.canonical


@dataclass(frozen=True)
class BoolType(AbiType):
    @property
    def canonical(self) -> str:
        return "bool"


@dataclass(frozen=True)
class UIntType(AbiType):
    bits: int = 256

    def __post_init__(self):
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"uint{self.bits}"

    @property
    def max_value(self) -> int:
        return (1 << self.bits) - 1


@dataclass(frozen=True)
class IntType(AbiType):
    bits: int = 256

    def __post_init__(self):
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"int{self.bits}"

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1))

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1


@dataclass(frozen=True)
class AddressType(AbiType):
    @property
    def canonical(self) -> str:
        return "address"


@dataclass(frozen=True)
class FixedBytesType(AbiType):
    size: int = 32

    def __post_init__(self):
        if not 1 <= self.size <= WORD_SIZE:
            raise EncodingError(f"bytesN size must be in 1..32, got {self.size}")

    @property
    def canonical(self) -> str:
        return f"bytes{self.size}"


@dataclass(frozen=True)
class BytesType(AbiType):
    @property
    def canonical(self) -> str:
        return "bytes"

    @property
    def is_dynamic(self) -> bool:
        return True


@dataclass(frozen=True)
class StringType(AbiType):
    @property
    def canonical(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True


@dataclass(frozen=True)
class FixedArrayType(AbiType):
    item: AbiType
    length: int

    def __post_init__(self):
        if self.length < 1:
            raise EncodingError(f"Fixed array length must be positive, got {self.length}")

    @property
    def canonical(self) -> str:
        return f"{self.item.canonical}[{self.length}]"

    @property
    def is_dynamic(self) -> bool:
        return self.item.is_dynamic

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        return self.item.head_size * self.length


@dataclass(frozen=True)
class DynamicArrayType(AbiType):
    item: AbiType

    @property
    def canonical(self) -> str:
        return f"{self.item.canonical}[]"

    @property
    def is_dynamic(self) -> bool:
        return True


@dataclass(frozen=True)
class TupleType(AbiType):
    components: Tuple[AbiType, ...] = ()

    @property
    def canonical(self) -> str:
        return "(" + ",".join(c.canonical for c in self.components) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(c.is_dynamic for c in self.components)

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        return sum(c.head_size for c in self.components)


def _check_bits(bits: int) -> None:
    if bits < 8 or bits > 256 or bits % 8:
        raise EncodingError(f"Integer width must be a multiple of 8 in 8..256, got {bits}")


def is_value_type(abi_type: AbiType) -> bool:
    """True for types that fit a single word and are stored directly in topics."""
    return isinstance(abi_type, (BoolType, UIntType, IntType, AddressType, FixedBytesType))


_ELEMENTARY = {
    "bool": BoolType(),
    "address": AddressType(),
    "bytes": BytesType(),
    "string": StringType(),
    "uint": UIntType(256),
    "int": IntType(256),
    "byte": FixedBytesType(1),
}

_SIZED = re.compile(r"^(uint|int|bytes)(\d+)$")
_SUFFIX = re.compile(r"\[(\d*)\]$")


@lru_cache(maxsize=1024)
def parse_type(type_str: str) -> AbiType:
    """
    Parse a type string into an AbiType.

    Accepts canonical spellings as well as the ``uint``/``int``/``byte``
    aliases, tuple syntax ``(t1,t2)`` and any number of array suffixes.

    Args:
        type_str: Type string, e.g. ``"uint256"`` or ``"(address,bytes)[]"``

    Returns:
        The parsed AbiType

    Raises:
        EncodingError: If the string is not a valid ABI type
    """
    s = type_str.strip().replace(" ", "")
    if not s:
        raise EncodingError("Empty type string")

    suffix = _SUFFIX.search(s)
    if suffix:
        inner = parse_type(s[:suffix.start()])
        if suffix.group(1) == "":
            return DynamicArrayType(inner)
        return FixedArrayType(inner, int(suffix.group(1)))

    if s.startswith("("):
        if not s.endswith(")"):
            raise EncodingError(f"Unbalanced tuple type: {type_str}")
        return TupleType(tuple(parse_type(part) for part in split_types(s[1:-1])))

    if s.startswith("tuple"):
        raise EncodingError("'tuple' needs components; use parse_abi_param for JSON ABI entries")

    if s in _ELEMENTARY:
        return _ELEMENTARY[s]

    match = _SIZED.match(s)
    if match:
        kind, size = match.group(1), int(match.group(2))
        if kind == "uint":
            return UIntType(size)
        if kind == "int":
            return IntType(size)
        return FixedBytesType(size)

    raise EncodingError(f"Unsupported ABI type: {type_str}")


def split_types(inner: str) -> Tuple[str, ...]:
    """Split a comma separated type list, respecting nested parentheses."""
    if not inner:
        return ()
    parts = []
    depth = 0
    start = 0
    for i, ch in enumerate(inner):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise EncodingError(f"Unbalanced parentheses in '{inner}'")
        elif ch == "," and depth == 0:
            parts.append(inner[start:i])
            start = i + 1
    if depth != 0:
        raise EncodingError(f"Unbalanced parentheses in '{inner}'")
    parts.append(inner[start:])
    return tuple(parts)


def parse_abi_param(param: Dict[str, Any]) -> AbiType:
    """
    Parse a JSON ABI parameter entry, resolving ``tuple`` components.

    Args:
        param: Entry such as ``{"name": "to", "type": "address"}``

    Returns:
        The parsed AbiType
    """
    type_str = param["type"]
    if not type_str.startswith("tuple"):
        return parse_type(type_str)

    base: AbiType = TupleType(tuple(parse_abi_param(c) for c in param.get("components", [])))
    for dim in re.findall(r"\[(\d*)\]", type_str[len("tuple"):]):
        base = DynamicArrayType(base) if dim == "" else FixedArrayType(base, int(dim))
    return base
