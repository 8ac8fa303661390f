"""
Ethereum ABI codec: types, value encoding and signature identifiers.
"""
from .types import (
    AbiType, BoolType, UIntType, IntType, AddressType, FixedBytesType, BytesType,
    StringType, FixedArrayType, DynamicArrayType, TupleType,
    parse_type, parse_abi_param, is_value_type
)
from .codec import (
    encode, decode, encode_tuple, decode_tuple, encode_single, decode_single,
    encode_packed_topic
)
from .signatures import (
    FunctionSignature, EventSignature, EventParam,
    function_selector, event_topic
)

__all__ = [
    "AbiType", "BoolType", "UIntType", "IntType", "AddressType", "FixedBytesType",
    "BytesType", "StringType", "FixedArrayType", "DynamicArrayType", "TupleType",
    "parse_type", "parse_abi_param", "is_value_type",
    "encode", "decode", "encode_tuple", "decode_tuple", "encode_single", "decode_single",
    "encode_packed_topic",
    "FunctionSignature", "EventSignature", "EventParam",
    "function_selector", "event_topic",
]
