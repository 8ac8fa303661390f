"""
Utility functions for the ethbind package.
"""
from typing import Union

from eth_utils import is_hex, keccak

from .exceptions import EncodingError

HexLike = Union[bytes, bytearray, str]


def hex_to_bytes(value: HexLike) -> bytes:
    """
    Convert a hex string (with or without 0x prefix) or bytes-like value to bytes.

    Args:
        value: Hex string or bytes-like value

    Returns:
        Raw bytes

    Raises:
        EncodingError: If the string is not valid hex
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if not isinstance(value, str):
        raise EncodingError(f"Expected hex string or bytes, got {type(value).__name__}")
    if value in ("", "0x", "0X"):
        return b""
    if not is_hex(value):
        raise EncodingError(f"Invalid hex string: {value[:20]}...")
    body = value[2:] if value[:2] in ("0x", "0X") else value
    if len(body) % 2:
        body = "0" + body
    return bytes.fromhex(body)


def to_hex(value: bytes) -> str:
    """Return the 0x-prefixed lowercase hex form of bytes."""
    return "0x" + bytes(value).hex()


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest as used by Ethereum."""
    return keccak(primitive=bytes(data))


def pad_left(data: bytes, size: int = 32) -> bytes:
    return bytes(size - len(data)) + data if len(data) < size else data


def pad_right(data: bytes, size: int = 32) -> bytes:
    remainder = len(data) % size
    if remainder == 0:
        return data
    return data + bytes(size - remainder)


def ceil32(n: int) -> int:
    return n if n % 32 == 0 else n + 32 - (n % 32)
