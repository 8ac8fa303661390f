"""
Tests for call data assembly, return decoding and revert reasons.
"""
import pytest

from ethbind.abi import FunctionSignature, encode_tuple
from ethbind.calls import (
    ERROR_SELECTOR, PANIC_SELECTOR, CallDecoder, build_call, decode_call_arguments,
    decode_return, decode_revert_reason, encode_constructor
)
from ethbind.abi.types import parse_type
from ethbind.exceptions import DecodingError, EncodingError, SelectorMismatch

from conftest import ALICE, BOB

TRANSFER = FunctionSignature.parse("transfer(address,uint256)", outputs=["bool"])

TRANSFER_ABI = [
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "approve",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {"type": "event", "name": "Transfer", "inputs": []},
]


def error_payload(message: str) -> bytes:
    return ERROR_SELECTOR + encode_tuple(["string"], [message])


class TestBuildCall:
    """Tests for build_call."""

    def test_transfer_call_data(self):
        call = build_call(TRANSFER, [BOB, 10])
        assert call.selector == bytes.fromhex("a9059cbb")
        assert call.data[:4] == call.selector
        assert len(call.data) == 4 + 64
        assert call.arguments == encode_tuple(["address", "uint256"], [BOB, 10])
        assert call.hex().startswith("0xa9059cbb")

    def test_argument_count_checked(self):
        with pytest.raises(EncodingError):
            build_call(TRANSFER, [BOB])

    def test_argument_type_checked(self):
        with pytest.raises(EncodingError) as exc_info:
            build_call(TRANSFER, [BOB, -1])
        assert "transfer(address,uint256)" in str(exc_info.value)

    def test_decode_call_arguments(self):
        call = build_call(TRANSFER, [BOB, 10])
        assert decode_call_arguments(TRANSFER, call.data) == [BOB, 10]

    def test_decode_call_arguments_wrong_function(self):
        approve = FunctionSignature.parse("approve(address,uint256)")
        with pytest.raises(SelectorMismatch):
            decode_call_arguments(approve, build_call(TRANSFER, [BOB, 10]).data)


class TestDecodeReturn:
    """Tests for decode_return."""

    def test_single_output(self):
        assert decode_return(encode_tuple(["bool"], [True]), TRANSFER.outputs) == [True]

    def test_hex_payload(self):
        payload = "0x" + encode_tuple(["uint256", "string"], [5, "ok"]).hex()
        assert decode_return(payload, [parse_type("uint256"), parse_type("string")]) == [5, "ok"]

    def test_no_outputs_accepts_empty_payload(self):
        assert decode_return(b"", []) == []
        assert decode_return(None, []) == []

    def test_empty_payload_with_outputs(self):
        with pytest.raises(DecodingError):
            decode_return(b"", TRANSFER.outputs)


class TestRevertReason:
    """Tests for decode_revert_reason."""

    def test_error_string(self):
        assert decode_revert_reason(error_payload("Not enough balance")) == "Not enough balance"
        assert ERROR_SELECTOR.hex() == "08c379a0"

    def test_panic_code(self):
        payload = PANIC_SELECTOR + encode_tuple(["uint256"], [0x11])
        assert PANIC_SELECTOR.hex() == "4e487b71"
        assert decode_revert_reason(payload) == "Panic(0x11): arithmetic overflow or underflow"

    @pytest.mark.parametrize("payload", [None, b"", b"\x01\x02", "0xdeadbeef", ERROR_SELECTOR + b"\x00" * 5])
    def test_absent_or_unknown(self, payload):
        assert decode_revert_reason(payload) is None


class TestEncodeConstructor:
    """Tests for encode_constructor."""

    def test_bytecode_followed_by_arguments(self):
        creation = encode_constructor("0x6080", [parse_type("address")], [ALICE])
        assert creation == b"\x60\x80" + encode_tuple(["address"], [ALICE])

    def test_empty_bytecode(self):
        with pytest.raises(EncodingError):
            encode_constructor(b"")


class TestCallDecoder:
    """Tests for the CallDecoder registry."""

    def test_decode_input(self):
        decoder = CallDecoder()
        decoder.add_abi(TRANSFER_ABI)
        assert len(decoder) == 2

        decoded = decoder.decode_input(build_call(TRANSFER, [BOB, 42]).hex())
        assert decoded.name == "transfer"
        assert decoded.signature == "transfer(address,uint256)"
        assert [(p.name, p.type, p.value) for p in decoded.params] == [
            ("to", "address", BOB),
            ("value", "uint256", 42),
        ]
        assert decoded.as_dict() == {"to": BOB, "value": 42}

    def test_remove_abi(self):
        decoder = CallDecoder()
        decoder.add_abi(TRANSFER_ABI)
        decoder.remove_abi(TRANSFER_ABI[:1])
        assert "0xa9059cbb" not in decoder
        assert len(decoder) == 1
        with pytest.raises(SelectorMismatch):
            decoder.decode_input(build_call(TRANSFER, [BOB, 42]).data)

    def test_short_input(self):
        with pytest.raises(DecodingError):
            CallDecoder().decode_input("0x1234")
