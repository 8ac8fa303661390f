"""
Tests for the ABI type parser and value codec.
"""
import pytest

from ethbind.abi import (
    AddressType, BoolType, BytesType, DynamicArrayType, FixedArrayType, FixedBytesType,
    IntType, StringType, TupleType, UIntType,
    decode, decode_single, decode_tuple, encode, encode_single, encode_tuple, parse_abi_param,
    parse_type
)
from ethbind.exceptions import DecodingError, EncodingError

from conftest import ALICE


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def text_word(value: bytes) -> bytes:
    return value + bytes(32 - len(value))


class TestParseType:
    """Tests for parse_type and parse_abi_param."""

    @pytest.mark.parametrize("spelling, expected", [
        ("uint256", UIntType(256)),
        ("uint", UIntType(256)),
        ("int", IntType(256)),
        ("int8", IntType(8)),
        ("byte", FixedBytesType(1)),
        ("bytes32", FixedBytesType(32)),
        ("bytes", BytesType()),
        ("string", StringType()),
        ("address", AddressType()),
        ("bool", BoolType()),
    ])
    def test_elementary(self, spelling, expected):
        assert parse_type(spelling) == expected

    def test_nested_arrays_and_tuples(self):
        t = parse_type("(uint256,bytes)[2][]")
        assert t == DynamicArrayType(FixedArrayType(TupleType((UIntType(256), BytesType())), 2))
        assert t.canonical == "(uint256,bytes)[2][]"
        assert t.is_dynamic

    def test_static_composites(self):
        assert not parse_type("uint8[3]").is_dynamic
        assert parse_type("uint8[3]").head_size == 96
        assert not parse_type("(address,bool)").is_dynamic
        assert parse_type("(address,bool)").head_size == 64
        assert parse_type("string[2]").is_dynamic
        assert parse_type("string[2]").head_size == 32

    @pytest.mark.parametrize("spelling", ["uint7", "uint264", "bytes33", "bytes0", "foo", "(uint256", "", "tuple"])
    def test_invalid(self, spelling):
        with pytest.raises(EncodingError):
            parse_type(spelling)

    def test_abi_param_with_components(self):
        param = {
            "name": "orders",
            "type": "tuple[]",
            "components": [
                {"name": "maker", "type": "address"},
                {"name": "amounts", "type": "uint256[2]"},
            ],
        }
        t = parse_abi_param(param)
        assert t.canonical == "(address,uint256[2])[]"


class TestEncode:
    """Tests for value encoding."""

    def test_value_types(self):
        assert encode_single("uint256", 69) == word(69)
        assert encode_single("bool", True) == word(1)
        assert encode_single("int8", -1) == b"\xff" * 32
        assert encode_single("address", ALICE) == bytes(12) + bytes.fromhex("11" * 20)
        assert encode_single("bytes3", b"abc") == text_word(b"abc")

    def test_bytes_of_length_33(self):
        payload = b"\x01" * 33
        encoded = encode_single("bytes", payload)
        assert len(encoded) == 96
        assert encoded[:32] == word(33)
        assert encoded[32:65] == payload
        assert encoded[65:] == bytes(31)

    def test_function_arguments_with_dynamic_members(self):
        # sam(bytes,bool,uint256[]) with ("dave", true, [1, 2, 3])
        encoded = encode_tuple(["bytes", "bool", "uint256[]"], [b"dave", True, [1, 2, 3]])
        expected = b"".join([
            word(0x60), word(1), word(0xa0),
            word(4), text_word(b"dave"),
            word(3), word(1), word(2), word(3),
        ])
        assert encoded == expected

    def test_nested_dynamic_arrays(self):
        # g(uint256[][],string[]) with ([[1, 2], [3]], ["one", "two", "three"])
        encoded = encode_tuple(["uint256[][]", "string[]"], [[[1, 2], [3]], ["one", "two", "three"]])
        expected = b"".join([
            word(0x40), word(0x140),
            word(2), word(0x40), word(0xa0),
            word(2), word(1), word(2),
            word(1), word(3),
            word(3), word(0x60), word(0xa0), word(0xe0),
            word(3), text_word(b"one"),
            word(3), text_word(b"two"),
            word(5), text_word(b"three"),
        ])
        assert encoded == expected
        assert decode_tuple(["uint256[][]", "string[]"], encoded) == [[[1, 2], [3]], ["one", "two", "three"]]

    def test_static_tuple_is_inline(self):
        encoded = encode_tuple(["(uint256,bool)", "uint8"], [(7, False), 9])
        assert encoded == word(7) + word(0) + word(9)

    def test_bytes_array_nesting(self):
        values = [b"", b"\x01" * 33, b"xyz"]
        encoded = encode_single("bytes[]", values)
        assert encoded[:32] == word(3)
        assert decode_single("bytes[]", encoded) == values

    def test_hex_string_accepted_for_bytes(self):
        assert encode_single("bytes2", "0xbeef") == text_word(b"\xbe\xef")

    @pytest.mark.parametrize("type_str, value", [
        ("uint8", 256),
        ("uint256", -1),
        ("int8", 128),
        ("int8", -129),
        ("uint256", True),
        ("uint256", "1"),
        ("bool", 1),
        ("address", "0x1234"),
        ("address", b"\x00" * 19),
        ("bytes4", b"abc"),
        ("bytes4", b"abcde"),
        ("bytes", "not hex"),
        ("string", b"bytes"),
        ("uint256[2]", [1]),
        ("uint256[]", 5),
        ("(uint256,bool)", (1,)),
    ])
    def test_rejects_values_that_do_not_fit(self, type_str, value):
        with pytest.raises(EncodingError):
            encode_single(type_str, value)

    def test_argument_count_mismatch(self):
        with pytest.raises(EncodingError):
            encode_tuple(["uint256", "bool"], [1])


class TestDecode:
    """Tests for strict decoding."""

    def test_address_is_checksummed(self):
        assert decode_single("address", encode_single("address", ALICE.lower())) == ALICE

    def test_decode_reports_consumed_bytes(self):
        encoded = encode_single("string", "hello")
        value, consumed = decode(StringType(), encoded)
        assert value == "hello"
        assert consumed == 64

    def test_tuples_decode_to_tuples_and_arrays_to_lists(self):
        encoded = encode_tuple(["(uint256,string)", "uint8[2]"], [(1, "a"), (2, 3)])
        assert decode_tuple(["(uint256,string)", "uint8[2]"], encoded) == [(1, "a"), [2, 3]]

    def test_truncated_buffer(self):
        with pytest.raises(DecodingError):
            decode_tuple(["uint256", "uint256"], word(1))

    def test_offset_out_of_bounds(self):
        with pytest.raises(DecodingError):
            decode_tuple(["bytes"], word(0x1000))

    def test_length_out_of_bounds(self):
        with pytest.raises(DecodingError):
            decode_tuple(["bytes"], word(0x20) + word(1000) + text_word(b"abc"))

    def test_array_count_out_of_bounds(self):
        with pytest.raises(DecodingError):
            decode_tuple(["uint256[]"], word(0x20) + word(2 ** 64))

    def test_invalid_bool(self):
        with pytest.raises(DecodingError):
            decode_single("bool", word(2))

    def test_dirty_address_padding(self):
        with pytest.raises(DecodingError):
            decode_single("address", b"\x01" + bytes(31))

    def test_dirty_fixed_bytes_padding(self):
        with pytest.raises(DecodingError):
            decode_single("bytes1", b"\x01\x02" + bytes(30))

    def test_narrow_uint_overflow(self):
        with pytest.raises(DecodingError):
            decode_single("uint8", word(256))

    def test_invalid_utf8(self):
        with pytest.raises(DecodingError):
            decode_single("string", word(2) + text_word(b"\xff\xfe"))
