import pytest

from kafkalite.errors import DecodingError, EncodingError, InsufficientDataError
from kafkalite.packets import (
    Crc32Field,
    LengthField,
    PacketDecoder,
    PacketEncoder,
    decode,
    encode,
)

EMPTY_MESSAGE = bytes(
    [167, 236, 104, 3, 0x00, 0x00, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF]
)


class _Pair:
    def __init__(self, first=0, second=""):
        self.first = first
        self.second = second

    def encode(self, pe):
        pe.put_int32(self.first)
        pe.put_string(self.second)

    def decode(self, pd):
        self.first = pd.get_int32()
        self.second = pd.get_string()


def _roundtrip(write, read):
    pe = PacketEncoder()
    write(pe)
    pd = PacketDecoder(pe.getvalue())
    value = read(pd)
    assert pd.remaining() == 0
    return value


@pytest.mark.parametrize(
    "put,get,value",
    [
        ("put_int8", "get_int8", -128),
        ("put_int16", "get_int16", 32767),
        ("put_int32", "get_int32", -2147483648),
        ("put_int64", "get_int64", 2**63 - 1),
    ],
)
def test_integer_roundtrip(put, get, value):
    result = _roundtrip(
        lambda pe: getattr(pe, put)(value), lambda pd: getattr(pd, get)()
    )
    assert result == value


def test_out_of_range_integer_raises():
    with pytest.raises(EncodingError):
        PacketEncoder().put_int8(200)


def test_null_bytes_wire_form():
    pe = PacketEncoder()
    pe.put_bytes(None)
    assert pe.getvalue() == b"\xff\xff\xff\xff"
    assert PacketDecoder(pe.getvalue()).get_bytes() is None


def test_bytes_and_string_roundtrip():
    assert _roundtrip(lambda pe: pe.put_bytes(b""), lambda pd: pd.get_bytes()) == b""
    assert _roundtrip(lambda pe: pe.put_bytes(b"abc"), lambda pd: pd.get_bytes()) == b"abc"
    assert _roundtrip(lambda pe: pe.put_string("héllo"), lambda pd: pd.get_string()) == "héllo"


def test_string_too_long_raises():
    with pytest.raises(EncodingError):
        PacketEncoder().put_string("x" * 40000)


def test_int32_array_roundtrip():
    values = [3, -1, 5, 0]
    assert _roundtrip(lambda pe: pe.put_int32_array(values), lambda pd: pd.get_int32_array()) == values
    assert _roundtrip(lambda pe: pe.put_int32_array([]), lambda pd: pd.get_int32_array()) == []


def test_short_buffer_raises_insufficient():
    pd = PacketDecoder(b"\x00\x01")
    with pytest.raises(InsufficientDataError):
        pd.get_int32()
    assert pd.remaining() == 0


def test_negative_byte_length_is_decoding_error():
    pe = PacketEncoder()
    pe.put_int32(-2)
    with pytest.raises(DecodingError):
        PacketDecoder(pe.getvalue()).get_bytes()


def test_array_length_exceeding_data():
    pe = PacketEncoder()
    pe.put_array_length(50)
    with pytest.raises(InsufficientDataError):
        PacketDecoder(pe.getvalue()).get_array_length()


def test_subset_consumes_parent():
    pe = PacketEncoder()
    pe.put_raw_bytes(b"abcdef")
    pd = PacketDecoder(pe.getvalue())
    sub = pd.get_subset(4)
    assert sub.remaining() == 4
    assert pd.remaining() == 2
    with pytest.raises(InsufficientDataError):
        pd.get_subset(3)


def test_length_field_invariant_and_check():
    pe = PacketEncoder()
    pe.push(LengthField())
    pe.put_string("payload")
    pe.put_int64(42)
    pe.pop()
    data = pe.getvalue()
    assert int.from_bytes(data[:4], "big") == len(data) - 4

    pd = PacketDecoder(data)
    pd.push(LengthField())
    assert pd.get_string() == "payload"
    assert pd.get_int64() == 42
    pd.pop()

    bad = PacketDecoder(data)
    bad.push(LengthField())
    bad.get_string()
    with pytest.raises(DecodingError):
        bad.pop()


def test_crc_field_matches_known_message():
    pe = PacketEncoder()
    pe.push(Crc32Field())
    pe.put_int8(0)
    pe.put_int8(0)
    pe.put_bytes(None)
    pe.put_bytes(None)
    pe.pop()
    assert pe.getvalue() == EMPTY_MESSAGE


def test_crc_field_detects_corruption():
    corrupted = bytearray(EMPTY_MESSAGE)
    corrupted[5] = 1
    pd = PacketDecoder(bytes(corrupted))
    pd.push(Crc32Field())
    pd.get_int8()
    pd.get_int8()
    pd.get_bytes()
    pd.get_bytes()
    with pytest.raises(DecodingError):
        pd.pop()


def test_encode_decode_entry_points():
    data = encode(_Pair(7, "seven"))
    result = decode(data, _Pair())
    assert (result.first, result.second) == (7, "seven")
    assert encode(None) == b""


def test_decode_rejects_trailing_bytes():
    data = encode(_Pair(1, "a")) + b"\x00"
    with pytest.raises(DecodingError) as info:
        decode(data, _Pair())
    assert info.value.info == "Length was invalid"