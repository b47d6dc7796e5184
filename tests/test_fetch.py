import pytest

from kafkalite.errors import DecodingError, KError
from kafkalite.fetch import FetchRequest, FetchResponse, FetchResponseBlock
from kafkalite.message import CompressionCodec
from kafkalite.packets import decode, encode

FETCH_REQUEST_NO_BLOCKS = bytes([
    0xFF, 0xFF, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x00, 0x00])

FETCH_REQUEST_WITH_PROPERTIES = bytes([
    0xFF, 0xFF, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x20, 0x00, 0x00, 0x00, 0xEF,
    0x00, 0x00, 0x00, 0x00])

FETCH_REQUEST_ONE_BLOCK = (
    bytes([0xFF, 0xFF, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
           0x00, 0x00, 0x00, 0x01])
    + b"\x00\x05topic"
    + bytes([0x00, 0x00, 0x00, 0x01])
    + bytes([0x00, 0x00, 0x00, 0x12, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x34,
             0x00, 0x00, 0x00, 0x56])
)

EMPTY_FETCH_RESPONSE = bytes([0x00, 0x00, 0x00, 0x00])

ONE_MESSAGE_FETCH_RESPONSE = (
    bytes([0x00, 0x00, 0x00, 0x01])
    + b"\x00\x05topic"
    + bytes([0x00, 0x00, 0x00, 0x01])
    + bytes([0x00, 0x00, 0x00, 0x05])
    + bytes([0x00, 0x01])
    + bytes([0x00, 0x00, 0x00, 0x00, 0x10, 0x10, 0x10, 0x10])
    + bytes([0x00, 0x00, 0x00, 0x1C])
    + bytes([0x00, 0x00, 0x00, 0x00, 0x00, 0x55, 0x00, 0x00])
    + bytes([0x00, 0x00, 0x00, 0x10])
    + bytes([0x23, 0x96, 0x4A, 0xF7])
    + bytes([0x00])
    + bytes([0x00])
    + bytes([0xFF, 0xFF, 0xFF, 0xFF])
    + bytes([0x00, 0x00, 0x00, 0x02, 0x00, 0xEE])
)


def test_fetch_request_encodings():
    request = FetchRequest()
    assert encode(request) == FETCH_REQUEST_NO_BLOCKS

    request.max_wait_time = 0x20
    request.min_bytes = 0xEF
    assert encode(request) == FETCH_REQUEST_WITH_PROPERTIES

    request.max_wait_time = 0
    request.min_bytes = 0
    request.add_block("topic", 0x12, 0x34, 0x56)
    assert encode(request) == FETCH_REQUEST_ONE_BLOCK


def test_fetch_request_add_block_replaces_partition():
    request = FetchRequest()
    request.add_block("topic", 0x12, 0x99, 0x99)
    request.add_block("topic", 0x12, 0x34, 0x56)
    assert encode(request) == FETCH_REQUEST_ONE_BLOCK


def test_empty_fetch_response():
    response = decode(EMPTY_FETCH_RESPONSE, FetchResponse())
    assert response.blocks == {}


def test_one_message_fetch_response():
    response = decode(ONE_MESSAGE_FETCH_RESPONSE, FetchResponse())
    assert len(response.blocks) == 1
    assert len(response.blocks["topic"]) == 1

    block = response.get_block("topic", 5)
    assert block is not None
    assert block.err is KError.OFFSET_OUT_OF_RANGE
    assert block.high_water_mark_offset == 0x10101010
    assert block.message_set.partial_trailing_message is False

    assert len(block.message_set.messages) == 1
    msg_block = block.message_set.messages[0]
    assert msg_block.offset == 0x550000
    message = msg_block.message
    assert message.codec is CompressionCodec.NONE
    assert message.key is None
    assert message.value == b"\x00\xee"


def test_get_block_missing():
    response = decode(ONE_MESSAGE_FETCH_RESPONSE, FetchResponse())
    assert response.get_block("topic", 6) is None
    assert response.get_block("other", 5) is None


def test_add_message_round_trip():
    response = FetchResponse()
    response.add_message("my_topic", 0, None, b"\x00\x0e", 3)
    response.add_message("my_topic", 0, b"k", b"v", 4)

    decoded = decode(encode(response), FetchResponse())
    block = decoded.get_block("my_topic", 0)
    assert [mb.offset for mb in block.message_set.messages] == [3, 4]
    assert [mb.message.key for mb in block.message_set.messages] == [None, b"k"]
    assert [mb.message.value for mb in block.message_set.messages] == [b"\x00\x0e", b"v"]


def test_add_error():
    response = FetchResponse()
    response.add_error("t", 2, KError.NOT_LEADER_FOR_PARTITION)
    decoded = decode(encode(response), FetchResponse())
    assert decoded.get_block("t", 2).err is KError.NOT_LEADER_FOR_PARTITION
    assert decoded.get_block("t", 2).message_set.messages == []


def test_partial_trailing_message():
    data = (
        b"\x00\x00"
        + bytes(8)
        + b"\x00\x00\x00\x0a"
        + bytes(8)
        + b"\x00\x00"
    )
    block = decode(data, FetchResponseBlock())
    assert block.message_set.partial_trailing_message is True
    assert block.message_set.messages == []


def test_corrupted_crc_raises():
    corrupted = bytearray(ONE_MESSAGE_FETCH_RESPONSE)
    corrupted[-1] ^= 0xFF
    with pytest.raises(DecodingError):
        decode(bytes(corrupted), FetchResponse())