import pytest

from kafkalite.errors import EncodingError, InsufficientDataError, KError
from kafkalite.metadata import (
    BrokerMetadata,
    MetadataRequest,
    MetadataResponse,
    PartitionMetadata,
)
from kafkalite.packets import PacketDecoder, decode, encode

METADATA_REQUEST_NO_TOPICS = bytes([0x00, 0x00, 0x00, 0x00])

METADATA_REQUEST_ONE_TOPIC = bytes([0x00, 0x00, 0x00, 0x01, 0x00, 0x06]) + b"topic1"

METADATA_REQUEST_THREE_TOPICS = (
    bytes([0x00, 0x00, 0x00, 0x03])
    + b"\x00\x03foo"
    + b"\x00\x03bar"
    + b"\x00\x03baz"
)

EMPTY_METADATA_RESPONSE = bytes([0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])

BROKERS_NO_TOPICS_METADATA_RESPONSE = (
    bytes([0x00, 0x00, 0x00, 0x02])
    + bytes([0x00, 0x00, 0xAB, 0xFF])
    + b"\x00\x09localhost"
    + bytes([0x00, 0x00, 0x00, 0x33])
    + bytes([0x00, 0x01, 0x02, 0x03])
    + b"\x00\x0agoogle.com"
    + bytes([0x00, 0x00, 0x01, 0x11])
    + bytes([0x00, 0x00, 0x00, 0x00])
)

TOPICS_NO_BROKERS_METADATA_RESPONSE = (
    bytes([0x00, 0x00, 0x00, 0x00])
    + bytes([0x00, 0x00, 0x00, 0x02])
    + bytes([0x00, 0x00])
    + b"\x00\x03foo"
    + bytes([0x00, 0x00, 0x00, 0x01])
    + bytes([0x00, 0x04])
    + bytes([0x00, 0x00, 0x00, 0x01])
    + bytes([0x00, 0x00, 0x00, 0x07])
    + bytes([0x00, 0x00, 0x00, 0x03, 0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x00, 0x02,
             0x00, 0x00, 0x00, 0x03])
    + bytes([0x00, 0x00, 0x00, 0x00])
    + bytes([0x00, 0x00])
    + b"\x00\x03bar"
    + bytes([0x00, 0x00, 0x00, 0x00])
)


def test_metadata_request_encodings():
    request = MetadataRequest()
    assert encode(request) == METADATA_REQUEST_NO_TOPICS

    request.topics = ["topic1"]
    assert encode(request) == METADATA_REQUEST_ONE_TOPIC

    request.topics = ["foo", "bar", "baz"]
    assert encode(request) == METADATA_REQUEST_THREE_TOPICS


def test_metadata_request_api_key():
    request = MetadataRequest()
    request.topics = ["topic1"]
    assert (request.api_key, request.api_version) == (3, 0)
    assert encode(request) == METADATA_REQUEST_ONE_TOPIC


def test_empty_metadata_response():
    response = decode(EMPTY_METADATA_RESPONSE, MetadataResponse())
    assert response.brokers == []
    assert response.topics == []


def test_metadata_response_with_brokers():
    response = decode(BROKERS_NO_TOPICS_METADATA_RESPONSE, MetadataResponse())
    assert len(response.brokers) == 2
    assert response.brokers[0].broker_id == 0xABFF
    assert response.brokers[0].addr == "localhost:51"
    assert response.brokers[1].broker_id == 0x010203
    assert response.brokers[1].addr == "google.com:273"
    assert response.topics == []


def test_metadata_response_with_topics():
    response = decode(TOPICS_NO_BROKERS_METADATA_RESPONSE, MetadataResponse())
    assert response.brokers == []
    assert len(response.topics) == 2

    foo = response.topics[0]
    assert foo.err is KError.NO_ERROR
    assert foo.name == "foo"
    assert len(foo.partitions) == 1
    partition = foo.partitions[0]
    assert partition.err is KError.INVALID_MESSAGE_SIZE
    assert partition.id == 0x01
    assert partition.leader == 0x07
    assert partition.replicas == [1, 2, 3]
    assert partition.isr == []

    bar = response.topics[1]
    assert bar.err is KError.NO_ERROR
    assert bar.name == "bar"
    assert bar.partitions == []


def test_metadata_response_round_trip():
    response = MetadataResponse()
    response.add_broker("localhost:9092", 5)
    response.add_topic_partition("my_topic", 0, 5, [3, 1, 5], [5, 1], KError.NO_ERROR)
    response.add_topic_partition("my_topic", 1, 5, None, None, KError.LEADER_NOT_AVAILABLE)

    decoded = decode(encode(response), MetadataResponse())
    assert decoded == response
    assert decoded.brokers[0] == BrokerMetadata(broker_id=5, addr="localhost:9092")


def test_add_topic_partition_updates_existing():
    response = MetadataResponse()
    response.add_topic_partition("t", 2, 1, [1], [1], KError.NO_ERROR)
    response.add_topic_partition("t", 2, 7, [7, 8], [8], KError.LEADER_NOT_AVAILABLE)

    assert len(response.topics) == 1
    assert response.topics[0].partitions == [
        PartitionMetadata(
            err=KError.LEADER_NOT_AVAILABLE, id=2, leader=7, replicas=[7, 8], isr=[8]
        )
    ]


def test_broker_metadata_ipv6_address():
    broker = BrokerMetadata(broker_id=1, addr="[::1]:9092")
    decoded = decode(encode(broker), BrokerMetadata())
    assert decoded.broker_id == 1
    assert decoded.addr == "::1:9092"


@pytest.mark.parametrize("addr", ["no-port", "host:abc", "a:b:c"])
def test_broker_metadata_invalid_address(addr):
    with pytest.raises(EncodingError):
        encode(BrokerMetadata(broker_id=1, addr=addr))


def test_truncated_metadata_response():
    with pytest.raises(InsufficientDataError):
        MetadataResponse().decode(PacketDecoder(b"\x00\x00\x00\x01"))