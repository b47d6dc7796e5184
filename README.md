# kafkalite

A small Kafka client library with no dependencies outside the standard
library. It provides:

- encoding and decoding of the Kafka wire protocol: `PacketEncoder`,
  `PacketDecoder`, `encode()` and `decode()` in `kafkalite.packets`, with
  length and CRC32 fields (`LengthField`, `Crc32Field`);
- messages, message blocks and message sets (`kafkalite.message`), with
  gzip and snappy payloads (`CompressionCodec`);
- metadata requests and responses (`kafkalite.metadata`), fetch requests
  and responses (`kafkalite.fetch`), consumer-group coordinator lookups
  (`kafkalite.consumer_metadata`) and offset commits
  (`kafkalite.offset_commit`);
- a thread-safe connection to a single broker with pipelined requests
  (`kafkalite.broker.Broker`, configured by `BrokerConfig`);
- a cluster client that tracks brokers, topics, partitions and leaders
  (`kafkalite.client.Client`, configured by `ClientConfig`);
- a mock broker that answers with queued responses on a local port, for
  tests (`kafkalite.mockbroker.MockBroker`).

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Encoding and decoding

```python
from kafkalite.metadata import MetadataRequest, MetadataResponse
from kafkalite.packets import decode, encode

data = encode(MetadataRequest(topics=["topic1"]))
# b"\x00\x00\x00\x01\x00\x06topic1"

response = decode(b"\x00\x00\x00\x00\x00\x00\x00\x00", MetadataResponse())
```

`decode()` fills the object it is given and returns it; it raises
`DecodingError` if bytes are left over, and `InsufficientDataError` if the
data is cut short.

## Talking to a single broker

```python
from kafkalite.broker import Broker
from kafkalite.metadata import MetadataRequest

broker = Broker("localhost:9092")
broker.open(None)          # connects in the background
try:
    response = broker.get_metadata("my_client", MetadataRequest(topics=["my_topic"]))
    print("There are", len(response.topics), "topics active in the cluster.")
finally:
    broker.close()
```

`Broker.open` returns at once; any later call waits for the connection
attempt to finish. `broker.connected()` waits for it and tells whether it
succeeded; after a failure the cause is in `broker.connect_error`. A broker
can also be used as a context manager, which closes it on exit.

Besides `get_metadata`, a broker offers `get_consumer_metadata`, `fetch` and
`commit_offset`. `BrokerConfig` holds `max_open_requests` (default 4) and
the `dial_timeout`, `read_timeout` and `write_timeout` in seconds (default
60 each).

## Using the cluster client

```python
from kafkalite.client import Client, ClientConfig

client = Client("my_client", ["localhost:9092"], ClientConfig())
try:
    print(client.topics())
    print(client.partitions("my_topic"))
    print(client.writable_partitions("my_topic"))
    leader = client.leader("my_topic", 0)
    print(client.replicas("my_topic", 0), client.replicas_in_sync("my_topic", 0))
finally:
    client.close()
```

The client fetches metadata for the whole cluster when it is created and,
unless `background_refresh_frequency` is 0, refreshes it in the background
(every 600 seconds by default). Call `refresh_topic_metadata("a", "b")` or
`refresh_all_metadata()` to refresh on demand. Leaderless partitions are
retried up to `metadata_retries` times (default 3), waiting
`wait_for_election` seconds (default 0.25) between attempts. A broker that
misbehaves can be dropped with `disconnect_broker()`.

## Errors

Every error derives from `kafkalite.errors.KafkaError`. Error codes
returned by the server are `KError` values and are raised as `ServerError`,
whose `code` attribute holds the `KError`. Invalid settings raise
`ConfigurationError`; malformed packets raise `DecodingError` or
`InsufficientDataError`; using a closed client raises `ClosedClientError`.

## Testing with the mock broker

```python
from kafkalite.broker import Broker
from kafkalite.metadata import MetadataRequest, MetadataResponse
from kafkalite.mockbroker import MockBroker

mock = MockBroker(broker_id=1)
mock.returns(MetadataResponse())

broker = Broker(mock.addr)
broker.open(None)
response = broker.get_metadata("client", MetadataRequest())
broker.close()
mock.close()
```

Each queued response answers one request, in order; a response that
encodes to nothing is consumed without sending a reply. The length and
correlation id headers are added automatically. `close()` raises
`AssertionError` if responses were left unused or the server ran into a
problem.

## What this package does not do

There is no producer and no consumer: messages can be fetched with
`Broker.fetch`, but nothing tracks offsets or streams messages for you.
There are no offset lookup, offset fetch or produce requests, so the client
cannot ask for the earliest or latest offset of a partition. There is no
command-line tool.