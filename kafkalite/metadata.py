"""Metadata requests and responses: brokers, topics and partitions of a cluster."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import ClassVar

from .errors import EncodingError, KError
from .packets import PacketDecoder, PacketEncoder

_PORT_RE = re.compile(r"[+-]?\d+")


def _split_host_port(addr: str) -> tuple[str, int]:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0 or addr[end + 1 : end + 2] != ":":
            raise EncodingError(f"kafka: invalid broker address {addr!r}")
        host, port = addr[1:end], addr[end + 2 :]
    else:
        host, sep, port = addr.rpartition(":")
        if not sep or ":" in host:
            raise EncodingError(f"kafka: invalid broker address {addr!r}")
    if not _PORT_RE.fullmatch(port):
        raise EncodingError(f"kafka: invalid port in broker address {addr!r}")
    return host, int(port)


@dataclass
class MetadataRequest:
    """Asks for metadata on the given topics; an empty list means all topics."""

    api_key: ClassVar[int] = 3
    api_version: ClassVar[int] = 0

    topics: list[str] = field(default_factory=list)

    def encode(self, pe: PacketEncoder) -> None:
        topics = list(self.topics or [])
        pe.put_array_length(len(topics))
        for topic in topics:
            pe.put_string(topic)


@dataclass
class BrokerMetadata:
    """A broker as described in cluster metadata: its id and host:port address."""

    broker_id: int = -1
    addr: str = ""

    def encode(self, pe: PacketEncoder) -> None:
        host, port = _split_host_port(self.addr)
        pe.put_int32(self.broker_id)
        pe.put_string(host)
        pe.put_int32(port)

    def decode(self, pd: PacketDecoder) -> None:
        self.broker_id = pd.get_int32()
        host = pd.get_string()
        port = pd.get_int32()
        self.addr = f"{host}:{port}"


@dataclass
class PartitionMetadata:
    """Leader, replicas and in-sync replicas of one partition."""

    err: KError = KError.NO_ERROR
    id: int = 0
    leader: int = 0
    replicas: list[int] = field(default_factory=list)
    isr: list[int] = field(default_factory=list)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int16(int(self.err))
        pe.put_int32(self.id)
        pe.put_int32(self.leader)
        pe.put_int32_array(self.replicas)
        pe.put_int32_array(self.isr)

    def decode(self, pd: PacketDecoder) -> None:
        self.err = KError(pd.get_int16())
        self.id = pd.get_int32()
        self.leader = pd.get_int32()
        self.replicas = pd.get_int32_array()
        self.isr = pd.get_int32_array()


@dataclass
class TopicMetadata:
    """A topic and the metadata of its partitions."""

    err: KError = KError.NO_ERROR
    name: str = ""
    partitions: list[PartitionMetadata] = field(default_factory=list)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int16(int(self.err))
        pe.put_string(self.name)
        pe.put_array_length(len(self.partitions))
        for partition in self.partitions:
            partition.encode(pe)

    def decode(self, pd: PacketDecoder) -> None:
        self.err = KError(pd.get_int16())
        self.name = pd.get_string()
        self.partitions = []
        for _ in range(pd.get_array_length()):
            partition = PartitionMetadata()
            partition.decode(pd)
            self.partitions.append(partition)


@dataclass
class MetadataResponse:
    """The brokers and topics of a cluster."""

    brokers: list[BrokerMetadata] = field(default_factory=list)
    topics: list[TopicMetadata] = field(default_factory=list)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_array_length(len(self.brokers))
        for broker in self.brokers:
            broker.encode(pe)
        pe.put_array_length(len(self.topics))
        for topic in self.topics:
            topic.encode(pe)

    def decode(self, pd: PacketDecoder) -> None:
        self.brokers = []
        for _ in range(pd.get_array_length()):
            broker = BrokerMetadata()
            broker.decode(pd)
            self.brokers.append(broker)
        self.topics = []
        for _ in range(pd.get_array_length()):
            topic = TopicMetadata()
            topic.decode(pd)
            self.topics.append(topic)

    def add_broker(self, addr: str, broker_id: int) -> None:
        self.brokers.append(BrokerMetadata(broker_id=broker_id, addr=addr))

    def add_topic_partition(self, topic, partition, broker_id, replicas, isr, err) -> None:
        """Add or update the metadata of one partition of a topic."""
        match = next((tm for tm in self.topics if tm.name == topic), None)
        if match is None:
            match = TopicMetadata(name=topic)
            self.topics.append(match)

        pmatch = next((pm for pm in match.partitions if pm.id == partition), None)
        if pmatch is None:
            pmatch = PartitionMetadata(id=partition)
            match.partitions.append(pmatch)

        pmatch.leader = broker_id
        pmatch.replicas = list(replicas) if replicas is not None else []
        pmatch.isr = list(isr) if isr is not None else []
        pmatch.err = KError(err)