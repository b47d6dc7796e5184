"""Offset commit requests and responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from .errors import KError
from .packets import PacketDecoder, PacketEncoder

RECEIVE_TIME = -1
"""Timestamp telling the broker to use the time at which the request arrived."""


@dataclass
class _OffsetCommitRequestBlock:
    offset: int
    timestamp: int
    metadata: str

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int64(self.offset)
        pe.put_int64(self.timestamp)
        pe.put_string(self.metadata)


@dataclass
class OffsetCommitRequest:
    """Commits consumer-group offsets for a set of topic/partitions."""

    api_key: ClassVar[int] = 8
    api_version: ClassVar[int] = 0

    consumer_group: str = ""
    _blocks: dict[str, dict[int, _OffsetCommitRequestBlock]] = field(
        default_factory=dict, init=False, repr=False
    )

    def add_block(self, topic, partition, offset, timestamp, metadata) -> None:
        self._blocks.setdefault(topic, {})[partition] = _OffsetCommitRequestBlock(
            offset, timestamp, metadata
        )

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_string(self.consumer_group)
        pe.put_array_length(len(self._blocks))
        for topic, partitions in self._blocks.items():
            pe.put_string(topic)
            pe.put_array_length(len(partitions))
            for partition, block in partitions.items():
                pe.put_int32(partition)
                block.encode(pe)


@dataclass
class OffsetCommitResponse:
    """Per-partition result codes of an offset commit."""

    errors: dict[str, dict[int, KError]] = field(default_factory=dict)

    def decode(self, pd: PacketDecoder) -> None:
        self.errors = {}
        for _ in range(pd.get_array_length()):
            name = pd.get_string()
            codes: dict[int, KError] = {}
            self.errors[name] = codes
            for _ in range(pd.get_array_length()):
                partition = pd.get_int32()
                codes[partition] = KError(pd.get_int16())