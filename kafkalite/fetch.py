"""Fetch requests and responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from .errors import KError
from .message import Message, MessageBlock, MessageSet
from .packets import LengthField, PacketDecoder, PacketEncoder


@dataclass
class _FetchRequestBlock:
    fetch_offset: int
    max_bytes: int

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int64(self.fetch_offset)
        pe.put_int32(self.max_bytes)


@dataclass
class FetchRequest:
    """Asks for messages from a set of topic/partitions."""

    api_key: ClassVar[int] = 1
    api_version: ClassVar[int] = 0

    max_wait_time: int = 0
    min_bytes: int = 0
    _blocks: dict[str, dict[int, _FetchRequestBlock]] = field(
        default_factory=dict, init=False, repr=False
    )

    def add_block(self, topic: str, partition: int, fetch_offset: int, max_bytes: int) -> None:
        self._blocks.setdefault(topic, {})[partition] = _FetchRequestBlock(fetch_offset, max_bytes)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int32(-1)  # replica id, always -1 for clients
        pe.put_int32(self.max_wait_time)
        pe.put_int32(self.min_bytes)
        pe.put_array_length(len(self._blocks))
        for topic, blocks in self._blocks.items():
            pe.put_string(topic)
            pe.put_array_length(len(blocks))
            for partition, block in blocks.items():
                pe.put_int32(partition)
                block.encode(pe)


@dataclass
class FetchResponseBlock:
    """The result of a fetch for one partition."""

    err: KError = KError.NO_ERROR
    high_water_mark_offset: int = 0
    message_set: MessageSet = field(default_factory=MessageSet)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int16(int(self.err))
        pe.put_int64(self.high_water_mark_offset)
        pe.push(LengthField())
        self.message_set.encode(pe)
        pe.pop()

    def decode(self, pd: PacketDecoder) -> None:
        self.err = KError(pd.get_int16())
        self.high_water_mark_offset = pd.get_int64()
        size = pd.get_int32()
        subset = pd.get_subset(size)
        self.message_set = MessageSet()
        self.message_set.decode(subset)


def _as_bytes(value) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


@dataclass
class FetchResponse:
    """Fetch results, keyed by topic and then by partition."""

    blocks: dict[str, dict[int, FetchResponseBlock]] = field(default_factory=dict)

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_array_length(len(self.blocks))
        for topic, partitions in self.blocks.items():
            pe.put_string(topic)
            pe.put_array_length(len(partitions))
            for partition, block in partitions.items():
                pe.put_int32(partition)
                block.encode(pe)

    def decode(self, pd: PacketDecoder) -> None:
        self.blocks = {}
        for _ in range(pd.get_array_length()):
            name = pd.get_string()
            partitions: dict[int, FetchResponseBlock] = {}
            self.blocks[name] = partitions
            for _ in range(pd.get_array_length()):
                partition = pd.get_int32()
                block = FetchResponseBlock()
                block.decode(pd)
                partitions[partition] = block

    def get_block(self, topic: str, partition: int) -> FetchResponseBlock | None:
        return self.blocks.get(topic, {}).get(partition)

    def _block(self, topic: str, partition: int) -> FetchResponseBlock:
        return self.blocks.setdefault(topic, {}).setdefault(partition, FetchResponseBlock())

    def add_error(self, topic: str, partition: int, err) -> None:
        self._block(topic, partition).err = KError(err)

    def add_message(self, topic: str, partition: int, key, value, offset: int) -> None:
        """Append an uncompressed message with the given key, value and offset."""
        message = Message(key=_as_bytes(key), value=_as_bytes(value))
        self._block(topic, partition).message_set.messages.append(
            MessageBlock(offset=offset, message=message)
        )