"""Messages, message blocks and message sets, with gzip and snappy payloads."""

from __future__ import annotations

import gzip
import zlib
from dataclasses import dataclass, field
from enum import IntEnum

from .errors import DecodingError, EncodingError, InsufficientDataError
from .packets import Crc32Field, LengthField, PacketDecoder, PacketEncoder

_CODEC_MASK = 0x03
_MESSAGE_FORMAT = 0
_SNAPPY_MAGIC = b"\x82SNAPPY\x00"


class CompressionCodec(IntEnum):
    """Compression codecs recognised in message attributes."""

    NONE = 0
    GZIP = 1
    SNAPPY = 2


def _varint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _corrupt() -> DecodingError:
    return DecodingError("snappy: corrupt input")


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = shift = 0
    while True:
        if pos >= len(data) or shift > 35:
            raise _corrupt()
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7


def _snappy_encode(data: bytes) -> bytes:
    out = bytearray(_varint(len(data)))
    if data:
        size = len(data) - 1
        if size < 60:
            out.append(size << 2)
        else:
            width = (size.bit_length() + 7) // 8
            out.append((59 + width) << 2)
            out += size.to_bytes(width, "little")
        out += data
    return bytes(out)


def _snappy_block_decode(data: bytes) -> bytes:
    expected, pos = _read_varint(data, 0)
    end = len(data)
    out = bytearray()
    while pos < end:
        tag = data[pos]
        pos += 1
        kind = tag & 0x03
        if kind == 0:
            size = tag >> 2
            if size >= 60:
                width = size - 59
                if pos + width > end:
                    raise _corrupt()
                size = int.from_bytes(data[pos : pos + width], "little")
                pos += width
            size += 1
            if pos + size > end:
                raise _corrupt()
            out += data[pos : pos + size]
            pos += size
            continue
        if kind == 1:
            if pos >= end:
                raise _corrupt()
            size = 4 + ((tag >> 2) & 0x07)
            offset = ((tag >> 5) << 8) | data[pos]
            pos += 1
        else:
            width = 2 if kind == 2 else 4
            if pos + width > end:
                raise _corrupt()
            size = (tag >> 2) + 1
            offset = int.from_bytes(data[pos : pos + width], "little")
            pos += width
        if offset == 0 or offset > len(out):
            raise _corrupt()
        pattern = bytes(out[len(out) - offset :])
        out += (pattern * (size // offset + 1))[:size]
    if len(out) != expected:
        raise _corrupt()
    return bytes(out)


def _snappy_decode(data: bytes) -> bytes:
    if data[:8] != _SNAPPY_MAGIC:
        return _snappy_block_decode(data)
    out = bytearray()
    pos, end = 16, len(data)
    while pos < end:
        if pos + 4 > end:
            raise _corrupt()
        size = int.from_bytes(data[pos : pos + 4], "big")
        pos += 4
        if pos + size > end:
            raise _corrupt()
        out += _snappy_block_decode(data[pos : pos + size])
        pos += size
    return bytes(out)


@dataclass
class Message:
    """A single message; a compressed one wraps a nested message set."""

    codec: CompressionCodec = CompressionCodec.NONE
    key: bytes | None = None
    value: bytes | None = None
    message_set: MessageSet | None = None

    def _payload(self) -> bytes | None:
        try:
            codec = CompressionCodec(self.codec)
        except ValueError as exc:
            raise EncodingError() from exc
        if codec is CompressionCodec.NONE:
            return self.value
        if codec is CompressionCodec.GZIP:
            return gzip.compress(self.value or b"", mtime=0)
        return _snappy_encode(self.value or b"")

    def encode(self, pe: PacketEncoder) -> None:
        pe.push(Crc32Field())
        pe.put_int8(_MESSAGE_FORMAT)
        pe.put_int8(int(self.codec) & _CODEC_MASK)
        pe.put_bytes(self.key)
        pe.put_bytes(self._payload())
        pe.pop()

    def decode(self, pd: PacketDecoder) -> None:
        pd.push(Crc32Field())
        if pd.get_int8() != _MESSAGE_FORMAT:
            raise DecodingError("Unexpected messageFormat")
        attributes = pd.get_int8()
        try:
            self.codec = CompressionCodec(attributes & _CODEC_MASK)
        except ValueError as exc:
            raise DecodingError("Invalid compression specified") from exc
        self.key = pd.get_bytes()
        self.value = pd.get_bytes()
        self.message_set = None

        if self.codec is CompressionCodec.GZIP:
            if self.value is None:
                raise DecodingError("GZIP compression specified, but no data to uncompress")
            try:
                self.value = gzip.decompress(self.value)
            except (OSError, EOFError, zlib.error) as exc:
                raise DecodingError(f"gzip: {exc}") from exc
            self._decode_set()
        elif self.codec is CompressionCodec.SNAPPY:
            if self.value is None:
                raise DecodingError("Snappy compression specified, but no data to uncompress")
            self.value = _snappy_decode(self.value)
            self._decode_set()

        pd.pop()

    def _decode_set(self) -> None:
        self.message_set = MessageSet()
        self.message_set.decode(PacketDecoder(self.value or b""))


@dataclass
class MessageBlock:
    """A message together with its offset in the log."""

    offset: int = 0
    message: Message | None = None

    def messages(self) -> list[MessageBlock]:
        """The blocks wrapped by a compressed message, or this block alone."""
        if self.message is not None and self.message.message_set is not None:
            return self.message.message_set.messages
        return [self]

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_int64(self.offset)
        pe.push(LengthField())
        (self.message or Message()).encode(pe)
        pe.pop()

    def decode(self, pd: PacketDecoder) -> None:
        self.offset = pd.get_int64()
        pd.push(LengthField())
        self.message = Message()
        self.message.decode(pd)
        pd.pop()


@dataclass
class MessageSet:
    """A sequence of message blocks; may end in a truncated block on the wire."""

    partial_trailing_message: bool = False
    messages: list[MessageBlock] = field(default_factory=list)

    def encode(self, pe: PacketEncoder) -> None:
        for block in self.messages:
            block.encode(pe)

    def decode(self, pd: PacketDecoder) -> None:
        self.messages = []
        while pd.remaining() > 0:
            block = MessageBlock()
            try:
                block.decode(pd)
            except InsufficientDataError:
                # A broker may cut the last message short; that is not an error.
                self.partial_trailing_message = True
                return
            self.messages.append(block)

    def add_message(self, message: Message) -> None:
        self.messages.append(MessageBlock(message=message))