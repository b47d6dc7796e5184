"""Big-endian wire primitives, push fields, and the encode/decode entry points."""

from __future__ import annotations

import struct
import zlib
from typing import Protocol

from .errors import DecodingError, EncodingError, InsufficientDataError

MAX_REQUEST_SIZE = 100 * 1024 * 1024

_INT16_MAX = 0x7FFF
_INT32_MAX = 0x7FFFFFFF
_MAX_ARRAY = 2 * 0xFFFF


class _PushField(Protocol):
    def save_offset(self, offset: int) -> None: ...

    def reserve_length(self) -> int: ...

    def run(self, cur_offset: int, buf: bytearray) -> None: ...

    def check(self, cur_offset: int, buf: bytes) -> None: ...


class LengthField:
    """A 4-byte length prefix covering everything written after it."""

    def __init__(self) -> None:
        self.start_offset = 0

    def save_offset(self, offset: int) -> None:
        self.start_offset = offset

    def reserve_length(self) -> int:
        return 4

    def run(self, cur_offset: int, buf: bytearray) -> None:
        struct.pack_into(">I", buf, self.start_offset, cur_offset - self.start_offset - 4)

    def check(self, cur_offset: int, buf: bytes) -> None:
        (stored,) = struct.unpack_from(">I", buf, self.start_offset)
        if stored != cur_offset - self.start_offset - 4:
            raise DecodingError("Lengthfield check failed")


class Crc32Field:
    """A 4-byte CRC32 (IEEE) of everything written after it."""

    def __init__(self) -> None:
        self.start_offset = 0

    def save_offset(self, offset: int) -> None:
        self.start_offset = offset

    def reserve_length(self) -> int:
        return 4

    def _crc(self, cur_offset: int, buf) -> int:
        return zlib.crc32(bytes(buf[self.start_offset + 4 : cur_offset])) & 0xFFFFFFFF

    def run(self, cur_offset: int, buf: bytearray) -> None:
        struct.pack_into(">I", buf, self.start_offset, self._crc(cur_offset, buf))

    def check(self, cur_offset: int, buf: bytes) -> None:
        (stored,) = struct.unpack_from(">I", buf, self.start_offset)
        if stored != self._crc(cur_offset, buf):
            raise DecodingError("CRC didn't match")


class PacketEncoder:
    """Accumulates an encoded packet."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._stack: list[_PushField] = []

    def _pack(self, fmt: str, value: int) -> None:
        try:
            self._buf += struct.pack(fmt, value)
        except struct.error as exc:
            raise EncodingError() from exc

    def put_int8(self, value: int) -> None:
        self._pack(">b", value)

    def put_int16(self, value: int) -> None:
        self._pack(">h", value)

    def put_int32(self, value: int) -> None:
        self._pack(">i", value)

    def put_int64(self, value: int) -> None:
        self._pack(">q", value)

    def put_array_length(self, length: int) -> None:
        if not 0 <= length <= _INT32_MAX:
            raise EncodingError()
        self._pack(">i", length)

    def put_bytes(self, data: bytes | None) -> None:
        if data is None:
            self.put_int32(-1)
            return
        if len(data) > _INT32_MAX:
            raise EncodingError()
        self.put_int32(len(data))
        self._buf += data

    def put_raw_bytes(self, data: bytes) -> None:
        self._buf += data

    def put_string(self, text: str) -> None:
        raw = text.encode("utf-8")
        if len(raw) > _INT16_MAX:
            raise EncodingError()
        self.put_int16(len(raw))
        self._buf += raw

    def put_int32_array(self, values) -> None:
        values = list(values or [])
        self.put_array_length(len(values))
        for value in values:
            self.put_int32(value)

    def push(self, field: _PushField) -> None:
        field.save_offset(len(self._buf))
        self._buf += bytes(field.reserve_length())
        self._stack.append(field)

    def pop(self) -> None:
        if not self._stack:
            raise EncodingError("kafka: pop without a matching push")
        self._stack.pop().run(len(self._buf), self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class PacketDecoder:
    """Reads values from an encoded packet."""

    def __init__(self, raw: bytes) -> None:
        self._raw = bytes(raw)
        self._off = 0
        self._stack: list[_PushField] = []

    def _insufficient(self) -> InsufficientDataError:
        self._off = len(self._raw)
        return InsufficientDataError()

    def _take(self, size: int) -> bytes:
        if self.remaining() < size:
            raise self._insufficient()
        chunk = self._raw[self._off : self._off + size]
        self._off += size
        return chunk

    def _unpack(self, fmt: str) -> int:
        (value,) = struct.unpack(fmt, self._take(struct.calcsize(fmt)))
        return value

    def get_int8(self) -> int:
        return self._unpack(">b")

    def get_int16(self) -> int:
        return self._unpack(">h")

    def get_int32(self) -> int:
        return self._unpack(">i")

    def get_int64(self) -> int:
        return self._unpack(">q")

    def get_array_length(self) -> int:
        length = self._unpack(">I")
        if length > self.remaining():
            raise self._insufficient()
        if length > _MAX_ARRAY:
            raise DecodingError("getArrayLength: array too long")
        return length

    def get_bytes(self) -> bytes | None:
        length = self.get_int32()
        if length < -1:
            raise DecodingError("getBytes: invalid negative length")
        if length == -1:
            return None
        return self._take(length)

    def get_string(self) -> str:
        length = self.get_int16()
        if length < -1:
            raise DecodingError("getString: invalid negative length")
        if length == -1:
            return ""
        return self._take(length).decode("utf-8")

    def get_int32_array(self) -> list[int]:
        count = self._unpack(">I")
        if self.remaining() < 4 * count:
            raise self._insufficient()
        if count > _MAX_ARRAY:
            raise DecodingError("getInt32Array: array too long")
        return list(struct.unpack(f">{count}i", self._take(4 * count)))

    def get_subset(self, length: int) -> PacketDecoder:
        if length < 0:
            raise DecodingError("getSubset: invalid negative length")
        return PacketDecoder(self._take(length))

    def remaining(self) -> int:
        return len(self._raw) - self._off

    def push(self, field: _PushField) -> None:
        field.save_offset(self._off)
        reserve = field.reserve_length()
        if self.remaining() < reserve:
            raise self._insufficient()
        self._off += reserve
        self._stack.append(field)

    def pop(self) -> None:
        if not self._stack:
            raise DecodingError("pop without a matching push")
        self._stack.pop().check(self._off, self._raw)


def encode(obj) -> bytes:
    """Encode an object that has an ``encode(pe)`` method into bytes."""
    if obj is None:
        return b""
    pe = PacketEncoder()
    obj.encode(pe)
    data = pe.getvalue()
    if len(data) > MAX_REQUEST_SIZE:
        raise EncodingError()
    return data


def decode(buf: bytes | None, target):
    """Fill ``target`` from ``buf``; every byte must be consumed. Returns ``target``."""
    if buf is None:
        return target
    pd = PacketDecoder(buf)
    target.decode(pd)
    if pd.remaining() != 0:
        raise DecodingError("Length was invalid")
    return target