"""A single connection to a broker, with pipelined requests and responses."""

from __future__ import annotations

import logging
import queue
import select
import socket
import struct
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass

from .consumer_metadata import ConsumerMetadataRequest, ConsumerMetadataResponse
from .errors import AlreadyConnectedError, ConfigurationError, DecodingError, NotConnectedError
from .fetch import FetchRequest, FetchResponse
from .metadata import MetadataRequest, MetadataResponse, _split_host_port
from .offset_commit import OffsetCommitRequest, OffsetCommitResponse
from .packets import LengthField, PacketEncoder, decode, encode

log = logging.getLogger(__name__)

_STOP = object()


@dataclass
class BrokerConfig:
    """Options for a broker connection; durations are in seconds."""

    max_open_requests: int = 4
    dial_timeout: float = 60.0
    read_timeout: float = 60.0
    write_timeout: float = 60.0

    def validate(self) -> None:
        """Raise ConfigurationError if a value makes no sense."""
        if self.max_open_requests < 0:
            raise ConfigurationError("Invalid max_open_requests")
        if self.read_timeout <= 0:
            raise ConfigurationError("Invalid read_timeout")
        if self.write_timeout <= 0:
            raise ConfigurationError("Invalid write_timeout")


@dataclass
class _Request:
    correlation_id: int
    client_id: str
    body: object

    def encode(self, pe: PacketEncoder) -> None:
        pe.push(LengthField())
        pe.put_int16(self.body.api_key)
        pe.put_int16(self.body.api_version)
        pe.put_int32(self.correlation_id)
        pe.put_string(self.client_id)
        self.body.encode(pe)
        pe.pop()


def _remaining(deadline: float) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("i/o timeout")
    return left


def _read_exact(conn: socket.socket, size: int, deadline: float) -> bytes:
    data = bytearray()
    while len(data) < size:
        readable, _, _ = select.select([conn], [], [], _remaining(deadline))
        if not readable:
            raise TimeoutError("i/o timeout")
        chunk = conn.recv(size - len(data))
        if not chunk:
            raise ConnectionError("connection closed by peer")
        data += chunk
    return bytes(data)


def _write_all(conn: socket.socket, data: bytes, deadline: float) -> None:
    view = memoryview(data)
    while view:
        _, writable, _ = select.select([], [conn], [], _remaining(deadline))
        if not writable:
            raise TimeoutError("i/o timeout")
        sent = conn.send(view)
        view = view[sent:]


def _next_int32(value: int) -> int:
    return ((value + 1 + 2**31) % 2**32) - 2**31


class Broker:
    """A connection to one broker; safe to share between threads."""

    def __init__(self, addr: str, broker_id: int = -1) -> None:
        self.id = broker_id
        self.addr = addr
        self.connect_error: BaseException | None = None
        self._config: BrokerConfig | None = None
        self._correlation_id = 0
        self._conn: socket.socket | None = None
        self._lock = threading.Lock()
        self._responses: queue.Queue | None = None
        self._done: threading.Event | None = None

    def __repr__(self) -> str:
        return f"Broker(addr={self.addr!r}, id={self.id})"

    def __enter__(self) -> Broker:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self, config: BrokerConfig | None = None) -> None:
        """Start connecting in the background; later calls wait for it to finish."""
        config = config if config is not None else BrokerConfig()
        config.validate()

        self._lock.acquire()
        if self._conn is not None:
            self._lock.release()
            log.warning("Failed to connect to broker %s: already connected", self.addr)
            raise AlreadyConnectedError()

        threading.Thread(target=self._connect, args=(config,), daemon=True).start()

    def _connect(self, config: BrokerConfig) -> None:
        try:
            try:
                host, port = _split_host_port(self.addr)
                conn = socket.create_connection((host, port), timeout=config.dial_timeout)
            except Exception as exc:  # noqa: BLE001 - any failure is the connection error
                self.connect_error = exc
                log.warning("Failed to connect to broker %s: %s", self.addr, exc)
                return
            conn.settimeout(None)
            self._conn = conn
            self.connect_error = None
            self._config = config
            self._done = threading.Event()
            self._responses = queue.Queue(maxsize=max(config.max_open_requests, 1))
            log.info("Connected to broker %s", self.addr)
            threading.Thread(
                target=self._receive,
                args=(conn, config.read_timeout, self._responses, self._done),
                daemon=True,
            ).start()
        finally:
            self._lock.release()

    def connected(self) -> bool:
        """Whether the broker is connected; a failed attempt leaves connect_error set."""
        with self._lock:
            return self._conn is not None

    def close(self) -> None:
        """Close the connection once all pending responses have been read."""
        with self._lock:
            if self._conn is None:
                log.warning("Failed to close connection to broker %s: not connected", self.addr)
                raise NotConnectedError()
            self._responses.put(_STOP)
            self._done.wait()
            try:
                self._conn.close()
            except OSError as exc:
                log.warning("Failed to close connection to broker %s: %s", self.addr, exc)
                raise
            finally:
                self._conn = None
                self.connect_error = None
                self._done = None
                self._responses = None
            log.info("Closed connection to broker %s", self.addr)

    def get_metadata(self, client_id: str, request: MetadataRequest) -> MetadataResponse:
        return self._send_and_receive(client_id, request, MetadataResponse())

    def get_consumer_metadata(
        self, client_id: str, request: ConsumerMetadataRequest
    ) -> ConsumerMetadataResponse:
        return self._send_and_receive(client_id, request, ConsumerMetadataResponse())

    def fetch(self, client_id: str, request: FetchRequest) -> FetchResponse:
        return self._send_and_receive(client_id, request, FetchResponse())

    def commit_offset(self, client_id: str, request: OffsetCommitRequest) -> OffsetCommitResponse:
        return self._send_and_receive(client_id, request, OffsetCommitResponse())

    def _send(self, client_id: str, request, expect_response: bool) -> Future | None:
        with self._lock:
            if self._conn is None:
                if self.connect_error is not None:
                    raise self.connect_error
                raise NotConnectedError()

            correlation_id = self._correlation_id
            buf = encode(_Request(correlation_id, client_id, request))
            _write_all(self._conn, buf, time.monotonic() + self._config.write_timeout)
            self._correlation_id = _next_int32(correlation_id)

            if not expect_response:
                return None
            promise: Future = Future()
            self._responses.put((correlation_id, promise))
            return promise

    def _send_and_receive(self, client_id: str, request, response):
        promise = self._send(client_id, request, response is not None)
        if promise is None:
            return None
        return decode(promise.result(), response)

    @staticmethod
    def _receive(conn, read_timeout, responses: queue.Queue, done: threading.Event) -> None:
        while True:
            item = responses.get()
            if item is _STOP:
                break
            correlation_id, promise = item
            try:
                deadline = time.monotonic() + read_timeout
                length, got = struct.unpack(">ii", _read_exact(conn, 8, deadline))
                if got != correlation_id:
                    raise DecodingError(
                        f"CorrelationID didn't match, wanted {correlation_id}, got {got}"
                    )
                if length < 4:
                    raise DecodingError(f"Message of length {length} too small")
                promise.set_result(_read_exact(conn, length - 4, deadline))
            except Exception as exc:  # noqa: BLE001 - handed to the waiting caller
                promise.set_exception(exc)
        done.set()