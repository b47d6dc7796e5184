"""A fake broker on a local port that answers requests with queued responses."""

from __future__ import annotations

import queue
import socket
import struct
import threading

from .errors import KafkaError
from .packets import encode

_STOP = object()


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    data = bytearray()
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            raise ConnectionError("connection closed by peer")
        data += chunk
    return bytes(data)


class MockBroker:
    """Accepts one connection and answers each request with the next queued response.

    A response that encodes to nothing is consumed without sending anything. The
    length prefix and correlation id are added automatically. Problems are
    collected in ``errors`` and reported by ``close()`` as an AssertionError.
    """

    def __init__(self, broker_id: int = 0, accept_grace: float = 1.0) -> None:
        self.broker_id = broker_id
        self.errors: list[BaseException] = []
        self._accept_grace = accept_grace
        self._expectations: queue.Queue = queue.Queue(maxsize=512)
        self._accepted = threading.Event()
        self._give_up = threading.Event()
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._listener.settimeout(0.05)
        self.port: int = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def addr(self) -> str:
        return f"127.0.0.1:{self.port}"

    def __enter__(self) -> MockBroker:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def returns(self, response) -> None:
        """Queue a response: any object with an ``encode(pe)`` method."""
        self._expectations.put(response)

    def close(self) -> None:
        """Stop serving once queued responses are used; raise if anything went wrong."""
        pending = self._expectations.qsize()
        if pending > 0:
            self.errors.append(
                AssertionError(
                    f"Not all expectations were satisfied in mockBroker with "
                    f"ID={self.broker_id}! Still waiting on {pending}"
                )
            )
        self._expectations.put(_STOP)
        if not self._accepted.wait(self._accept_grace):
            self._give_up.set()
        self._thread.join()
        if self.errors:
            raise AssertionError("; ".join(str(err) for err in self.errors))

    def _fail(self, exc: BaseException, conn: socket.socket | None) -> None:
        self.errors.append(exc)
        for sock in (conn, self._listener):
            if sock is None:
                continue
            try:
                sock.close()
            except OSError as close_exc:
                self.errors.append(close_exc)

    def _accept(self) -> socket.socket | None:
        while True:
            try:
                conn, _ = self._listener.accept()
            except TimeoutError:
                if self._give_up.is_set():
                    self._fail(ConnectionError("no connection was accepted"), None)
                    return None
                continue
            except OSError as exc:
                self._fail(exc, None)
                return None
            conn.settimeout(None)
            self._accepted.set()
            return conn

    def _serve(self) -> None:
        conn = self._accept()
        if conn is None:
            return
        while True:
            expectation = self._expectations.get()
            if expectation is _STOP:
                break
            try:
                (size,) = struct.unpack(">I", _recv_exact(conn, 4))
                if size < 10:
                    self._fail(ConnectionError("Kafka request too short."), conn)
                    return
                body = _recv_exact(conn, size)
            except OSError as exc:
                self._fail(exc, conn)
                return

            try:
                response = encode(expectation)
            except KafkaError:
                conn.close()
                self._listener.close()
                return
            if not response:
                continue

            try:
                conn.sendall(struct.pack(">I", len(response) + 4) + body[4:8] + response)
            except OSError as exc:
                self._fail(exc, conn)
                return

        try:
            conn.close()
        except OSError as exc:
            self._fail(exc, None)
            return
        try:
            self._listener.close()
        except OSError as exc:
            self.errors.append(exc)