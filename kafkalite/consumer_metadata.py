"""Consumer-group coordinator lookup request and response."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from .errors import KError
from .packets import PacketDecoder, PacketEncoder


@dataclass
class ConsumerMetadataRequest:
    """Asks which broker coordinates the given consumer group."""

    api_key: ClassVar[int] = 10
    api_version: ClassVar[int] = 0

    consumer_group: str = ""

    def encode(self, pe: PacketEncoder) -> None:
        pe.put_string(self.consumer_group)


@dataclass
class ConsumerMetadataResponse:
    """The coordinator of a consumer group."""

    err: KError = KError.NO_ERROR
    coordinator_id: int = 0
    coordinator_host: str = ""
    coordinator_port: int = 0

    def decode(self, pd: PacketDecoder) -> None:
        self.err = KError(pd.get_int16())
        self.coordinator_id = pd.get_int32()
        self.coordinator_host = pd.get_string()
        self.coordinator_port = pd.get_int32()