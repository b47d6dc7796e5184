"""Exceptions raised by the package and the error codes a broker can return."""

from __future__ import annotations

from enum import IntEnum


class KafkaError(Exception):
    """Base class for every error raised by this package."""

    _default = "kafka: unexpected error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self._default if message is None else message)


class OutOfBrokersError(KafkaError):
    """The client has no broker left that answers."""

    _default = "kafka: Client has run out of available brokers to talk to. Is your cluster reachable?"


class ClosedClientError(KafkaError):
    """A method was called on a client that has been closed."""

    _default = "kafka: Tried to use a client that was closed."


class IncompleteResponseError(KafkaError):
    """A valid response lacked the expected topic/partition blocks."""

    _default = "kafka: Response did not contain all the expected topic/partition blocks."


class InvalidPartitionError(KafkaError):
    """A partitioner returned an index outside the valid range."""

    _default = "kafka: Partitioner returned an invalid partition index."


class AlreadyConnectedError(KafkaError):
    """open() was called on a broker that is already connected."""

    _default = "kafka: broker: already connected"


class NotConnectedError(KafkaError):
    """A broker that is not connected was used or closed."""

    _default = "kafka: broker: not connected"


class EncodingError(KafkaError):
    """A packet could not be encoded under the wire rules."""

    _default = "kafka: Error while encoding packet."


class InsufficientDataError(KafkaError):
    """A packet was truncated: more bytes were expected."""

    _default = "kafka: Insufficient data to decode packet, more bytes expected."


class ShuttingDownError(KafkaError):
    """A producer received a message while shutting down."""

    _default = "kafka: Message received by producer in process of shutting down."


class MessageTooLargeError(KafkaError):
    """The next message is larger than the configured maximum."""

    _default = "kafka: Message is larger than MaxFetchSize"


class DecodingError(KafkaError):
    """A response was malformed (bad CRC, bad length, invalid value...)."""

    def __init__(self, info: str) -> None:
        self.info = info
        super().__init__(f"kafka: Error while decoding packet: {info}")


class ConfigurationError(KafkaError):
    """A configuration value does not make sense."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"kafka: Invalid Configuration: {reason}")


_DESCRIPTIONS = {
    0: "kafka server: Not an error, why are you printing me?",
    -1: "kafka server: Unexpected (unknown?) server error.",
    1: "kafka server: The requested offset is outside the range of offsets maintained by the server for the given topic/partition.",
    2: "kafka server: Message contents does not match its CRC.",
    3: "kafka server: Request was for a topic or partition that does not exist on this broker.",
    4: "kafka server: The message has a negative size.",
    5: "kafka server: In the middle of a leadership election, there is currently no leader for this partition and hence it is unavailable for writes.",
    6: "kafka server: Tried to send a message to a replica that is not the leader for some partition. Your metadata is out of date.",
    7: "kafka server: Request exceeded the user-specified time limit in the request.",
    8: "kafka server: Broker not available. Not a client facing error, we should never receive this!!!",
    9: "kafka server: Replica infomation not available, one or more brokers are down.",
    10: "kafka server: Message was too large, server rejected it to avoid allocation error.",
    11: "kafka server: StaleControllerEpochCode (internal error code for broker-to-broker communication).",
    12: "kafka server: Specified a string larger than the configured maximum for offset metadata.",
    14: "kafka server: The broker is still loading offsets after a leader change for that offset's topic partition.",
    15: "kafka server: Offset's topic has not yet been created.",
    16: "kafka server: Request was for a consumer group that is not coordinated by this broker.",
}


class KError(IntEnum):
    """Numeric error codes returned by a broker; unknown codes are kept as-is."""

    NO_ERROR = 0
    UNKNOWN = -1
    OFFSET_OUT_OF_RANGE = 1
    INVALID_MESSAGE = 2
    UNKNOWN_TOPIC_OR_PARTITION = 3
    INVALID_MESSAGE_SIZE = 4
    LEADER_NOT_AVAILABLE = 5
    NOT_LEADER_FOR_PARTITION = 6
    REQUEST_TIMED_OUT = 7
    BROKER_NOT_AVAILABLE = 8
    REPLICA_NOT_AVAILABLE = 9
    MESSAGE_SIZE_TOO_LARGE = 10
    STALE_CONTROLLER_EPOCH_CODE = 11
    OFFSET_METADATA_TOO_LARGE = 12
    OFFSETS_LOAD_IN_PROGRESS = 14
    CONSUMER_COORDINATOR_NOT_AVAILABLE = 15
    NOT_COORDINATOR_FOR_CONSUMER = 16

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, int):
            return None
        member = int.__new__(cls, value)
        member._name_ = f"CODE_{value}"
        member._value_ = value
        return cls._value2member_map_.setdefault(value, member)

    def __str__(self) -> str:
        return _DESCRIPTIONS.get(
            int(self), f"Unknown error, how did this happen? Error code = {int(self)}"
        )


class ServerError(KafkaError):
    """An error code returned by a broker, raised as an exception."""

    def __init__(self, code: int) -> None:
        self.code = KError(code)
        super().__init__(str(self.code))