"""A cluster client that keeps broker connections and topic metadata up to date."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from .broker import Broker, BrokerConfig
from .errors import (
    ClosedClientError,
    ConfigurationError,
    EncodingError,
    KafkaError,
    KError,
    OutOfBrokersError,
    ServerError,
)
from .metadata import MetadataRequest, MetadataResponse, PartitionMetadata

log = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Options for a client; durations are in seconds."""

    metadata_retries: int = 3
    wait_for_election: float = 0.25
    default_broker_config: BrokerConfig | None = None
    background_refresh_frequency: float = 600.0

    def validate(self) -> None:
        """Raise ConfigurationError if a value makes no sense."""
        if self.metadata_retries < 0:
            raise ConfigurationError("Invalid metadata_retries, must be >= 0")
        if self.wait_for_election <= 0:
            raise ConfigurationError("Invalid wait_for_election, must be > 0")
        if self.default_broker_config is not None:
            self.default_broker_config.validate()
        if self.background_refresh_frequency < 0:
            raise ConfigurationError("Invalid background_refresh_frequency, must be >= 0")


def _safe_async_close(broker: Broker) -> None:
    def run() -> None:
        try:
            broker.close()
        except Exception as exc:  # noqa: BLE001 - nobody is waiting for this result
            log.debug("Error closing broker %s: %s", broker.addr, exc)

    threading.Thread(target=run, daemon=True).start()


class Client:
    """Manages connections to the brokers of a cluster and caches its metadata.

    The client must be closed when no longer needed; it can be shared between threads.
    """

    def __init__(self, client_id: str, addrs, config: ClientConfig | None = None) -> None:
        log.info("Initializing new client")
        config = config if config is not None else ClientConfig()
        config.validate()
        addrs = list(addrs)
        if not addrs:
            raise ConfigurationError("You must provide at least one broker address")

        self.id = client_id
        self._config = config
        self._closer = threading.Event()
        self._lock = threading.RLock()
        # Seed addresses are kept apart: cluster metadata need not list them.
        self._seed_addrs: list[str] = addrs
        self._seed_broker: Broker | None = Broker(addrs[0])
        self._dead_addrs: dict[str, None] = {}
        self._brokers: dict[int, Broker] | None = {}
        self._metadata: dict[str, dict[int, PartitionMetadata]] | None = {}
        self._open(self._seed_broker)

        try:
            self.refresh_all_metadata()
        except ServerError as exc:
            if exc.code != KError.LEADER_NOT_AVAILABLE:
                self.close()
                raise
            # Part of the cluster may be down; that does not stop the client.
            log.warning("%s", exc)
        except Exception:
            self.close()
            raise

        if self._config.background_refresh_frequency > 0:
            threading.Thread(target=self._background_updater, daemon=True).start()
        log.info("Successfully initialized new client")

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _open(self, broker: Broker) -> None:
        try:
            broker.open(self._config.default_broker_config)
        except KafkaError as exc:
            log.debug("Could not open broker %s: %s", broker.addr, exc)

    def close(self) -> None:
        """Close every broker connection of this client."""
        if self.closed():
            log.warning("close() called on already closed client")
            raise ClosedClientError()
        with self._lock:
            log.info("Closing client")
            for broker in self._brokers.values():
                _safe_async_close(broker)
            self._brokers = None
            self._metadata = None
            if self._seed_broker is not None:
                _safe_async_close(self._seed_broker)
            self._closer.set()

    def closed(self) -> bool:
        return self._brokers is None

    def partitions(self, topic: str) -> list[int]:
        """Sorted ids of all partitions of a topic."""
        return self._partitions(topic, writable_only=False)

    def writable_partitions(self, topic: str) -> list[int]:
        """Sorted ids of the partitions of a topic that have a leader."""
        return self._partitions(topic, writable_only=True)

    def _partitions(self, topic: str, writable_only: bool) -> list[int]:
        if self.closed():
            raise ClosedClientError()
        partitions = self._cached_partitions(topic, writable_only)
        # An empty list also triggers a refresh, so callers can simply try again.
        if not partitions:
            self.refresh_topic_metadata(topic)
            partitions = self._cached_partitions(topic, writable_only)
        if partitions is None:
            raise ServerError(KError.UNKNOWN_TOPIC_OR_PARTITION)
        return partitions

    def topics(self) -> list[str]:
        """The topics known from the cluster metadata."""
        if self.closed():
            raise ClosedClientError()
        with self._lock:
            if self._metadata is None:
                raise ClosedClientError()
            return list(self._metadata)

    def _get_metadata(self, topic: str, partition: int) -> PartitionMetadata:
        metadata = self._cached_metadata(topic, partition)
        if metadata is None:
            self.refresh_topic_metadata(topic)
            metadata = self._cached_metadata(topic, partition)
        if metadata is None:
            raise ServerError(KError.UNKNOWN_TOPIC_OR_PARTITION)
        return metadata

    def replicas(self, topic: str, partition: int) -> list[int]:
        """Sorted ids of the brokers replicating a partition."""
        if self.closed():
            raise ClosedClientError()
        metadata = self._get_metadata(topic, partition)
        if metadata.err == KError.REPLICA_NOT_AVAILABLE:
            raise ServerError(metadata.err)
        return sorted(metadata.replicas)

    def replicas_in_sync(self, topic: str, partition: int) -> list[int]:
        """Sorted ids of the in-sync replicas of a partition."""
        if self.closed():
            raise ClosedClientError()
        metadata = self._get_metadata(topic, partition)
        if metadata.err == KError.REPLICA_NOT_AVAILABLE:
            raise ServerError(metadata.err)
        return sorted(metadata.isr)

    def leader(self, topic: str, partition: int) -> Broker:
        """The broker leading a partition, refreshing metadata if it is unknown."""
        try:
            return self._cached_leader(topic, partition)
        except ServerError:
            pass
        self.refresh_topic_metadata(topic)
        return self._cached_leader(topic, partition)

    def refresh_topic_metadata(self, *args: str) -> None:
        """Query the cluster for fresh metadata on the given topics."""
        self._refresh_metadata(list(args), self._config.metadata_retries)

    def refresh_all_metadata(self) -> None:
        """Query the cluster for fresh metadata on all topics."""
        self._refresh_metadata([], self._config.metadata_retries)

    def disconnect_broker(self, broker: Broker) -> None:
        """Drop a broker that misbehaved and close its connection."""
        with self._lock:
            log.info("Disconnecting broker %d", broker.id)
            self._dead_addrs[broker.addr] = None
            if broker is self._seed_broker:
                self._seed_addrs = self._seed_addrs[1:]
                if self._seed_addrs:
                    self._seed_broker = Broker(self._seed_addrs[0])
                    self._open(self._seed_broker)
                else:
                    self._seed_broker = None
            elif self._brokers is not None:
                # The leader map is refreshed later since the lookup now fails.
                self._brokers.pop(broker.id, None)
            _safe_async_close(broker)

    def _refresh_metadata(self, topics: list[str], retries_remaining: int) -> None:
        if self.closed():
            raise ClosedClientError()
        # An empty topic name would make the broker fail without a proper error.
        if any(not topic for topic in topics):
            raise ServerError(KError.UNKNOWN_TOPIC_OR_PARTITION)

        while (broker := self._any()) is not None:
            log.info("Fetching metadata from broker %s", broker.addr)
            try:
                response = broker.get_metadata(self.id, MetadataRequest(topics=list(topics)))
            except EncodingError:
                raise
            except Exception as exc:  # noqa: BLE001 - any other failure drops the broker
                log.warning("Error from broker while fetching metadata: %s", exc)
                self.disconnect_broker(broker)
                continue

            retry = self._update(response)
            if retry:
                if retries_remaining <= 0:
                    return
                log.info(
                    "Some partitions are leaderless, waiting %dms for election... "
                    "(%d retries remaining)",
                    int(self._config.wait_for_election * 1000),
                    retries_remaining,
                )
                time.sleep(self._config.wait_for_election)
                self._refresh_metadata(retry, retries_remaining - 1)
            return

        log.warning("Out of available brokers.")
        if retries_remaining > 0:
            log.info(
                "Resurrecting dead brokers after %dms... (%d retries remaining)",
                int(self._config.wait_for_election * 1000),
                retries_remaining,
            )
            time.sleep(self._config.wait_for_election)
            self._resurrect_dead_brokers()
            self._refresh_metadata(topics, retries_remaining - 1)
            return
        raise OutOfBrokersError()

    def _resurrect_dead_brokers(self) -> None:
        with self._lock:
            for addr in self._seed_addrs:
                self._dead_addrs[addr] = None
            self._seed_addrs = list(self._dead_addrs)
            self._dead_addrs = {}
            if self._seed_addrs:
                self._seed_broker = Broker(self._seed_addrs[0])
                self._open(self._seed_broker)

    def _any(self) -> Broker | None:
        with self._lock:
            if self._seed_broker is not None:
                return self._seed_broker
            if self._brokers:
                return next(iter(self._brokers.values()))
            return None

    def _cached_leader(self, topic: str, partition: int) -> Broker:
        with self._lock:
            partitions = (self._metadata or {}).get(topic)
            if partitions is not None and partition in partitions:
                broker = (self._brokers or {}).get(partitions[partition].leader)
                if broker is None:
                    raise ServerError(KError.LEADER_NOT_AVAILABLE)
                return broker
        raise ServerError(KError.UNKNOWN_TOPIC_OR_PARTITION)

    def _cached_metadata(self, topic: str, partition: int) -> PartitionMetadata | None:
        with self._lock:
            return (self._metadata or {}).get(topic, {}).get(partition)

    def _cached_partitions(self, topic: str, writable_only: bool) -> list[int] | None:
        with self._lock:
            partitions = (self._metadata or {}).get(topic)
            if partitions is None:
                return None
            return sorted(
                p.id
                for p in partitions.values()
                if not (writable_only and p.err == KError.LEADER_NOT_AVAILABLE)
            )

    def _background_updater(self) -> None:
        while not self._closer.wait(self._config.background_refresh_frequency):
            try:
                self.refresh_all_metadata()
            except Exception as exc:  # noqa: BLE001 - logged, next tick tries again
                log.warning("Client background metadata update: %s", exc)

    def _update(self, data: MetadataResponse) -> list[str]:
        """Store fresh metadata; return topics to retry because of leader elections."""
        with self._lock:
            if self._brokers is None or self._metadata is None:
                raise ClosedClientError()

            # New ids are registered; a known id with a new address is replaced.
            # Connections open in the background and may fail without harm here.
            for described in data.brokers:
                known = self._brokers.get(described.broker_id)
                if known is None:
                    broker = Broker(described.addr, described.broker_id)
                    self._open(broker)
                    self._brokers[broker.id] = broker
                    log.info("Registered new broker #%d at %s", broker.id, broker.addr)
                elif known.addr != described.addr:
                    _safe_async_close(known)
                    broker = Broker(described.addr, described.broker_id)
                    self._open(broker)
                    self._brokers[broker.id] = broker
                    log.info("Replaced registered broker #%d with %s", broker.id, broker.addr)

            to_retry: dict[str, None] = {}
            error: KError | None = None
            for topic in data.topics:
                if topic.err != KError.NO_ERROR:
                    error = topic.err
                    continue
                partitions: dict[int, PartitionMetadata] = {}
                self._metadata[topic.name] = partitions
                for partition in topic.partitions:
                    partitions[partition.id] = partition
                    if partition.err == KError.NO_ERROR:
                        broker = self._brokers.get(partition.leader)
                        if (
                            broker is not None
                            and broker.addr in self._dead_addrs
                            and not broker.connected()
                        ):
                            to_retry[topic.name] = None
                    elif partition.err == KError.LEADER_NOT_AVAILABLE:
                        to_retry[topic.name] = None

            if error is not None:
                raise ServerError(error)
            return list(to_retry)