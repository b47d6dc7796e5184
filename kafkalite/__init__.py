"""A small Kafka client: wire protocol, messages, broker connections, cluster metadata and a mock broker."""

__version__ = "0.1.0"