"""Broker transports the node engine publishes through."""

from .interface import LastWill, PublishResult, TransportInterface
from .mock import MockTransport, PublishedMessage
from .mqtt import MqttTransport

__all__ = [
    "LastWill",
    "MockTransport",
    "MqttTransport",
    "PublishResult",
    "PublishedMessage",
    "TransportInterface",
]
