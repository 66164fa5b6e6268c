"""Abstract interface for publish/subscribe transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

MessageHandler = Callable[[str, bytes], Awaitable[None]]
LifecycleHandler = Callable[[], Awaitable[None]]


@dataclass
class PublishResult:
    """Outcome of a single publish."""

    success: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "PublishResult":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str) -> "PublishResult":
        return cls(success=False, reason=reason)


@dataclass
class LastWill:
    """Message the broker publishes on the node's behalf if it drops off."""

    topic: str
    payload: bytes
    qos: int = 1
    retain: bool = False


class TransportInterface(ABC):
    """Abstract base class for broker transports."""

    def __init__(self):
        self._on_message: Optional[MessageHandler] = None
        self._on_connected: Optional[LifecycleHandler] = None
        self._on_disconnected: Optional[LifecycleHandler] = None

    def set_handlers(
        self,
        on_message: Optional[MessageHandler] = None,
        on_connected: Optional[LifecycleHandler] = None,
        on_disconnected: Optional[LifecycleHandler] = None,
    ) -> None:
        """
        Register the inbound callbacks.

        Args:
            on_message: Coroutine called with (topic, payload) for every message
            on_connected: Coroutine called each time the broker session is established
            on_disconnected: Coroutine called each time the broker session is lost
        """
        self._on_message = on_message
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected

    @abstractmethod
    async def connect(self, will: Optional[LastWill] = None) -> bool:
        """
        Connect to the broker.

        Args:
            will: Last will registered with the broker for this connection

        Returns:
            True if the connection attempt was started successfully
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the broker and stop any reconnect attempts."""
        pass

    @abstractmethod
    async def is_connected(self) -> bool:
        """
        Check if connected to the broker.

        Returns:
            True if connected, False otherwise
        """
        pass

    @abstractmethod
    async def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> PublishResult:
        """
        Publish a payload.

        Args:
            topic: Destination topic
            payload: Encoded payload bytes
            qos: MQTT quality of service
            retain: Whether the broker should retain the message

        Returns:
            PublishResult describing success or the failure reason
        """
        pass

    @abstractmethod
    async def subscribe(self, topic_filter: str, qos: int = 0) -> PublishResult:
        """
        Subscribe to a topic filter.

        Args:
            topic_filter: Topic filter, wildcards allowed
            qos: MQTT quality of service

        Returns:
            PublishResult describing success or the failure reason
        """
        pass

    @abstractmethod
    async def set_last_will(self, will: LastWill) -> None:
        """
        Replace the last will used for the next connection.

        Args:
            will: Last will to register on the next connect
        """
        pass
