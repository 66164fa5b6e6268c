"""Mock transport for testing and running without a broker."""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .interface import LastWill, PublishResult, TransportInterface

logger = logging.getLogger(__name__)


@dataclass
class PublishedMessage:
    """A message recorded by the mock transport."""

    topic: str
    payload: bytes
    qos: int = 0
    retain: bool = False


@dataclass
class MockTransportStats:
    """Counters kept by the mock transport."""

    connects: int = 0
    disconnects: int = 0
    publishes: int = 0
    failed_publishes: int = 0
    injected: int = 0
    subscriptions: List[str] = field(default_factory=list)


def _filter_to_pattern(topic_filter: str) -> str:
    """Translate an MQTT topic filter into an fnmatch pattern."""
    return topic_filter.replace("+", "*").replace("#", "*")


class MockTransport(TransportInterface):
    """
    In-memory transport.

    Records publishes and subscriptions, and lets callers inject inbound
    messages and connection events to drive a node without a network.
    """

    def __init__(self, auto_connect: bool = True, loopback: bool = False):
        """
        Initialize mock transport.

        Args:
            auto_connect: Fire the connected callback from connect()
            loopback: Deliver published messages back to matching subscriptions
        """
        super().__init__()
        self.auto_connect = auto_connect
        self.loopback = loopback

        self.published: List[PublishedMessage] = []
        self.subscriptions: List[str] = []
        self.last_will: Optional[LastWill] = None
        self.stats = MockTransportStats()

        self._connected = False
        self._fail_reason: Optional[str] = None

    # =========================================================================
    # TransportInterface
    # =========================================================================

    async def connect(self, will: Optional[LastWill] = None) -> bool:
        """Connect to the mock broker."""
        logger.info("Connecting to mock transport")
        if will is not None:
            self.last_will = will
        self.stats.connects += 1
        if self.auto_connect:
            await self.simulate_connect()
        return True

    async def disconnect(self) -> None:
        """Disconnect from the mock broker."""
        logger.info("Disconnecting from mock transport")
        self._connected = False
        self.stats.disconnects += 1

    async def is_connected(self) -> bool:
        return self._connected

    async def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> PublishResult:
        if not self._connected:
            self.stats.failed_publishes += 1
            return PublishResult.failed("Not connected")

        if self._fail_reason is not None:
            self.stats.failed_publishes += 1
            return PublishResult.failed(self._fail_reason)

        self.published.append(PublishedMessage(topic, payload, qos, retain))
        self.stats.publishes += 1
        logger.debug(f"Mock: published {len(payload)} bytes to {topic}")

        if self.loopback and self.matches_subscription(topic):
            asyncio.create_task(self.inject_message(topic, payload))

        return PublishResult.ok()

    async def subscribe(self, topic_filter: str, qos: int = 0) -> PublishResult:
        if not self._connected:
            return PublishResult.failed("Not connected")
        if topic_filter not in self.subscriptions:
            self.subscriptions.append(topic_filter)
            self.stats.subscriptions.append(topic_filter)
        logger.debug(f"Mock: subscribed to {topic_filter}")
        return PublishResult.ok()

    async def set_last_will(self, will: LastWill) -> None:
        self.last_will = will

    # =========================================================================
    # Test controls
    # =========================================================================

    def fail_publishes(self, reason: Optional[str] = "Simulated publish failure") -> None:
        """Make subsequent publishes fail with reason (None restores success)."""
        self._fail_reason = reason

    def matches_subscription(self, topic: str) -> bool:
        return any(
            fnmatch.fnmatchcase(topic, _filter_to_pattern(f)) for f in self.subscriptions
        )

    async def simulate_connect(self) -> None:
        """Mark the transport connected and fire the connected callback."""
        self._connected = True
        if self._on_connected:
            await self._on_connected()

    async def simulate_disconnect(self) -> None:
        """Drop the connection and fire the disconnected callback."""
        self._connected = False
        self.stats.disconnects += 1
        if self.last_will is not None:
            # The broker publishes the will when a client drops off
            self.published.append(
                PublishedMessage(
                    self.last_will.topic,
                    self.last_will.payload,
                    self.last_will.qos,
                    self.last_will.retain,
                )
            )
        if self._on_disconnected:
            await self._on_disconnected()

    async def inject_message(self, topic: str, payload: bytes) -> None:
        """Deliver an inbound message as if it came from the broker."""
        self.stats.injected += 1
        if self._on_message:
            await self._on_message(topic, payload)

    def topics(self) -> List[str]:
        """Topics of all recorded publishes, in order."""
        return [message.topic for message in self.published]

    def clear(self) -> None:
        self.published.clear()
