"""
Edge node session/sequence lifecycle engine.

The engine owns the session state and the sequence counter. Transport
events drive its state machine:

    DISCONNECTED --connected--> CONNECTING --birth sent--> ONLINE
    ONLINE --disconnected--> DISCONNECTED --connected--> CONNECTING ...

Any state --stop()--> SHUT_DOWN.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional

from ..monitoring.metrics import get_metrics
from ..sparkplug.codec import JsonPayloadCodec, PayloadCodec
from ..sparkplug.constants import (
    DEFAULT_RESERVED_METRIC_NAMES,
    NAMESPACE,
    REBIRTH_METRIC_NAME,
)
from ..sparkplug.counters import SequenceCounter, SessionState
from ..sparkplug.errors import (
    InvalidMetricType,
    NodeNotOnline,
    PayloadTypeMismatch,
    TransportFailure,
    UnknownDevice,
)
from ..sparkplug.factory import MessageFactory
from ..sparkplug.known_metrics import KnownMetricSet
from ..sparkplug.models import CommandEvent, Envelope, Metric, Scope
from ..sparkplug.topics import TopicRouter, classify, command_subscriptions
from ..transport.interface import LastWill, PublishResult, TransportInterface
from .events import CommandDispatcher

logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    """Lifecycle states of the edge node."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ONLINE = "online"
    SHUT_DOWN = "shut_down"


@dataclass
class DeviceRecord:
    """A birthed device and its last-known metric values."""

    device_id: str
    known: KnownMetricSet
    last_values: dict[str, Metric] = field(default_factory=dict)

    def remember(self, metrics: Iterable[Metric]) -> None:
        for metric in metrics:
            if self.known.contains(metric.name):
                self.last_values[metric.name] = metric

    def birth_metrics(self) -> List[Metric]:
        """Declared metrics carrying their last-known values, in declaration order."""
        return [self.last_values.get(m.name, m) for m in self.known]

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "metrics": [metric.to_dict() for metric in self.birth_metrics()],
        }


class NodeEngine:
    """
    Sparkplug B edge node.

    Outbound publishes are serialized by a single asyncio lock so that the
    order messages reach the transport equals their sequence order, and no
    data message can slip between a session's begin and its birth.
    """

    def __init__(
        self,
        transport: TransportInterface,
        group_id: str,
        edge_node_id: str,
        known_metrics: Optional[KnownMetricSet] = None,
        codec: Optional[PayloadCodec] = None,
        dispatcher: Optional[CommandDispatcher] = None,
        namespace: str = NAMESPACE,
        embed_session_number: bool = True,
        republish_devices_on_reconnect: bool = True,
        reserved_metric_names: Iterable[str] = DEFAULT_RESERVED_METRIC_NAMES,
        qos: int = 0,
        metrics_enabled: bool = False,
    ):
        """
        Initialize the engine.

        Args:
            transport: Broker transport to publish through
            group_id: Sparkplug group identifier
            edge_node_id: Edge node identifier
            known_metrics: Metrics this node may publish
            codec: Payload codec (JSON if None)
            dispatcher: Command subscriber registry (a new one if None)
            namespace: Topic namespace
            embed_session_number: Append the session number to data messages
            republish_devices_on_reconnect: Re-birth known devices on every node birth
            reserved_metric_names: Names callers may never supply
            qos: MQTT quality of service for publishes and subscriptions
            metrics_enabled: Record Prometheus metrics
        """
        self.transport = transport
        self.known_metrics = known_metrics if known_metrics is not None else KnownMetricSet()
        self.codec = codec or JsonPayloadCodec()
        self.dispatcher = dispatcher or CommandDispatcher()
        self.republish_devices_on_reconnect = republish_devices_on_reconnect
        self.qos = qos
        self.metrics_enabled = metrics_enabled

        self.factory = MessageFactory(
            group_id=group_id,
            edge_node_id=edge_node_id,
            namespace=namespace,
            embed_session_number=embed_session_number,
            reserved_metric_names=reserved_metric_names,
        )
        self.router = TopicRouter(
            deliver=self._handle_command,
            group_id=group_id,
            edge_node_id=edge_node_id,
        )

        self.sequence = SequenceCounter()
        self.session = SessionState()
        self.state = NodeState.DISCONNECTED

        self._node_values: dict[str, Metric] = {}
        self._devices: dict[str, DeviceRecord] = {}
        self._subscribed = False
        self._lock = asyncio.Lock()

        self.transport.set_handlers(
            on_message=self.on_message,
            on_connected=self.on_connected,
            on_disconnected=self.on_disconnected,
        )

    @property
    def group_id(self) -> str:
        return self.factory.group_id

    @property
    def edge_node_id(self) -> str:
        return self.factory.edge_node_id

    @property
    def namespace(self) -> str:
        return self.factory.namespace

    @property
    def is_online(self) -> bool:
        return self.state == NodeState.ONLINE

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Connect the transport with an NDEATH last will for the upcoming session.

        Returns:
            True if the transport accepted the connect request
        """
        if self.state == NodeState.SHUT_DOWN:
            raise NodeNotOnline("Node has been shut down")

        logger.info(f"Starting edge node {self.group_id}/{self.edge_node_id}")
        # The will must name the session the broker is about to see
        will = self._death_will(self.session.upcoming_session())
        connected = await self.transport.connect(will)
        if not connected:
            logger.error("Transport refused the connect request")
        return connected

    async def stop(self) -> None:
        """Publish a graceful NDEATH when online, disconnect, and shut down."""
        async with self._lock:
            if self.state == NodeState.SHUT_DOWN:
                return

            if self.state == NodeState.ONLINE:
                envelope = self.factory.build_node_death(self.session.current_session())
                result = await self._send(envelope)
                if not result.success:
                    logger.warning(f"Graceful NDEATH not delivered: {result.reason}")

            self.state = NodeState.SHUT_DOWN
            self.session.mark_disconnected()

        await self.transport.disconnect()
        self._set_connection_metric(False)
        logger.info(f"Edge node {self.group_id}/{self.edge_node_id} shut down")

    async def on_connected(self) -> None:
        """Begin a new session and publish the birth sequence."""
        async with self._lock:
            if self.state == NodeState.SHUT_DOWN:
                logger.debug("Ignoring connect event after shutdown")
                return

            self.state = NodeState.CONNECTING
            # Session number advances only here, once per connect
            session_number = self.session.begin_new_session()
            self._subscribed = False
            logger.info(f"Transport connected, beginning session {session_number}")
            self._set_connection_metric(True)
            await self._birth_locked()

    async def on_disconnected(self) -> None:
        """
        Mark the node disconnected.

        Takes effect immediately, without waiting for an in-flight publish,
        so later publishes fail fast. No NDEATH is sent here; the broker
        delivers the last will.
        """
        if self.state == NodeState.SHUT_DOWN:
            return

        self.state = NodeState.DISCONNECTED
        self.session.mark_disconnected()
        self._subscribed = False
        self._set_connection_metric(False)
        logger.warning(
            f"Transport disconnected during session {self.session.current_session()}"
        )

        await self.transport.set_last_will(self._death_will(self.session.upcoming_session()))

    async def rebirth(self) -> PublishResult:
        """
        Republish NBIRTH (and device births) within the current session.

        The sequence counter resets; the session number is unchanged because
        it only advances on reconnect.

        Raises:
            NodeNotOnline: If the transport has no live session
        """
        async with self._lock:
            if self.state == NodeState.SHUT_DOWN or not self.session.is_connected():
                raise NodeNotOnline("Cannot rebirth without a live transport session")
            logger.info(f"Rebirth requested for session {self.session.current_session()}")
            self.state = NodeState.CONNECTING
            return await self._birth_locked()

    async def _birth_locked(self) -> PublishResult:
        envelope = self.factory.build_node_birth(
            self._node_birth_metrics(), self.sequence, self.session
        )
        result = await self._send(envelope)
        if not result.success:
            logger.error(f"NBIRTH publish failed: {result.reason}")
            return result

        if self.metrics_enabled:
            get_metrics().record_birth(Scope.NODE.value)

        if not self._subscribed:
            self._subscribed = True
            for topic_filter in command_subscriptions(
                self.group_id, self.edge_node_id, self.namespace
            ):
                if self._birth_interrupted():
                    return self._abandon_birth()
                subscribed = await self.transport.subscribe(topic_filter, qos=self.qos)
                if not subscribed.success:
                    logger.error(f"Subscribe to {topic_filter} failed: {subscribed.reason}")

        if self.republish_devices_on_reconnect:
            await self._republish_devices_locked()

        # on_disconnected runs without the lock and may have fired during any await above
        if self._birth_interrupted():
            return self._abandon_birth()

        self.state = NodeState.ONLINE
        logger.info(
            f"Node online: session={self.session.current_session()}, "
            f"devices={len(self._devices)}"
        )
        return result

    async def _republish_devices_locked(self) -> None:
        """One best-effort pass of DBIRTH for every remembered device."""
        for record in list(self._devices.values()):
            if self._birth_interrupted():
                return
            try:
                envelope = self.factory.build_device_birth(
                    record.device_id, record.birth_metrics(), self.sequence
                )
            except InvalidMetricType as e:
                logger.error(f"Skipping republish of device {record.device_id}: {e}")
                continue

            result = await self._send(envelope)
            if not result.success:
                logger.warning(
                    f"Republish of device {record.device_id} failed: {result.reason}"
                )

    def _birth_interrupted(self) -> bool:
        """True once the connection dropped (or shutdown began) mid-birth."""
        return self.state != NodeState.CONNECTING or not self.session.is_connected()

    def _abandon_birth(self) -> PublishResult:
        logger.warning(
            f"Connection lost during birth of session {self.session.current_session()}, "
            f"staying {self.state.value}"
        )
        return PublishResult.failed("Connection lost during birth")

    # =========================================================================
    # Node publishing
    # =========================================================================

    async def publish_data(self, metrics: Iterable[Metric]) -> PublishResult:
        """
        Publish an NDATA for the declared subset of metrics.

        Raises:
            NodeNotOnline: If the node is not online
            ConfigurationMissing: If the node identity is incomplete
            InvalidMetricType: If a declared metric carries an invalid value
        """
        metrics = list(metrics)
        async with self._lock:
            self._require_online()
            envelope = self.factory.build_node_data(
                metrics, self.known_metrics, self.sequence, self.session
            )
            self._record_dropped(Scope.NODE, metrics, envelope)
            self._remember_node_values(envelope)
            return await self._send(envelope)

    # =========================================================================
    # Device publishing
    # =========================================================================

    async def publish_device_birth(
        self, device_id: str, metrics: Iterable[Metric]
    ) -> PublishResult:
        """
        Publish a DBIRTH, declaring the device's known metrics from its birth.

        Re-birthing an existing device replaces its declaration.
        """
        metrics = list(metrics)
        async with self._lock:
            self._require_online()
            envelope = self.factory.build_device_birth(device_id, metrics, self.sequence)

            # The birth is the declaration; later DDATA is filtered against it
            record = DeviceRecord(device_id=device_id, known=KnownMetricSet(envelope.metrics))
            record.remember(envelope.metrics)
            self._devices[device_id] = record

            result = await self._send(envelope)
            if result.success and self.metrics_enabled:
                get_metrics().record_birth(Scope.DEVICE.value)
            self._update_device_metric()
            return result

    async def publish_device_data(
        self, device_id: str, metrics: Iterable[Metric]
    ) -> PublishResult:
        """
        Publish a DDATA filtered against the device's declared metrics.

        Raises:
            UnknownDevice: If the device has not been birthed
        """
        metrics = list(metrics)
        async with self._lock:
            self._require_online()
            record = self._get_device(device_id)
            envelope = self.factory.build_device_data(
                device_id, metrics, record.known, self.sequence, self.session
            )
            self._record_dropped(Scope.DEVICE, metrics, envelope)
            record.remember(envelope.metrics)
            return await self._send(envelope)

    async def publish_device_death(self, device_id: str) -> PublishResult:
        """
        Publish a DDEATH and forget the device.

        Raises:
            UnknownDevice: If the device has not been birthed
        """
        async with self._lock:
            self._require_online()
            self._get_device(device_id)
            envelope = self.factory.build_device_death(device_id)
            del self._devices[device_id]
            self._update_device_metric()
            return await self._send(envelope)

    def devices(self) -> List[DeviceRecord]:
        return list(self._devices.values())

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        return self._devices.get(device_id)

    # =========================================================================
    # Commands
    # =========================================================================

    def subscribe_node_commands(self, callback):
        """Register a node command subscriber; returns an unsubscribe function."""
        return self.dispatcher.subscribe_node_commands(callback)

    def subscribe_device_commands(self, callback):
        """Register a device command subscriber; returns an unsubscribe function."""
        return self.dispatcher.subscribe_device_commands(callback)

    async def on_message(self, topic: str, payload: bytes) -> None:
        """
        Decode and route one inbound message.

        Per-message errors are logged and the message is dropped; they never
        affect the session or the sequence counter.
        """
        classification = classify(topic)
        if self.metrics_enabled:
            get_metrics().record_received(
                classification.message_type.value if classification else None
            )

        # Births, data and deaths of other nodes are not ours to handle
        if classification is None or not classification.is_command:
            logger.debug(f"Ignoring inbound message on {topic}")
            return

        try:
            decoded = self.codec.decode(payload)
            await self.router.dispatch(topic, decoded)
        except PayloadTypeMismatch as e:
            logger.warning(f"Dropping message on {topic}: payload mismatch: {e}")
            self._record_inbound_drop("payload_type_mismatch")
        except InvalidMetricType as e:
            logger.warning(f"Dropping message on {topic}: invalid metric: {e}")
            self._record_inbound_drop("invalid_metric_type")

    async def _handle_command(self, event: CommandEvent) -> None:
        logger.debug(f"Command {event.metric.name!r} on {event.topic}")
        if self.metrics_enabled:
            get_metrics().record_command(event.scope.value)

        # NBIRTH goes out before any subscriber runs
        if (
            event.scope == Scope.NODE
            and event.metric.name == REBIRTH_METRIC_NAME
            and event.metric.value is True
        ):
            try:
                await self.rebirth()
            except NodeNotOnline as e:
                logger.warning(f"Rebirth request ignored: {e}")

        await self.dispatcher.publish(event)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> dict[str, Any]:
        """Snapshot of the node for status reporting."""
        return {
            "state": self.state.value,
            "namespace": self.namespace,
            "group_id": self.group_id,
            "edge_node_id": self.edge_node_id,
            "connected": self.session.is_connected(),
            "session_number": self.session.current_session(),
            "sequence_number": self.sequence.current(),
            "known_metrics": [metric.to_dict() for metric in self._node_birth_metrics()],
            "devices": sorted(self._devices),
        }

    # =========================================================================
    # Internal
    # =========================================================================

    def _require_online(self) -> None:
        if self.state != NodeState.ONLINE:
            raise NodeNotOnline(f"Node is {self.state.value}, publish rejected")

    def _get_device(self, device_id: str) -> DeviceRecord:
        record = self._devices.get(device_id)
        if record is None:
            raise UnknownDevice(f"Device {device_id!r} has not been birthed")
        return record

    def _death_will(self, session_number: int) -> LastWill:
        envelope = self.factory.build_node_death(session_number)
        return LastWill(
            topic=envelope.topic, payload=self.codec.encode(envelope), qos=1, retain=False
        )

    def _node_birth_metrics(self) -> List[Metric]:
        return [self._node_values.get(m.name, m) for m in self.known_metrics]

    def _remember_node_values(self, envelope: Envelope) -> None:
        for metric in envelope.metrics:
            if self.known_metrics.contains(metric.name):
                self._node_values[metric.name] = metric

    async def _send(self, envelope: Envelope) -> PublishResult:
        """Encode and publish; caller holds the lock."""
        payload = self.codec.encode(envelope)
        message_type = envelope.message_type.value
        logger.debug(
            f"Publishing {message_type} seq={envelope.sequence_number} "
            f"metrics={envelope.metric_names} to {envelope.topic}"
        )

        try:
            result = await self.transport.publish(envelope.topic, payload, qos=self.qos)
        except TransportFailure as e:
            # Sequence already consumed; no rollback
            result = PublishResult.failed(str(e))

        if self.metrics_enabled:
            metrics = get_metrics()
            if result.success:
                metrics.record_published(message_type, len(payload))
            else:
                metrics.record_publish_failure(message_type)
            metrics.update_session(
                session_number=self.session.current_session(),
                sequence_number=self.sequence.current(),
            )

        if not result.success:
            logger.warning(f"Publish of {message_type} to {envelope.topic} failed: {result.reason}")
        return result

    def _record_dropped(self, scope: Scope, requested: List[Metric], envelope: Envelope) -> None:
        if not self.metrics_enabled:
            return
        published = set(envelope.metric_names)
        dropped = sum(
            1
            for metric in requested
            if metric.name not in published
            and metric.name not in self.factory.reserved_metric_names
        )
        get_metrics().record_dropped_metrics(scope.value, dropped)

    def _record_inbound_drop(self, reason: str) -> None:
        if self.metrics_enabled:
            metrics = get_metrics()
            metrics.record_inbound_dropped(reason)
            metrics.record_error("engine", reason)

    def _set_connection_metric(self, connected: bool) -> None:
        if self.metrics_enabled:
            get_metrics().set_connection_status(connected)

    def _update_device_metric(self) -> None:
        if self.metrics_enabled:
            get_metrics().set_devices_online(len(self._devices))


__all__ = ["DeviceRecord", "NodeEngine", "NodeState"]
