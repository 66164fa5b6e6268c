"""Sparkplug B topic grammar, classification and inbound command routing."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .constants import NAMESPACE
from .errors import PayloadTypeMismatch
from .models import CommandEvent, DecodedPayload, MessageType, Metric, Scope

logger = logging.getLogger(__name__)

# Tokens checked longest-first so substring matching cannot confuse e.g. DDATA with NDATA
_TOKENS = sorted((t.value for t in MessageType), key=len, reverse=True)


@dataclass(frozen=True)
class TopicClassification:
    """Result of classifying a topic string."""

    scope: Scope
    message_type: MessageType
    namespace: Optional[str] = None
    group_id: Optional[str] = None
    edge_node_id: Optional[str] = None
    device_id: Optional[str] = None

    @property
    def is_command(self) -> bool:
        return self.message_type.is_command


def build_topic(
    group_id: str,
    message_type: MessageType,
    edge_node_id: str,
    device_id: Optional[str] = None,
    namespace: str = NAMESPACE,
) -> str:
    """Render namespace/group/type/edge_node[/device]."""
    parts = [namespace, group_id, message_type.value, edge_node_id]
    if device_id:
        parts.append(device_id)
    return "/".join(parts)


def command_subscriptions(group_id: str, edge_node_id: str, namespace: str = NAMESPACE) -> list[str]:
    """Topic filters a node subscribes to for its own commands."""
    return [
        build_topic(group_id, MessageType.NODE_COMMAND, edge_node_id, namespace=namespace),
        build_topic(group_id, MessageType.DEVICE_COMMAND, edge_node_id, "#", namespace=namespace),
    ]


def classify(topic: str) -> Optional[TopicClassification]:
    """
    Classify a topic into scope and message type.

    Well-formed topics are parsed by segment. Anything else falls back to
    matching the message type tokens as substrings.

    Returns:
        The classification, or None when no message type token is present
    """
    segments = topic.split("/")
    # namespace/group/TYPE/node[/device...]
    if len(segments) >= 4:
        try:
            message_type = MessageType(segments[2])
        except ValueError:
            message_type = None
        if message_type is not None:
            return TopicClassification(
                scope=message_type.scope,
                message_type=message_type,
                namespace=segments[0],
                group_id=segments[1],
                edge_node_id=segments[3],
                device_id="/".join(segments[4:]) or None,
            )

    # Fallback for non-standard topic layouts
    for token in _TOKENS:
        if token in topic:
            message_type = MessageType(token)
            return TopicClassification(scope=message_type.scope, message_type=message_type)

    return None


class TopicRouter:
    """
    Routes decoded inbound payloads to command events.

    Only NCMD/DCMD messages produce events; births, data and deaths of other
    nodes are accepted and ignored.
    """

    def __init__(
        self,
        deliver: Callable[[CommandEvent], Awaitable[None]],
        group_id: Optional[str] = None,
        edge_node_id: Optional[str] = None,
    ):
        """
        Initialize the router.

        Args:
            deliver: Coroutine called once per command metric, in envelope order
            group_id: When set, commands for other groups are ignored
            edge_node_id: When set, commands for other edge nodes are ignored
        """
        self._deliver = deliver
        self.group_id = group_id
        self.edge_node_id = edge_node_id

    def classify(self, topic: str) -> Optional[TopicClassification]:
        return classify(topic)

    def _addressed_to_us(self, classification: TopicClassification) -> bool:
        if self.group_id and classification.group_id not in (None, self.group_id):
            return False
        if self.edge_node_id and classification.edge_node_id not in (None, self.edge_node_id):
            return False
        return True

    async def dispatch(self, topic: str, payload: DecodedPayload) -> int:
        """
        Classify a topic and deliver each command metric.

        Args:
            topic: Inbound topic string
            payload: Payload decoded by the codec

        Returns:
            Number of command events delivered

        Raises:
            PayloadTypeMismatch: If a command payload is not a metric-bearing payload
        """
        classification = self.classify(topic)
        if classification is None:
            logger.debug(f"Ignoring message on unclassified topic: {topic}")
            return 0

        if not classification.is_command:
            logger.debug(f"Ignoring {classification.message_type.value} on {topic}")
            return 0

        if not self._addressed_to_us(classification):
            logger.debug(f"Ignoring command addressed to another node: {topic}")
            return 0

        if classification.scope == Scope.DEVICE and not classification.device_id:
            logger.warning(f"Dropping device command without a device segment: {topic}")
            return 0

        if not isinstance(payload, DecodedPayload) or not all(
            isinstance(metric, Metric) for metric in payload.metrics
        ):
            raise PayloadTypeMismatch(
                f"{classification.message_type.value} payload on {topic} is not a metric payload"
            )

        # One event per metric, in envelope order
        delivered = 0
        for metric in payload.metrics:
            event = CommandEvent(
                scope=classification.scope,
                metric=metric,
                topic=topic,
                device_id=classification.device_id,
            )
            await self._deliver(event)
            delivered += 1

        return delivered
