"""
Sparkplug B protocol core.

Metric declarations, sequence/session counters, envelope construction,
topic classification and payload codecs.
"""

from .codec import JsonPayloadCodec, PayloadCodec
from .constants import (
    DEFAULT_RESERVED_METRIC_NAMES,
    NAMESPACE,
    REBIRTH_METRIC_NAME,
    SEQUENCE_MODULUS,
    SESSION_NUMBER_METRIC_NAME,
)
from .counters import SequenceCounter, SessionState
from .errors import (
    ConfigurationMissing,
    InvalidMetricType,
    NodeNotOnline,
    PayloadTypeMismatch,
    SparkplugError,
    TransportFailure,
    UnknownDevice,
)
from .factory import MessageFactory, now_ms
from .known_metrics import KnownMetricSet
from .models import CommandEvent, DataType, DecodedPayload, Envelope, MessageType, Metric, Scope
from .topics import TopicClassification, TopicRouter, build_topic, classify, command_subscriptions

__all__ = [
    "CommandEvent",
    "ConfigurationMissing",
    "DataType",
    "DecodedPayload",
    "DEFAULT_RESERVED_METRIC_NAMES",
    "Envelope",
    "InvalidMetricType",
    "JsonPayloadCodec",
    "KnownMetricSet",
    "MessageFactory",
    "MessageType",
    "Metric",
    "NAMESPACE",
    "NodeNotOnline",
    "PayloadCodec",
    "PayloadTypeMismatch",
    "REBIRTH_METRIC_NAME",
    "Scope",
    "SEQUENCE_MODULUS",
    "SequenceCounter",
    "SESSION_NUMBER_METRIC_NAME",
    "SessionState",
    "SparkplugError",
    "TopicClassification",
    "TopicRouter",
    "TransportFailure",
    "UnknownDevice",
    "build_topic",
    "classify",
    "command_subscriptions",
    "now_ms",
]
