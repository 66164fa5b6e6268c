"""
Data models for Sparkplug B metrics and message envelopes.
"""
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Optional

from .constants import NAMESPACE, SESSION_NUMBER_METRIC_NAME
from .errors import InvalidMetricType


class DataType(IntEnum):
    """Supported Sparkplug B metric datatypes."""
    INT8 = 1
    INT16 = 2
    INT32 = 3
    INT64 = 4
    UINT8 = 5
    UINT16 = 6
    UINT32 = 7
    UINT64 = 8
    FLOAT = 9
    DOUBLE = 10
    BOOLEAN = 11
    STRING = 12
    DATETIME = 13
    TEXT = 14
    UUID = 15
    BYTES = 17

    @classmethod
    def from_name(cls, name: str) -> "DataType":
        """Resolve a datatype from its name (case-insensitive)."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise InvalidMetricType(f"Unknown metric datatype: {name!r}") from None


# Inclusive value ranges for the integer kinds
_INTEGER_RANGES = {
    DataType.INT8: (-(2**7), 2**7 - 1),
    DataType.INT16: (-(2**15), 2**15 - 1),
    DataType.INT32: (-(2**31), 2**31 - 1),
    DataType.INT64: (-(2**63), 2**63 - 1),
    DataType.UINT8: (0, 2**8 - 1),
    DataType.UINT16: (0, 2**16 - 1),
    DataType.UINT32: (0, 2**32 - 1),
    DataType.UINT64: (0, 2**64 - 1),
    DataType.DATETIME: (0, 2**64 - 1),
}

_FLOAT_KINDS = {DataType.FLOAT, DataType.DOUBLE}
_STRING_KINDS = {DataType.STRING, DataType.TEXT, DataType.UUID}


class Scope(str, Enum):
    """Whether a message concerns the edge node itself or one of its devices."""
    NODE = "node"
    DEVICE = "device"


class MessageType(str, Enum):
    """Sparkplug B message types, valued by their topic token."""
    NODE_BIRTH = "NBIRTH"
    NODE_DATA = "NDATA"
    NODE_DEATH = "NDEATH"
    DEVICE_BIRTH = "DBIRTH"
    DEVICE_DATA = "DDATA"
    DEVICE_DEATH = "DDEATH"
    NODE_COMMAND = "NCMD"
    DEVICE_COMMAND = "DCMD"

    @property
    def scope(self) -> Scope:
        return Scope.DEVICE if self.value.startswith("D") else Scope.NODE

    @property
    def is_birth(self) -> bool:
        return self in (MessageType.NODE_BIRTH, MessageType.DEVICE_BIRTH)

    @property
    def is_death(self) -> bool:
        return self in (MessageType.NODE_DEATH, MessageType.DEVICE_DEATH)

    @property
    def is_command(self) -> bool:
        return self in (MessageType.NODE_COMMAND, MessageType.DEVICE_COMMAND)


def _check_value(name: str, datatype: DataType, value: Any) -> None:
    """Raise InvalidMetricType unless value has the runtime shape of datatype."""
    # Null is valid for every datatype
    if value is None:
        return

    if datatype in _INTEGER_RANGES:
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidMetricType(
                f"Metric {name!r}: {type(value).__name__} is not valid for {datatype.name}"
            )
        low, high = _INTEGER_RANGES[datatype]
        if not low <= value <= high:
            raise InvalidMetricType(
                f"Metric {name!r}: {value} is out of range for {datatype.name}"
            )
    elif datatype in _FLOAT_KINDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidMetricType(
                f"Metric {name!r}: {type(value).__name__} is not valid for {datatype.name}"
            )
    elif datatype == DataType.BOOLEAN:
        if not isinstance(value, bool):
            raise InvalidMetricType(
                f"Metric {name!r}: {type(value).__name__} is not valid for BOOLEAN"
            )
    elif datatype in _STRING_KINDS:
        if not isinstance(value, str):
            raise InvalidMetricType(
                f"Metric {name!r}: {type(value).__name__} is not valid for {datatype.name}"
            )
    elif datatype == DataType.BYTES:
        if not isinstance(value, (bytes, bytearray)):
            raise InvalidMetricType(
                f"Metric {name!r}: {type(value).__name__} is not valid for BYTES"
            )
    else:
        raise InvalidMetricType(f"Metric {name!r}: unsupported datatype {datatype!r}")


@dataclass(frozen=True)
class Metric:
    """
    A single named measurement point.

    Identity is by exact (case-sensitive) name. A value of None marks a null metric.
    """

    name: str
    datatype: DataType
    value: Any = None
    timestamp: Optional[int] = None
    alias: Optional[int] = None

    @property
    def is_null(self) -> bool:
        return self.value is None

    def validate(self) -> "Metric":
        """
        Check the value against the declared datatype.

        Returns:
            This metric, for chaining

        Raises:
            InvalidMetricType: If the datatype or the value shape is not supported
        """
        if not isinstance(self.datatype, DataType):
            try:
                DataType(self.datatype)
            except ValueError:
                raise InvalidMetricType(
                    f"Metric {self.name!r}: unsupported datatype {self.datatype!r}"
                ) from None
        _check_value(self.name, DataType(self.datatype), self.value)
        return self

    def with_value(self, value: Any, timestamp: Optional[int] = None) -> "Metric":
        """Return a copy carrying a new value."""
        return replace(self, value=value, timestamp=timestamp)

    @classmethod
    def infer(cls, name: str, value: Any, timestamp: Optional[int] = None) -> "Metric":
        """
        Build a metric choosing the datatype from the Python value.

        Raises:
            InvalidMetricType: If the value is not one of the supported kinds
        """
        # bool before int
        if isinstance(value, bool):
            datatype = DataType.BOOLEAN
        elif isinstance(value, int):
            datatype = DataType.INT64
        elif isinstance(value, float):
            datatype = DataType.DOUBLE
        elif isinstance(value, str):
            datatype = DataType.STRING
        elif isinstance(value, (bytes, bytearray)):
            datatype = DataType.BYTES
        else:
            raise InvalidMetricType(
                f"Metric {name!r}: cannot infer a datatype for {type(value).__name__}"
            )
        return cls(name=name, datatype=datatype, value=value, timestamp=timestamp).validate()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and webhooks."""
        value = self.value
        if isinstance(value, (bytes, bytearray)):
            value = bytes(value).hex()  # JSON-safe
        return {
            "name": self.name,
            "datatype": DataType(self.datatype).name,
            "value": value,
            "timestamp": self.timestamp,
            "alias": self.alias,
        }


@dataclass(frozen=True)
class Envelope:
    """A canonical Sparkplug B message ready for the codec."""

    message_type: MessageType
    group_id: str
    edge_node_id: str
    metrics: tuple[Metric, ...] = ()
    sequence_number: Optional[int] = None
    timestamp: Optional[int] = None
    device_id: Optional[str] = None
    namespace: str = NAMESPACE

    @property
    def topic(self) -> str:
        """Topic string: namespace/group/type/edge_node[/device]."""
        parts = [self.namespace, self.group_id, self.message_type.value, self.edge_node_id]
        if self.device_id:
            parts.append(self.device_id)
        return "/".join(parts)

    @property
    def session_number(self) -> Optional[int]:
        """Value of the embedded session metric, if present."""
        for metric in self.metrics:
            if metric.name == SESSION_NUMBER_METRIC_NAME:
                return metric.value
        return None

    @property
    def metric_names(self) -> list[str]:
        return [metric.name for metric in self.metrics]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "topic": self.topic,
            "message_type": self.message_type.value,
            "sequence_number": self.sequence_number,
            "session_number": self.session_number,
            "timestamp": self.timestamp,
            "metrics": [metric.to_dict() for metric in self.metrics],
        }


@dataclass
class DecodedPayload:
    """A payload as produced by the codec, before it is bound to a topic."""

    metrics: list[Metric] = field(default_factory=list)
    timestamp: Optional[int] = None
    sequence_number: Optional[int] = None


@dataclass(frozen=True)
class CommandEvent:
    """One metric of an inbound NCMD/DCMD, delivered to command subscribers."""

    scope: Scope
    metric: Metric
    topic: str
    device_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for webhooks."""
        return {
            "scope": self.scope.value,
            "topic": self.topic,
            "device_id": self.device_id,
            "metric": self.metric.to_dict(),
        }
