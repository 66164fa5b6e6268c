"""Pydantic schemas for API request and response validation."""

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..sparkplug.errors import InvalidMetricType
from ..sparkplug.known_metrics import KnownMetricSet
from ..sparkplug.models import DataType, Metric


# ============================================================================
# Common/Shared Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")


class MetricSchema(BaseModel):
    """A metric as reported by the node."""

    name: str
    datatype: str
    value: Any = None
    timestamp: Optional[int] = None
    alias: Optional[int] = None


# ============================================================================
# Health Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Overall status: healthy or unhealthy")
    transport_connected: bool = Field(..., description="Whether the broker connection is up")
    node_state: str = Field(..., description="Lifecycle state of the edge node")
    uptime_seconds: float = Field(..., description="Application uptime in seconds")
    commands_received: int = Field(..., description="Command metrics delivered to subscribers")


# ============================================================================
# Node Schemas
# ============================================================================

class NodeStatusResponse(BaseModel):
    """Response model for the edge node status."""

    state: str
    namespace: str
    group_id: Optional[str] = None
    edge_node_id: Optional[str] = None
    connected: bool
    session_number: int = Field(..., description="Current session number (-1 before first connect)")
    sequence_number: int = Field(..., description="Sequence number the next data message carries")
    known_metrics: List[MetricSchema]
    devices: List[str]


class MetricValueRequest(BaseModel):
    """A metric value supplied by the caller."""

    name: str = Field(..., min_length=1, description="Metric name (case-sensitive)")
    value: Any = Field(None, description="Metric value; null publishes a null metric")
    datatype: Optional[str] = Field(
        None,
        description="Datatype name (e.g. Double, Int32). Defaults to the declared or inferred type",
    )
    timestamp: Optional[int] = Field(None, description="Milliseconds since the epoch")

    def to_metric(self, known: Optional[KnownMetricSet] = None) -> Metric:
        """
        Convert to a validated Metric.

        The datatype is the explicit one, else the declared one from known,
        else inferred from the value.

        Raises:
            InvalidMetricType: If the value does not fit the datatype
        """
        if self.datatype:
            datatype = DataType.from_name(self.datatype)
        else:
            declared = known.lookup(self.name) if known is not None else None
            if declared is None:
                if self.value is None:
                    raise InvalidMetricType(
                        f"Metric {self.name!r}: a datatype is required for a null value"
                    )
                return Metric.infer(self.name, self.value, self.timestamp)
            datatype = declared.datatype

        value = self.value
        if datatype in (DataType.FLOAT, DataType.DOUBLE) and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        return Metric(
            name=self.name, datatype=datatype, value=value, timestamp=self.timestamp
        ).validate()


class PublishMetricsRequest(BaseModel):
    """Request model for publishing metrics."""

    metrics: List[MetricValueRequest] = Field(default_factory=list)

    def to_metrics(self, known: Optional[KnownMetricSet] = None) -> List[Metric]:
        return [item.to_metric(known) for item in self.metrics]


class PublishResponse(BaseModel):
    """Response model for a publish."""

    success: bool
    reason: Optional[str] = None
    session_number: int
    sequence_number: int = Field(..., description="Sequence number the next data message carries")


# ============================================================================
# Device Schemas
# ============================================================================

class DeviceResponse(BaseModel):
    """Response model for a birthed device."""

    device_id: str
    metrics: List[MetricSchema]


class DeviceListResponse(BaseModel):
    """Response model for device list."""

    devices: List[DeviceResponse]
    total: int
