"""Prometheus metrics collector."""

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Collects and exposes Prometheus metrics."""

    def __init__(self):
        """Initialize metrics."""

        # Outbound traffic
        self.messages_published_total = Counter(
            "sparkplug_messages_published_total",
            "Total Sparkplug messages handed to the transport",
            ["message_type"],
        )

        self.publish_failures_total = Counter(
            "sparkplug_publish_failures_total",
            "Total publishes the transport reported as failed",
            ["message_type"],
        )

        self.metrics_dropped_total = Counter(
            "sparkplug_metrics_dropped_total",
            "Outbound metrics dropped because they are not declared",
            ["scope"],
        )

        self.payload_size_bytes = Histogram(
            "sparkplug_payload_size_bytes",
            "Encoded payload size in bytes",
            buckets=[64, 128, 256, 512, 1024, 4096, 16384, 65536],
        )

        # Inbound traffic
        self.messages_received_total = Counter(
            "sparkplug_messages_received_total",
            "Total inbound messages by topic message type",
            ["message_type"],
        )

        self.commands_total = Counter(
            "sparkplug_commands_total", "Total command metrics dispatched", ["scope"]
        )

        self.inbound_dropped_total = Counter(
            "sparkplug_inbound_dropped_total", "Inbound messages dropped", ["reason"]
        )

        # Session state
        self.session_number = Gauge("sparkplug_session_number", "Current session number (bdSeq)")

        self.sequence_number = Gauge(
            "sparkplug_sequence_number", "Sequence number the next data message will carry"
        )

        self.births_total = Counter(
            "sparkplug_births_total", "Total births published", ["scope"]
        )

        self.devices_online = Gauge("sparkplug_devices_online", "Devices currently birthed")

        # Application health
        self.connection_status = Gauge(
            "sparkplug_connection_status", "Broker connection status (1=connected, 0=disconnected)"
        )

        self.errors_total = Counter(
            "sparkplug_errors_total", "Total errors encountered", ["component", "error_type"]
        )

    def record_published(self, message_type: str, size: int = None) -> None:
        """Record a successful publish."""
        self.messages_published_total.labels(message_type=message_type).inc()
        if size is not None:
            self.payload_size_bytes.observe(size)

    def record_publish_failure(self, message_type: str) -> None:
        """Record a failed publish."""
        self.publish_failures_total.labels(message_type=message_type).inc()

    def record_dropped_metrics(self, scope: str, count: int) -> None:
        """Record undeclared metrics dropped from an outbound message."""
        if count > 0:
            self.metrics_dropped_total.labels(scope=scope).inc(count)

    def record_received(self, message_type: str) -> None:
        """Record an inbound message."""
        self.messages_received_total.labels(message_type=message_type or "unknown").inc()

    def record_command(self, scope: str) -> None:
        """Record a dispatched command metric."""
        self.commands_total.labels(scope=scope).inc()

    def record_inbound_dropped(self, reason: str) -> None:
        """Record a dropped inbound message."""
        self.inbound_dropped_total.labels(reason=reason).inc()

    def record_birth(self, scope: str) -> None:
        """Record a birth."""
        self.births_total.labels(scope=scope).inc()

    def update_session(self, session_number: int = None, sequence_number: int = None) -> None:
        """Update session gauges."""
        if session_number is not None:
            self.session_number.set(session_number)
        if sequence_number is not None:
            self.sequence_number.set(sequence_number)

    def set_devices_online(self, count: int) -> None:
        """Set number of birthed devices."""
        self.devices_online.set(count)

    def set_connection_status(self, connected: bool) -> None:
        """Set connection status."""
        self.connection_status.set(1 if connected else 0)

    def record_error(self, component: str, error_type: str) -> None:
        """Record an error."""
        self.errors_total.labels(component=component, error_type=error_type).inc()


# Global metrics collector instance
_metrics: MetricsCollector = None


def get_metrics() -> MetricsCollector:
    """Get or create global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
