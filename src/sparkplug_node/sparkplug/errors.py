"""Error taxonomy for the Sparkplug node engine."""


class SparkplugError(Exception):
    """Base class for all node engine errors."""

    pass


class ConfigurationMissing(SparkplugError):
    """Raised when required identity (group id, edge node id, device id) is unset."""

    pass


class InvalidMetricType(SparkplugError):
    """Raised when a metric value does not match any supported value kind."""

    pass


class PayloadTypeMismatch(SparkplugError):
    """Raised when a decoded payload is not the metric-bearing shape its topic implies."""

    pass


class TransportFailure(SparkplugError):
    """Raised when the transport cannot publish or subscribe."""

    pass


class NodeNotOnline(SparkplugError):
    """Raised when a publish is attempted while the node has no live session."""

    pass


class UnknownDevice(SparkplugError):
    """Raised when publishing for a device that has not been birthed."""

    pass
