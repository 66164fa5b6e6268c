"""Prometheus instrumentation for the edge node."""

from .metrics import MetricsCollector, get_metrics

__all__ = ["MetricsCollector", "get_metrics"]
