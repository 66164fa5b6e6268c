"""Webhook module for sending HTTP notifications on inbound commands."""

from .handler import WebhookHandler
from .models import CommandData, CommandMetricData, WebhookPayload

__all__ = [
    "WebhookHandler",
    "WebhookPayload",
    "CommandData",
    "CommandMetricData",
]
