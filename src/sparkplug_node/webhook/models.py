"""Pydantic models for webhook payload structures."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class CommandMetricData(BaseModel):
    """A command metric as forwarded to webhooks."""

    name: str
    datatype: str
    value: Any = None
    timestamp: Optional[int] = None
    alias: Optional[int] = None


class CommandData(BaseModel):
    """Command event data structure matching CommandEvent.to_dict()."""

    scope: str
    topic: str
    device_id: Optional[str] = None
    metric: CommandMetricData


class WebhookPayload(BaseModel):
    """Webhook payload structure sent to external URLs (JSONPath '$')."""

    event_type: str
    timestamp: datetime
    data: CommandData
