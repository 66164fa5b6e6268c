"""Forwards inbound NCMD/DCMD metrics to HTTP webhooks."""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from jsonpath_ng import parse as jsonpath_parse

from ..sparkplug.models import CommandEvent, MessageType, Scope
from .models import CommandData, WebhookPayload

logger = logging.getLogger(__name__)

ROOT_JSONPATH = "$"


@dataclass
class WebhookRoute:
    """Destination and payload selector for one command scope."""

    url: Optional[str]
    expression: str
    jsonpath: Any

    @classmethod
    def compile(cls, url: Optional[str], expression: str) -> "WebhookRoute":
        """Compile expression; an invalid one selects the whole payload."""
        try:
            jsonpath = jsonpath_parse(expression)
        except Exception as e:
            logger.error(f"Invalid JSONPath '{expression}': {e}. Falling back to '{ROOT_JSONPATH}'")
            expression, jsonpath = ROOT_JSONPATH, jsonpath_parse(ROOT_JSONPATH)
        return cls(url=url, expression=expression, jsonpath=jsonpath)

    def select(self, payload: dict[str, Any]) -> Any:
        """
        Apply the JSONPath selector.

        Returns:
            The single matched value, a list for several matches, or the
            full payload when nothing matches
        """
        try:
            matches = self.jsonpath.find(payload)
        except Exception as e:
            logger.error(f"Error applying JSONPath '{self.expression}': {e}. Sending full payload")
            return payload

        if not matches:
            logger.warning(f"JSONPath '{self.expression}' matched nothing. Sending full payload")
            return payload
        if len(matches) == 1:
            return matches[0].value
        return [match.value for match in matches]


def request_kwargs(payload: Any) -> dict[str, Any]:
    """httpx keyword arguments for a selected payload."""
    if isinstance(payload, (dict, list)):
        return {"json": payload, "headers": {"Content-Type": "application/json"}}
    if isinstance(payload, str):
        return {"content": payload, "headers": {"Content-Type": "text/plain"}}
    return {"content": json.dumps(payload), "headers": {"Content-Type": "application/json"}}


class WebhookHandler:
    """
    Command subscriber that POSTs every node or device command to a URL.

    Delivery runs in a background task so the engine is never held up by a
    slow endpoint. Each delivery makes one attempt plus retry_count retries
    with 2s, 4s, 8s... backoff. Failures are logged, never raised into the
    engine.
    """

    def __init__(
        self,
        node_command_url: Optional[str] = None,
        device_command_url: Optional[str] = None,
        node_command_jsonpath: str = ROOT_JSONPATH,
        device_command_jsonpath: str = ROOT_JSONPATH,
        timeout: int = 5,
        retry_count: int = 3,
    ):
        """
        Initialize webhook handler with per-scope URLs.

        Args:
            node_command_url: URL receiving NCMD metrics
            device_command_url: URL receiving DCMD metrics
            node_command_jsonpath: Selector applied to NCMD payloads
            device_command_jsonpath: Selector applied to DCMD payloads
            timeout: HTTP request timeout in seconds
            retry_count: Retries after the first failed attempt
        """
        self.timeout = timeout
        self.retry_count = retry_count
        self.client = httpx.AsyncClient(timeout=timeout)
        self.routes = {
            Scope.NODE: WebhookRoute.compile(node_command_url, node_command_jsonpath),
            Scope.DEVICE: WebhookRoute.compile(device_command_url, device_command_jsonpath),
        }
        self._pending: set[asyncio.Task] = set()

        logger.info(
            f"WebhookHandler initialized: "
            f"node={node_command_url is not None} (jsonpath={node_command_jsonpath}), "
            f"device={device_command_url is not None} (jsonpath={device_command_jsonpath})"
        )

    @property
    def node_command_url(self) -> Optional[str]:
        return self.routes[Scope.NODE].url

    @property
    def device_command_url(self) -> Optional[str]:
        return self.routes[Scope.DEVICE].url

    @staticmethod
    def build_payload(event: CommandEvent) -> WebhookPayload:
        message_type = (
            MessageType.DEVICE_COMMAND if event.scope == Scope.DEVICE else MessageType.NODE_COMMAND
        )
        return WebhookPayload(
            event_type=message_type.value,
            timestamp=datetime.now(timezone.utc),
            data=CommandData.model_validate(event.to_dict()),
        )

    async def handle_command(self, event: CommandEvent) -> Optional[asyncio.Task]:
        """
        Command subscriber: forward one command metric to its scope's URL.

        Returns:
            The delivery task, or None when the scope has no URL
        """
        route = self.routes[event.scope]
        if not route.url:
            logger.debug(f"No webhook URL configured for {event.scope.value} commands")
            return None

        payload = self.build_payload(event).model_dump(mode="json")

        # Fire and forget; keep a reference so the task is not collected mid-flight
        task = asyncio.create_task(self._send_webhook(route.url, route.select(payload)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _send_webhook(self, url: str, payload: Any) -> bool:
        """POST with retries; returns whether any attempt succeeded."""
        kwargs = request_kwargs(payload)
        total_attempts = self.retry_count + 1

        for attempt in range(1, total_attempts + 1):
            try:
                response = await self.client.post(url, **kwargs)
                response.raise_for_status()
                logger.debug(f"Webhook delivered to {url} (status={response.status_code})")
                return True
            except httpx.HTTPStatusError as e:
                reason = f"HTTP {e.response.status_code}"
            except httpx.TimeoutException:
                reason = "timeout"
            except httpx.HTTPError as e:
                reason = f"{type(e).__name__}: {e}"

            logger.warning(f"Webhook to {url} failed (attempt {attempt}/{total_attempts}): {reason}")
            if attempt < total_attempts:
                await asyncio.sleep(2 ** attempt)

        logger.error(f"Webhook to {url} abandoned after {total_attempts} attempts")
        return False

    async def close(self) -> None:
        """Cancel undelivered webhooks and close the HTTP connection pool."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
        await self.client.aclose()
