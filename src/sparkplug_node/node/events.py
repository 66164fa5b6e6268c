"""Command event subscriptions."""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Union

from ..sparkplug.models import CommandEvent, Scope

logger = logging.getLogger(__name__)

CommandCallback = Callable[[CommandEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class CommandDispatcher:
    """
    Delivers inbound command events to registered subscribers.

    Node and device commands have separate subscriber lists. Subscribers may
    be plain functions or coroutine functions and are called in registration
    order. With no subscribers, delivery is a no-op.
    """

    def __init__(self):
        """Initialize with no subscribers."""
        self._subscribers: dict[Scope, List[CommandCallback]] = {
            Scope.NODE: [],
            Scope.DEVICE: [],
        }
        self.delivered_count = 0
        self.failed_count = 0

    def subscribe(self, scope: Scope, callback: CommandCallback) -> Unsubscribe:
        """
        Register a subscriber for one scope.

        Args:
            scope: Node or device commands
            callback: Called with each CommandEvent

        Returns:
            Function that removes the subscription
        """
        subscribers = self._subscribers[scope]
        subscribers.append(callback)
        logger.debug(f"Added {scope.value} command subscriber: {_name(callback)}")

        def unsubscribe() -> None:
            if callback in subscribers:
                subscribers.remove(callback)

        return unsubscribe

    def subscribe_node_commands(self, callback: CommandCallback) -> Unsubscribe:
        return self.subscribe(Scope.NODE, callback)

    def subscribe_device_commands(self, callback: CommandCallback) -> Unsubscribe:
        return self.subscribe(Scope.DEVICE, callback)

    def subscriber_count(self, scope: Scope) -> int:
        return len(self._subscribers[scope])

    async def publish(self, event: CommandEvent) -> None:
        """
        Deliver one event to every subscriber of its scope.

        A subscriber that raises is logged and skipped; the remaining
        subscribers still receive the event.
        """
        # Copy: a subscriber may unsubscribe during delivery
        for callback in list(self._subscribers[event.scope]):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
                self.delivered_count += 1
            except Exception as e:
                self.failed_count += 1
                logger.error(
                    f"Command subscriber {_name(callback)} failed for "
                    f"{event.metric.name!r}: {e}",
                    exc_info=True,
                )


def _name(callback: Any) -> str:
    return getattr(callback, "__name__", repr(callback))


__all__ = ["CommandCallback", "CommandDispatcher", "CommandEvent", "Unsubscribe"]
