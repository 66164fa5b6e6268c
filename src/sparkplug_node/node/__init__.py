"""Edge node lifecycle engine and command subscriptions."""

from .engine import DeviceRecord, NodeEngine, NodeState
from .events import CommandDispatcher, CommandEvent

__all__ = [
    "CommandDispatcher",
    "CommandEvent",
    "DeviceRecord",
    "NodeEngine",
    "NodeState",
]
