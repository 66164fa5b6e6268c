"""Unit tests for the command dispatcher."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sparkplug_node.node.events import CommandDispatcher
from sparkplug_node.sparkplug.models import CommandEvent, DataType, Metric, Scope


def node_event(name="Reset"):
    return CommandEvent(
        scope=Scope.NODE,
        metric=Metric(name, DataType.BOOLEAN, True),
        topic="spBv1.0/G1/NCMD/N1",
    )


def device_event(name="Setpoint"):
    return CommandEvent(
        scope=Scope.DEVICE,
        metric=Metric(name, DataType.DOUBLE, 1.0),
        topic="spBv1.0/G1/DCMD/N1/D1",
        device_id="D1",
    )


@pytest.mark.asyncio
class TestCommandDispatcher:
    """Test command subscriptions."""

    async def test_no_subscribers(self):
        dispatcher = CommandDispatcher()
        await dispatcher.publish(node_event())
        assert dispatcher.delivered_count == 0

    async def test_sync_and_async_subscribers(self):
        dispatcher = CommandDispatcher()
        sync_callback = MagicMock(return_value=None)
        async_callback = AsyncMock()
        dispatcher.subscribe_node_commands(sync_callback)
        dispatcher.subscribe_node_commands(async_callback)

        event = node_event()
        await dispatcher.publish(event)

        sync_callback.assert_called_once_with(event)
        async_callback.assert_awaited_once_with(event)
        assert dispatcher.delivered_count == 2

    async def test_scopes_are_separate(self):
        dispatcher = CommandDispatcher()
        node_callback = MagicMock(return_value=None)
        device_callback = MagicMock(return_value=None)
        dispatcher.subscribe_node_commands(node_callback)
        dispatcher.subscribe_device_commands(device_callback)

        await dispatcher.publish(device_event())

        node_callback.assert_not_called()
        device_callback.assert_called_once()
        assert dispatcher.subscriber_count(Scope.NODE) == 1
        assert dispatcher.subscriber_count(Scope.DEVICE) == 1

    async def test_registration_order(self):
        dispatcher = CommandDispatcher()
        order = []
        dispatcher.subscribe_node_commands(lambda e: order.append("first"))
        dispatcher.subscribe_node_commands(lambda e: order.append("second"))

        await dispatcher.publish(node_event())
        assert order == ["first", "second"]

    async def test_unsubscribe(self):
        dispatcher = CommandDispatcher()
        callback = MagicMock(return_value=None)
        unsubscribe = dispatcher.subscribe_device_commands(callback)
        unsubscribe()
        unsubscribe()

        await dispatcher.publish(device_event())
        callback.assert_not_called()
        assert dispatcher.subscriber_count(Scope.DEVICE) == 0

    async def test_failing_subscriber_does_not_block_others(self):
        dispatcher = CommandDispatcher()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        dispatcher.subscribe_node_commands(failing)
        dispatcher.subscribe_node_commands(healthy)

        await dispatcher.publish(node_event())

        healthy.assert_awaited_once()
        assert dispatcher.failed_count == 1
        assert dispatcher.delivered_count == 1
