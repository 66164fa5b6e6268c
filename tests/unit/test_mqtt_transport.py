"""Unit tests for the paho-mqtt transport (client mocked)."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from sparkplug_node.transport.interface import LastWill
from sparkplug_node.transport.mqtt import MqttTransport


async def drain():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def paho_client():
    """Patch paho's Client class and return the instance transports will build."""
    with patch("sparkplug_node.transport.mqtt.mqtt.Client") as client_cls:
        client = MagicMock()
        client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
        client_cls.return_value = client
        yield client


@pytest.mark.asyncio
class TestMqttTransportConnect:
    """Test connecting through paho."""

    async def test_connect_registers_will_and_starts_loop(self, paho_client):
        transport = MqttTransport(host="broker", port=1884, username="u", password="p")
        will = LastWill(topic="spBv1.0/G1/NDEATH/N1", payload=b"{}", qos=1)

        assert await transport.connect(will) is True

        paho_client.username_pw_set.assert_called_once_with("u", "p")
        paho_client.will_set.assert_called_once_with(
            "spBv1.0/G1/NDEATH/N1", b"{}", qos=1, retain=False
        )
        paho_client.connect_async.assert_called_once_with("broker", 1884, keepalive=60)
        paho_client.loop_start.assert_called_once()

    async def test_connect_failure(self, paho_client):
        paho_client.connect_async.side_effect = OSError("unreachable")
        transport = MqttTransport()
        assert await transport.connect() is False

    async def test_connected_callback_bridged_to_loop(self, paho_client):
        transport = MqttTransport()
        on_connected = AsyncMock()
        transport.set_handlers(on_connected=on_connected)
        await transport.connect()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))
        await drain()

        assert await transport.is_connected()
        on_connected.assert_awaited_once()

    async def test_refused_connection(self, paho_client):
        transport = MqttTransport()
        on_connected = AsyncMock()
        transport.set_handlers(on_connected=on_connected)
        await transport.connect()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=True))
        await drain()

        assert not await transport.is_connected()
        on_connected.assert_not_awaited()

    async def test_disconnect_callback_only_after_connect(self, paho_client):
        transport = MqttTransport()
        on_disconnected = AsyncMock()
        transport.set_handlers(on_disconnected=on_disconnected)
        await transport.connect()

        transport._handle_disconnect(paho_client, None, {}, MagicMock())
        await drain()
        on_disconnected.assert_not_awaited()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))
        transport._handle_disconnect(paho_client, None, {}, MagicMock())
        await drain()
        on_disconnected.assert_awaited_once()

    async def test_message_callback(self, paho_client):
        transport = MqttTransport()
        on_message = AsyncMock()
        transport.set_handlers(on_message=on_message)
        await transport.connect()

        message = MagicMock(topic="spBv1.0/G1/NCMD/N1", payload=b"{}")
        transport._handle_message(paho_client, None, message)
        await drain()

        on_message.assert_awaited_once_with("spBv1.0/G1/NCMD/N1", b"{}")

    async def test_set_last_will_reapplies(self, paho_client):
        transport = MqttTransport()
        await transport.connect()
        await transport.set_last_will(LastWill(topic="t", payload=b"1"))
        paho_client.will_set.assert_called_with("t", b"1", qos=1, retain=False)


@pytest.mark.asyncio
class TestMqttTransportPublish:
    """Test publishing and subscribing."""

    async def test_publish_when_disconnected(self, paho_client):
        transport = MqttTransport()
        result = await transport.publish("t", b"x")
        assert not result.success
        assert result.reason == "Not connected"
        paho_client.publish.assert_not_called()

    async def test_publish(self, paho_client):
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        transport = MqttTransport()
        await transport.connect()
        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))

        result = await transport.publish("t", b"x", qos=1)
        assert result.success
        paho_client.publish.assert_called_once_with("t", b"x", qos=1, retain=False)

    async def test_publish_error_code(self, paho_client):
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)
        transport = MqttTransport()
        await transport.connect()
        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))

        result = await transport.publish("t", b"x")
        assert not result.success
        assert result.reason

    async def test_subscribe(self, paho_client):
        transport = MqttTransport()
        await transport.connect()
        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))

        result = await transport.subscribe("spBv1.0/G1/DCMD/N1/#", qos=1)
        assert result.success
        paho_client.subscribe.assert_called_once_with("spBv1.0/G1/DCMD/N1/#", qos=1)

    async def test_disconnect_stops_loop(self, paho_client):
        transport = MqttTransport()
        await transport.connect()
        await transport.disconnect()
        paho_client.disconnect.assert_called_once()
        paho_client.loop_stop.assert_called_once()
        assert not await transport.is_connected()


@pytest.mark.asyncio
class TestMqttTransportCallbackTasks:
    """Test tracking of handler tasks started from paho callbacks."""

    async def test_handler_task_tracked_until_done(self, paho_client):
        transport = MqttTransport()
        release = asyncio.Event()

        async def on_message(topic, payload):
            await release.wait()

        transport.set_handlers(on_message=on_message)
        await transport.connect()

        transport._handle_message(paho_client, None, MagicMock(topic="t", payload=b"x"))
        await drain()
        assert len(transport._tasks) == 1

        release.set()
        await drain()
        assert transport._tasks == set()

    async def test_handler_exception_logged(self, paho_client, caplog):
        transport = MqttTransport()
        transport.set_handlers(on_connected=AsyncMock(side_effect=RuntimeError("birth failed")))
        await transport.connect()

        with caplog.at_level(logging.ERROR, logger="sparkplug_node.transport.mqtt"):
            transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False))
            await drain()

        assert "birth failed" in caplog.text
        assert transport._tasks == set()

    async def test_disconnect_cancels_running_handlers(self, paho_client):
        transport = MqttTransport()
        started = asyncio.Event()

        async def on_message(topic, payload):
            started.set()
            await asyncio.Event().wait()

        transport.set_handlers(on_message=on_message)
        await transport.connect()
        transport._handle_message(paho_client, None, MagicMock(topic="t", payload=b"x"))
        await asyncio.wait_for(started.wait(), timeout=1)

        (task,) = transport._tasks
        await transport.disconnect()
        await drain()

        assert task.cancelled()
        assert transport._tasks == set()
