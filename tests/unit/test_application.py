"""Unit tests for the application controller."""

from unittest.mock import AsyncMock, patch

import pytest

from sparkplug_node.__main__ import Application
from sparkplug_node.api import dependencies
from sparkplug_node.config import Config
from sparkplug_node.node.engine import NodeState
from sparkplug_node.sparkplug.models import Scope
from sparkplug_node.transport import MockTransport, MqttTransport


@pytest.mark.asyncio
class TestApplication:
    """Test application startup and shutdown."""

    async def test_start_and_stop_with_mock_transport(self, test_config):
        app = Application(test_config)
        with patch.object(Application, "_run_api_server", new_callable=AsyncMock):
            await app.start()

            assert app.running
            assert isinstance(app.transport, MockTransport)
            assert app.engine.state == NodeState.ONLINE
            assert dependencies.get_engine() is app.engine

            await app.stop()

        assert app.engine.state == NodeState.SHUT_DOWN
        assert app.transport.topics()[-1] == "spBv1.0/G1/NDEATH/N1"
        dependencies.set_engine_instance(None)
        dependencies.set_config_instance(None)

    async def test_stop_is_idempotent(self, test_config):
        app = Application(test_config)
        with patch.object(Application, "_run_api_server", new_callable=AsyncMock):
            await app.start()
            await app.stop()
            await app.stop()
        assert app.transport.topics().count("spBv1.0/G1/NDEATH/N1") == 1
        dependencies.set_engine_instance(None)
        dependencies.set_config_instance(None)

    async def test_missing_identity_exits(self):
        app = Application(Config(use_mock=True, metrics_enabled=False))
        with pytest.raises(SystemExit):
            await app.start()

    async def test_invalid_known_metrics_exits(self, test_config):
        test_config.known_metrics = "Temp:complex"
        app = Application(test_config)
        with pytest.raises(SystemExit):
            await app.start()

    async def test_webhook_subscribers_registered(self, test_config):
        test_config.webhook_device_command = "https://example.com/dcmd"
        app = Application(test_config)
        with patch.object(Application, "_run_api_server", new_callable=AsyncMock):
            await app.start()
            assert app.webhook_handler is not None
            # log subscriber plus webhook subscriber per scope
            assert app.dispatcher.subscriber_count(Scope.DEVICE) == 2
            await app.stop()
        dependencies.set_engine_instance(None)
        dependencies.set_config_instance(None)


class TestBuildTransport:
    """Test transport selection."""

    def test_mqtt_transport(self, test_config):
        test_config.use_mock = False
        test_config.broker_host = "broker.local"
        transport = Application(test_config)._build_transport()
        assert isinstance(transport, MqttTransport)
        assert transport.host == "broker.local"
        assert transport.client_id == "G1-N1"
