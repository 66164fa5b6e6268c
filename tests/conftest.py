"""Shared pytest fixtures for Sparkplug edge node tests."""

import asyncio
import json
from typing import AsyncGenerator, Generator
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from sparkplug_node.api.app import create_app
from sparkplug_node.api.dependencies import set_config_instance, set_engine_instance
from sparkplug_node.config import Config
from sparkplug_node.node.engine import NodeEngine
from sparkplug_node.node.events import CommandDispatcher
from sparkplug_node.sparkplug.codec import JsonPayloadCodec
from sparkplug_node.sparkplug.counters import SequenceCounter, SessionState
from sparkplug_node.sparkplug.factory import MessageFactory
from sparkplug_node.sparkplug.known_metrics import KnownMetricSet
from sparkplug_node.sparkplug.models import DataType, Metric
from sparkplug_node.transport.mock import MockTransport

GROUP_ID = "G1"
EDGE_NODE_ID = "N1"


@pytest.fixture(scope="function")
def test_config() -> Config:
    """Create a test configuration."""
    return Config(
        use_mock=True,
        group_id=GROUP_ID,
        edge_node_id=EDGE_NODE_ID,
        known_metrics="Temp:double,Running:boolean",
        api_host="127.0.0.1",
        api_port=8000,
        api_bearer_token=None,  # No auth by default
        log_level="WARNING",  # Quiet logs in tests
        log_format="text",
        metrics_enabled=False,
    )


@pytest.fixture(scope="function")
def known_metrics() -> KnownMetricSet:
    """Node metric declarations used across tests."""
    return KnownMetricSet(
        [
            Metric(name="Temp", datatype=DataType.DOUBLE),
            Metric(name="Running", datatype=DataType.BOOLEAN),
        ]
    )


@pytest.fixture(scope="function")
def factory() -> MessageFactory:
    """Create a message factory for the test node."""
    return MessageFactory(group_id=GROUP_ID, edge_node_id=EDGE_NODE_ID)


@pytest.fixture(scope="function")
def sequence() -> SequenceCounter:
    return SequenceCounter()


@pytest.fixture(scope="function")
def session() -> SessionState:
    """Session state after the first connect (session 0)."""
    state = SessionState()
    state.begin_new_session()
    return state


@pytest.fixture(scope="function")
def codec() -> JsonPayloadCodec:
    return JsonPayloadCodec()


@pytest.fixture(scope="function")
def mock_transport() -> MockTransport:
    """Create an in-memory transport."""
    return MockTransport()


@pytest.fixture(scope="function")
def dispatcher() -> CommandDispatcher:
    return CommandDispatcher()


@pytest.fixture(scope="function")
def engine(
    mock_transport: MockTransport,
    known_metrics: KnownMetricSet,
    dispatcher: CommandDispatcher,
) -> NodeEngine:
    """Create a node engine that has not been started."""
    return NodeEngine(
        transport=mock_transport,
        group_id=GROUP_ID,
        edge_node_id=EDGE_NODE_ID,
        known_metrics=known_metrics,
        dispatcher=dispatcher,
    )


@pytest_asyncio.fixture
async def online_engine(engine: NodeEngine) -> AsyncGenerator[NodeEngine, None]:
    """Create a node engine that is connected and has published its birth."""
    await engine.start()
    yield engine
    await engine.stop()


@pytest.fixture(scope="function")
def decode_published():
    """Decode a message recorded by the mock transport into its JSON body."""

    def _decode(message) -> dict:
        return json.loads(message.payload)

    return _decode


@pytest.fixture(scope="function")
def api_engine(test_config: Config) -> Generator[NodeEngine, None, None]:
    """Create an online engine registered with the API dependencies."""
    engine = NodeEngine(
        transport=MockTransport(),
        group_id=test_config.group_id,
        edge_node_id=test_config.edge_node_id,
        known_metrics=test_config.known_metric_set(),
    )
    asyncio.run(engine.start())
    set_engine_instance(engine)
    set_config_instance(test_config)
    yield engine
    set_engine_instance(None)
    set_config_instance(None)


@pytest.fixture(scope="function")
def test_app(api_engine: NodeEngine) -> TestClient:
    """Create a FastAPI test client backed by an online engine."""
    app = create_app(enable_metrics=False)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture(scope="function")
def test_app_with_auth(api_engine: NodeEngine) -> TestClient:
    """Create a FastAPI test client with authentication."""
    app = create_app(enable_metrics=False, bearer_token="test-token-12345")
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture(scope="function")
def mock_httpx_client() -> AsyncMock:
    """Create a mock httpx.AsyncClient for testing webhooks."""
    mock_client = AsyncMock()
    mock_response = Mock()
    mock_response.status_code = 200
    mock_response.text = "OK"
    mock_client.post.return_value = mock_response
    return mock_client
