"""Unit tests for topic classification and command routing."""

import pytest

from sparkplug_node.sparkplug.errors import PayloadTypeMismatch
from sparkplug_node.sparkplug.models import DataType, DecodedPayload, MessageType, Metric, Scope
from sparkplug_node.sparkplug.topics import (
    TopicRouter,
    build_topic,
    classify,
    command_subscriptions,
)


class TestBuildTopic:
    """Test topic rendering."""

    def test_node_topic(self):
        assert build_topic("G1", MessageType.NODE_BIRTH, "N1") == "spBv1.0/G1/NBIRTH/N1"

    def test_device_topic(self):
        assert (
            build_topic("G1", MessageType.DEVICE_DATA, "N1", "D1")
            == "spBv1.0/G1/DDATA/N1/D1"
        )

    def test_command_subscriptions(self):
        assert command_subscriptions("G1", "N1") == [
            "spBv1.0/G1/NCMD/N1",
            "spBv1.0/G1/DCMD/N1/#",
        ]


class TestClassify:
    """Test topic classification."""

    def test_device_command(self):
        result = classify("spBv1.0/G1/DCMD/N1/D1")
        assert result.scope == Scope.DEVICE
        assert result.message_type == MessageType.DEVICE_COMMAND
        assert result.is_command
        assert result.group_id == "G1"
        assert result.edge_node_id == "N1"
        assert result.device_id == "D1"

    def test_node_command(self):
        result = classify("spBv1.0/G1/NCMD/N1")
        assert result.scope == Scope.NODE
        assert result.message_type == MessageType.NODE_COMMAND
        assert result.device_id is None

    def test_data_is_not_a_command(self):
        result = classify("spBv1.0/G1/DDATA/N1/D1")
        assert result.message_type == MessageType.DEVICE_DATA
        assert not result.is_command

    def test_substring_fallback(self):
        result = classify("custom/prefix-DCMD-suffix")
        assert result.message_type == MessageType.DEVICE_COMMAND
        assert result.group_id is None

    def test_unclassifiable(self):
        assert classify("some/other/topic") is None


@pytest.mark.asyncio
class TestTopicRouter:
    """Test dispatching decoded payloads."""

    async def test_device_command_dispatched_in_order(self):
        delivered = []

        async def deliver(event):
            delivered.append(event)

        router = TopicRouter(deliver)
        payload = DecodedPayload(
            metrics=[
                Metric("First", DataType.INT32, 1),
                Metric("Second", DataType.INT32, 2),
            ]
        )
        count = await router.dispatch("spBv1.0/G1/DCMD/N1/D1", payload)

        assert count == 2
        assert [e.metric.name for e in delivered] == ["First", "Second"]
        assert all(e.scope == Scope.DEVICE for e in delivered)
        assert all(e.device_id == "D1" for e in delivered)

    async def test_node_command(self):
        delivered = []

        async def deliver(event):
            delivered.append(event)

        router = TopicRouter(deliver, group_id="G1", edge_node_id="N1")
        payload = DecodedPayload(metrics=[Metric("Node Control/Rebirth", DataType.BOOLEAN, True)])
        assert await router.dispatch("spBv1.0/G1/NCMD/N1", payload) == 1
        assert delivered[0].scope == Scope.NODE
        assert delivered[0].device_id is None

    async def test_non_command_ignored(self):
        delivered = []

        async def deliver(event):
            delivered.append(event)

        router = TopicRouter(deliver)
        payload = DecodedPayload(metrics=[Metric("Temp", DataType.DOUBLE, 1.0)])
        assert await router.dispatch("spBv1.0/G1/NDATA/N2", payload) == 0
        assert await router.dispatch("unrelated/topic", payload) == 0
        assert delivered == []

    async def test_command_for_other_node_ignored(self):
        delivered = []

        async def deliver(event):
            delivered.append(event)

        router = TopicRouter(deliver, group_id="G1", edge_node_id="N1")
        payload = DecodedPayload(metrics=[Metric("Temp", DataType.DOUBLE, 1.0)])
        assert await router.dispatch("spBv1.0/G1/NCMD/N2", payload) == 0
        assert await router.dispatch("spBv1.0/G2/NCMD/N1", payload) == 0
        assert delivered == []

    async def test_device_command_without_device_dropped(self):
        delivered = []

        async def deliver(event):
            delivered.append(event)

        router = TopicRouter(deliver, group_id="G1", edge_node_id="N1")
        payload = DecodedPayload(metrics=[Metric("Setpoint", DataType.DOUBLE, 1.0)])
        assert await router.dispatch("spBv1.0/G1/DCMD/N1", payload) == 0
        assert await router.dispatch("spBv1.0/G1/DCMD/N1/", payload) == 0
        assert delivered == []

    async def test_payload_mismatch(self):
        async def deliver(event):
            pass

        router = TopicRouter(deliver)
        with pytest.raises(PayloadTypeMismatch):
            await router.dispatch("spBv1.0/G1/NCMD/N1", {"metrics": []})

        with pytest.raises(PayloadTypeMismatch):
            await router.dispatch(
                "spBv1.0/G1/NCMD/N1", DecodedPayload(metrics=[{"name": "Temp"}])
            )

    async def test_empty_command(self):
        async def deliver(event):
            raise AssertionError("no events expected")

        router = TopicRouter(deliver)
        assert await router.dispatch("spBv1.0/G1/NCMD/N1", DecodedPayload()) == 0
