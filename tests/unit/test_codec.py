"""Unit tests for the JSON payload codec."""

import json

import pytest

from sparkplug_node.sparkplug.errors import InvalidMetricType, PayloadTypeMismatch
from sparkplug_node.sparkplug.models import DataType, Envelope, MessageType, Metric


def envelope(*metrics, seq=None):
    return Envelope(
        MessageType.NODE_DATA,
        group_id="G1",
        edge_node_id="N1",
        metrics=tuple(metrics),
        sequence_number=seq,
        timestamp=1700000000000,
    )


class TestEncode:
    """Test payload encoding."""

    def test_layout(self, codec):
        body = json.loads(codec.encode(envelope(Metric("Temp", DataType.DOUBLE, 21.5), seq=3)))
        assert body["seq"] == 3
        assert body["timestamp"] == 1700000000000
        assert body["metrics"] == [
            {
                "name": "Temp",
                "timestamp": None,
                "datatype": int(DataType.DOUBLE),
                "value": 21.5,
                "is_null": False,
            }
        ]

    def test_no_seq_for_deaths(self, codec):
        body = json.loads(codec.encode(envelope()))
        assert "seq" not in body

    def test_bytes_base64(self, codec):
        body = json.loads(codec.encode(envelope(Metric("Raw", DataType.BYTES, b"\x01\x02"))))
        assert body["metrics"][0]["value"] == "AQI="

    def test_alias_included_when_set(self, codec):
        body = json.loads(codec.encode(envelope(Metric("Temp", DataType.DOUBLE, 1.0, alias=4))))
        assert body["metrics"][0]["alias"] == 4

    def test_content_type(self, codec):
        assert codec.content_type == "application/json"


class TestDecode:
    """Test payload decoding."""

    def test_decode_encoded(self, codec):
        original = envelope(
            Metric("Temp", DataType.DOUBLE, 21.5),
            Metric("Raw", DataType.BYTES, b"\xff"),
            Metric("Label", DataType.STRING),
            seq=9,
        )
        decoded = codec.decode(codec.encode(original))
        assert decoded.sequence_number == 9
        assert decoded.timestamp == 1700000000000
        assert [m.name for m in decoded.metrics] == ["Temp", "Raw", "Label"]
        assert decoded.metrics[1].value == b"\xff"
        assert decoded.metrics[2].is_null

    def test_datatype_by_name(self, codec):
        data = b'{"metrics": [{"name": "Running", "datatype": "Boolean", "value": true}]}'
        metric = codec.decode(data).metrics[0]
        assert metric.datatype == DataType.BOOLEAN
        assert metric.value is True

    def test_int_value_for_double(self, codec):
        data = b'{"metrics": [{"name": "Temp", "datatype": 10, "value": 21}]}'
        metric = codec.decode(data).metrics[0]
        assert metric.value == 21.0
        assert isinstance(metric.value, float)

    def test_is_null_overrides_value(self, codec):
        data = b'{"metrics": [{"name": "Temp", "datatype": 10, "value": 1.0, "is_null": true}]}'
        assert codec.decode(data).metrics[0].value is None

    @pytest.mark.parametrize(
        "data",
        [
            b"not json",
            b"[1, 2, 3]",
            b'{"metrics": {"name": "Temp"}}',
            b'{"metrics": [], "seq": "3"}',
            b'{"metrics": [{"datatype": 10, "value": 1.0}]}',
            b'{"metrics": ["Temp"]}',
        ],
    )
    def test_payload_mismatch(self, codec, data):
        with pytest.raises(PayloadTypeMismatch):
            codec.decode(data)

    @pytest.mark.parametrize(
        "data",
        [
            b'{"metrics": [{"name": "Temp", "datatype": 99, "value": 1}]}',
            b'{"metrics": [{"name": "Temp", "datatype": "decimal", "value": 1}]}',
            b'{"metrics": [{"name": "Temp", "value": 1}]}',
            b'{"metrics": [{"name": "Temp", "datatype": 11, "value": "yes"}]}',
            b'{"metrics": [{"name": "Raw", "datatype": 17, "value": "!!notbase64"}]}',
        ],
    )
    def test_invalid_metric_type(self, codec, data):
        with pytest.raises(InvalidMetricType):
            codec.decode(data)
