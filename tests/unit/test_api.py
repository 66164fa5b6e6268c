"""Unit tests for the REST API."""

import pytest

from sparkplug_node.api.schemas import MetricValueRequest, PublishMetricsRequest
from sparkplug_node.node.engine import NodeState
from sparkplug_node.sparkplug.errors import InvalidMetricType
from sparkplug_node.sparkplug.known_metrics import KnownMetricSet
from sparkplug_node.sparkplug.models import DataType


class TestMetricValueRequest:
    """Test conversion of request bodies to metrics."""

    def test_explicit_datatype(self):
        metric = MetricValueRequest(name="Count", value=3, datatype="UInt16").to_metric()
        assert metric.datatype == DataType.UINT16

    def test_declared_datatype(self):
        known = KnownMetricSet.parse("Temp:double")
        metric = MetricValueRequest(name="Temp", value=21).to_metric(known)
        assert metric.datatype == DataType.DOUBLE
        assert metric.value == 21.0

    def test_inferred_datatype(self):
        assert MetricValueRequest(name="Flag", value=True).to_metric().datatype == DataType.BOOLEAN

    def test_null_without_datatype(self):
        with pytest.raises(InvalidMetricType):
            MetricValueRequest(name="Unknown").to_metric()

    def test_null_with_declared_datatype(self):
        known = KnownMetricSet.parse("Temp:double")
        assert MetricValueRequest(name="Temp").to_metric(known).is_null

    def test_value_mismatch(self):
        with pytest.raises(InvalidMetricType):
            MetricValueRequest(name="Flag", value="yes", datatype="boolean").to_metric()

    def test_publish_request(self):
        request = PublishMetricsRequest(metrics=[{"name": "a", "value": 1}, {"name": "b", "value": "x"}])
        assert [m.name for m in request.to_metrics()] == ["a", "b"]


class TestHealthEndpoint:
    """Test the health endpoint."""

    def test_health(self, test_app):
        response = test_app.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["transport_connected"] is True
        assert data["node_state"] == "online"


class TestNodeEndpoints:
    """Test node status and publishing."""

    def test_get_node(self, test_app):
        response = test_app.get("/api/v1/node")
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "online"
        assert data["group_id"] == "G1"
        assert data["edge_node_id"] == "N1"
        assert data["session_number"] == 0
        assert data["sequence_number"] == 0
        assert [m["name"] for m in data["known_metrics"]] == ["Temp", "Running"]

    def test_publish_data(self, test_app, api_engine):
        response = test_app.post(
            "/api/v1/node/data",
            json={"metrics": [{"name": "Temp", "value": 21.5}, {"name": "Extra", "value": 1}]},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["session_number"] == 0
        assert data["sequence_number"] == 1

        published = api_engine.transport.published[-1]
        assert published.topic == "spBv1.0/G1/NDATA/N1"
        assert b"Extra" not in published.payload

    def test_publish_invalid_value(self, test_app):
        response = test_app.post(
            "/api/v1/node/data", json={"metrics": [{"name": "Running", "value": "yes"}]}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidMetricType"

    def test_publish_validation_error(self, test_app):
        response = test_app.post("/api/v1/node/data", json={"metrics": [{"value": 1}]})
        assert response.status_code == 422

    def test_publish_when_offline(self, test_app, api_engine):
        api_engine.state = NodeState.DISCONNECTED
        response = test_app.post(
            "/api/v1/node/data", json={"metrics": [{"name": "Temp", "value": 1.0}]}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "NodeNotOnline"

    def test_publish_transport_failure(self, test_app, api_engine):
        api_engine.transport.fail_publishes("broker down")
        response = test_app.post(
            "/api/v1/node/data", json={"metrics": [{"name": "Temp", "value": 1.0}]}
        )
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["reason"] == "broker down"

    def test_rebirth(self, test_app, api_engine):
        test_app.post("/api/v1/node/data", json={"metrics": [{"name": "Temp", "value": 1.0}]})
        response = test_app.post("/api/v1/node/rebirth")
        assert response.status_code == 200
        assert response.json()["sequence_number"] == 0
        assert api_engine.transport.published[-1].topic == "spBv1.0/G1/NBIRTH/N1"

    def test_read_only_mode(self, test_app, test_config):
        test_config.enable_write = False
        response = test_app.post("/api/v1/node/rebirth")
        assert response.status_code == 403


class TestDeviceEndpoints:
    """Test device endpoints."""

    def test_device_lifecycle(self, test_app):
        birth = test_app.post(
            "/api/v1/devices/D1/birth",
            json={"metrics": [{"name": "Speed", "value": 10, "datatype": "Int32"}]},
        )
        assert birth.status_code == 200

        listing = test_app.get("/api/v1/devices").json()
        assert listing["total"] == 1
        assert listing["devices"][0]["device_id"] == "D1"

        data = test_app.post(
            "/api/v1/devices/D1/data", json={"metrics": [{"name": "Speed", "value": 12}]}
        )
        assert data.status_code == 200

        device = test_app.get("/api/v1/devices/D1").json()
        assert device["metrics"][0]["value"] == 12
        assert device["metrics"][0]["datatype"] == "INT32"

        death = test_app.post("/api/v1/devices/D1/death")
        assert death.status_code == 200
        assert test_app.get("/api/v1/devices").json()["total"] == 0

    def test_unknown_device(self, test_app):
        assert test_app.get("/api/v1/devices/D9").status_code == 404
        response = test_app.post(
            "/api/v1/devices/D9/data", json={"metrics": [{"name": "Speed", "value": 1}]}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "UnknownDevice"
        assert test_app.post("/api/v1/devices/D9/death").status_code == 404


class TestAuthentication:
    """Test bearer token authentication."""

    def test_missing_token(self, test_app_with_auth):
        response = test_app_with_auth.get("/api/v1/node")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, test_app_with_auth):
        response = test_app_with_auth.get(
            "/api/v1/node", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    def test_malformed_header(self, test_app_with_auth):
        response = test_app_with_auth.get(
            "/api/v1/node", headers={"Authorization": "Token test-token-12345"}
        )
        assert response.status_code == 401

    def test_valid_token(self, test_app_with_auth):
        response = test_app_with_auth.get(
            "/api/v1/node", headers={"Authorization": "Bearer test-token-12345"}
        )
        assert response.status_code == 200

    def test_docs_public(self, test_app_with_auth):
        assert test_app_with_auth.get("/openapi.json").status_code == 200
