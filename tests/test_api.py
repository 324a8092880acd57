"""
Tests for the FastAPI REST API module.

Tests cover:
- Health and Prometheus endpoints
- Metrics and status endpoints
- Node registration, lookup and deactivation
- Training rounds and round history
- Simulation controls
- Error handlers
"""

import pytest
from fastapi.testclient import TestClient

from edufed.api.main import HealthResponse, MetricsResponse, NodeRequest, create_app
from edufed.federated import FedAvgAggregator, FederatedCoordinator

# =============================================================================
# Fixtures
# =============================================================================


class BrokenAggregator(FedAvgAggregator):
    def aggregate(self, global_weights, reports):
        raise RuntimeError("aggregation exploded")


@pytest.fixture
def api_coordinator(small_config):
    """Coordinator served by the test app."""
    return FederatedCoordinator(config=small_config)


@pytest.fixture
def client(api_coordinator):
    """Create a test client for the FastAPI app."""
    with TestClient(create_app(coordinator=api_coordinator)) as client:
        yield client


# =============================================================================
# Pydantic Model Tests
# =============================================================================


class TestModels:
    """Test request and response models."""

    def test_health_response(self):
        response = HealthResponse(status="healthy", version="1.0.0", timestamp="now")

        assert response.status == "healthy"

    def test_node_request_validation(self):
        with pytest.raises(ValueError):
            NodeRequest(node_id="")
        with pytest.raises(ValueError):
            NodeRequest(node_id="a", data_weight=0)

    def test_metrics_response_from_metrics(self, api_coordinator):
        response = MetricsResponse.from_metrics(api_coordinator.get_current_metrics())

        assert response.round == 0
        assert response.participating_nodes == 0


# =============================================================================
# Endpoint Tests
# =============================================================================


class TestHealthEndpoints:
    """Test health and metrics endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    def test_prometheus_metrics(self, client):
        client.post("/api/v1/fl/rounds", json={"node_id": "student-1"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "edufed_fl_round" in response.text
        assert 'status="active"' in response.text


class TestMetricsEndpoints:
    """Test metrics and status endpoints."""

    def test_initial_metrics(self, client):
        response = client.get("/api/v1/fl/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["round"] == 0
        assert data["participating_nodes"] == 0
        assert data["privacy_budget_remaining"] == 10.0

    def test_status(self, client):
        client.post("/api/v1/fl/nodes", json={"node_id": "student-1"})

        response = client.get("/api/v1/fl/status")

        assert response.status_code == 200
        data = response.json()
        assert data["current_round"] == 0
        assert data["nodes"]["total"] == 1
        assert data["simulation_running"] is False


class TestNodeEndpoints:
    """Test node endpoints."""

    def test_register_node(self, client):
        response = client.post(
            "/api/v1/fl/nodes", json={"node_id": "student-1", "data_weight": 120}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["node_id"] == "student-1"
        assert data["status"] == "idle"
        assert data["data_weight"] == 120

    def test_register_node_invalid(self, client):
        response = client.post("/api/v1/fl/nodes", json={"node_id": "a", "data_weight": -1})

        assert response.status_code == 422

    def test_list_nodes(self, client):
        for node_id in ("a", "b"):
            client.post("/api/v1/fl/nodes", json={"node_id": node_id})

        response = client.get("/api/v1/fl/nodes")

        assert response.status_code == 200
        assert {n["node_id"] for n in response.json()} == {"a", "b"}

    def test_get_node(self, client):
        client.post("/api/v1/fl/nodes", json={"node_id": "a"})

        response = client.get("/api/v1/fl/nodes/a")

        assert response.status_code == 200
        assert response.json()["node_id"] == "a"

    def test_get_unknown_node(self, client):
        response = client.get("/api/v1/fl/nodes/ghost")

        assert response.status_code == 404
        assert response.json()["node_id"] == "ghost"

    def test_deactivate_node(self, client):
        client.post("/api/v1/fl/nodes", json={"node_id": "a"})

        response = client.post("/api/v1/fl/nodes/a/deactivate")

        assert response.status_code == 200
        assert response.json()["status"] == "inactive"

    def test_deactivate_unknown_node(self, client):
        assert client.post("/api/v1/fl/nodes/ghost/deactivate").status_code == 404


class TestRoundEndpoints:
    """Test training round endpoints."""

    def test_run_round_with_node(self, client):
        response = client.post("/api/v1/fl/rounds", json={"node_id": "student-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["round"] == 1
        assert data["participating_nodes"] == 1
        assert 0.0 <= data["global_accuracy"] <= 1.0

        node = client.get("/api/v1/fl/nodes/student-1").json()
        assert node["rounds_participated"] == 1

    def test_run_round_without_body(self, client):
        client.post("/api/v1/fl/nodes", json={"node_id": "a"})

        response = client.post("/api/v1/fl/rounds")

        assert response.status_code == 200
        assert response.json()["round"] == 1

    def test_run_round_no_nodes(self, client):
        response = client.post("/api/v1/fl/rounds")

        assert response.status_code == 200
        assert response.json()["round"] == 0

    def test_round_history(self, client):
        for _ in range(3):
            client.post("/api/v1/fl/rounds", json={"node_id": "a"})

        response = client.get("/api/v1/fl/rounds", params={"limit": 2})

        assert response.status_code == 200
        assert [m["round"] for m in response.json()] == [2, 3]

    def test_round_failure_is_503(self, small_config):
        coordinator = FederatedCoordinator(config=small_config, aggregator=BrokenAggregator())

        with TestClient(create_app(coordinator=coordinator)) as client:
            response = client.post("/api/v1/fl/rounds", json={"node_id": "a"})

            assert response.status_code == 503
            assert response.json()["round"] == 1
            # Last good metrics stay available
            assert client.get("/api/v1/fl/metrics").json()["round"] == 0


class TestSimulationEndpoints:
    """Test simulation controls."""

    def test_start_and_stop(self, client, api_coordinator):
        response = client.post("/api/v1/fl/simulation/start")
        assert response.status_code == 200
        assert response.json() == {"running": True, "changed": True}

        assert client.post("/api/v1/fl/simulation/start").json()["changed"] is False

        response = client.post("/api/v1/fl/simulation/stop")
        assert response.json() == {"running": False, "changed": True}
        assert not api_coordinator.is_running

    def test_shutdown_stops_simulation(self, api_coordinator):
        with TestClient(create_app(coordinator=api_coordinator)) as client:
            client.post("/api/v1/fl/simulation/start")
            assert api_coordinator.is_running

        assert not api_coordinator.is_running
