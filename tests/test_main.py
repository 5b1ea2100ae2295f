"""
HTTP Service Tests
==================

Endpoints of the FastAPI app, run without external sources (or with an
in-process live source where the connection matters).
"""

import pytest
from fastapi.testclient import TestClient

from venue_capacity.config import Settings
from venue_capacity.main import app, create_engine
from venue_capacity.monitor import OccupancyEngine
from venue_capacity.alerts.sink import InMemoryAlertSink
from venue_capacity.stream.sources import HttpPullSource, WebSocketLiveSource

from conftest import T0, FakeLiveSource


@pytest.fixture
def client(monkeypatch):
    # Run the service without live, pull or capacity sources
    no_sources = Settings()
    monkeypatch.setattr("venue_capacity.main.settings", no_sources)
    with TestClient(app) as test_client:
        yield test_client


class TestService:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "venue-capacity"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestEntities:

    def test_unknown_entity(self, client):
        assert client.get("/entities/missing").status_code == 404
        assert client.delete("/entities/missing").status_code == 404

    def test_load_uses_default_capacity(self, client):
        body = client.post("/entities/event-42").json()
        assert body["expected_max"] == 25000
        assert body["capacity_is_default"] is True

    def test_snapshot_before_samples(self, client):
        client.post("/entities/event-42")
        assert client.get("/entities/event-42").status_code == 503

    def test_ingest_and_alert_lifecycle(self, client):
        client.post("/entities/event-42")

        response = client.post(
            "/entities/event-42/samples",
            json={"timestamp": T0, "count": 24000},
        )
        body = response.json()
        assert body["accepted"] is True
        assert body["snapshot"]["density_tier"] == "critical"
        assert body["snapshot"]["alert"]["severity"] == "warning"

        alerts = client.get("/alerts").json()["alerts"]
        assert len(alerts) == 1
        assert alerts[0]["entity_id"] == "event-42"

        snapshot = client.get("/entities/event-42").json()
        assert snapshot["current_occupancy"] == 24000
        assert snapshot["capacity_is_default"] is True

        assert client.delete("/entities/event-42").json()["disposed"] is True
        assert client.get("/alerts").json()["alerts"] == []

    def test_duplicate_sample_not_accepted(self, client):
        client.post("/entities/event-42")
        payload = {"timestamp": T0, "count": 10}
        client.post("/entities/event-42/samples", json=payload)
        assert client.post("/entities/event-42/samples", json=payload).json()["accepted"] is False

    def test_negative_count_rejected(self, client):
        client.post("/entities/event-42")
        response = client.post("/entities/event-42/samples", json={"timestamp": T0, "count": -1})
        assert response.status_code == 422

    def test_reconnect_without_live_source(self, client):
        client.post("/entities/event-42")
        assert client.post("/entities/event-42/reconnect").status_code == 409


class TestMetrics:

    def test_metrics_per_entity(self, client):
        client.post("/entities/event-42")
        client.post("/entities/event-42/samples", json={"timestamp": T0, "count": 10})
        client.post("/entities/event-42/samples", json={"timestamp": T0, "count": 10})

        body = client.get("/metrics").json()

        store = body["entities"]["event-42"]["store"]
        assert store["size"] == 1
        assert store["duplicate_count"] == 1
        assert body["live_source"] == {}
        assert body["alerts_active"] == 0


class TestReconnect:

    @pytest.fixture
    def live_client(self, monkeypatch):
        def engine_with_live_source(config, sink):
            return OccupancyEngine(config, sink, live_source=FakeLiveSource())

        monkeypatch.setattr("venue_capacity.main.settings", Settings())
        monkeypatch.setattr("venue_capacity.main.create_engine", engine_with_live_source)
        with TestClient(app) as test_client:
            yield test_client

    def test_healthy_connection_not_reset(self, live_client):
        live_client.post("/entities/event-42")

        response = live_client.post("/entities/event-42/reconnect")

        assert response.status_code == 409
        assert response.json()["connection"]["phase"] == "live"
        metrics = live_client.get("/metrics").json()["entities"]["event-42"]
        assert metrics["connection"]["reconnect_count"] == 0


class TestEngineFactory:

    def test_sources_from_settings(self):
        settings = Settings.model_validate({
            "connection": {"live_url": "ws://stream/{entity_id}"},
            "poller": {"pull_url": "http://api/{entity_id}/latest"},
        })
        engine = create_engine(settings, InMemoryAlertSink())

        assert isinstance(engine.live_source, WebSocketLiveSource)
        assert isinstance(engine.pull_source, HttpPullSource)
        assert engine.capacity_source is None
        engine.pull_source.close()
