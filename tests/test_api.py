"""Tests for the FastAPI web API."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from stratyx.api import create_app
from stratyx.core.config import StratyxConfig
from stratyx.pipeline import CoachingPipeline

BASE = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def _make_kill(timestamp: datetime = BASE + timedelta(seconds=5), victim: str = "X") -> dict:
    return {
        "type": "kill",
        "timestamp": timestamp.isoformat(),
        "data": {"attacker": "A", "victim": victim, "weapon": "ak47"},
    }


def _make_state(**overrides) -> dict:
    state = {
        "roundNumber": 5,
        "score": {"home": 3, "away": 1},
        "economyDiff": 2000,
        "manAdvantage": 1,
        "objectivesControlled": 0.6,
        "phase": "mid",
        "strategyDebt": 10,
    }
    state.update(overrides)
    return state


@pytest.fixture
def pipeline():
    config = StratyxConfig()
    config.sync.enable_heartbeat = False
    return CoachingPipeline(config=config, clock=lambda: BASE + timedelta(seconds=8))


@pytest.fixture
def client(pipeline):
    return TestClient(create_app(pipeline))


class TestHealthEndpoint:
    """Tests for /health and /status."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert isinstance(data["version"], str)

    def test_status(self, client):
        data = client.get("/status").json()
        assert set(data) == {"sync", "performance", "monitor"}
        assert data["sync"]["state"] == "disconnected"


class TestEventsEndpoint:
    """Tests for POST /events."""

    def test_accepted_without_insight(self, client):
        response = client.post("/events", json=_make_kill())
        assert response.status_code == 200
        assert response.json() == {"accepted": True, "insight": None}

    def test_insight_after_repeated_deaths(self, client):
        for _ in range(4):
            client.post("/events", json=_make_kill())
        data = client.post("/events", json=_make_kill()).json()
        assert data["insight"]["priority"] == "high"
        assert data["insight"]["sampleSize"] == 5

    def test_stale_event_not_accepted(self, client, pipeline):
        data = client.post("/events", json=_make_kill(BASE - timedelta(seconds=30))).json()
        assert data["accepted"] is False
        assert pipeline.engine.drops.stale == 1

    def test_missing_timestamp_rejected(self, client):
        response = client.post("/events", json={"type": "kill", "data": {}})
        assert response.status_code == 422


class TestQueryEndpoints:
    """Tests for insights, debt, graph and pattern endpoints."""

    def test_insights_limit(self, client):
        for _ in range(7):
            client.post("/events", json=_make_kill())
        insights = client.get("/insights", params={"limit": 2}).json()["insights"]
        assert [i["sampleSize"] for i in insights] == [7, 6]

    def test_strategy_debt(self, client):
        client.post("/events", json=_make_kill())
        data = client.get("/strategy-debt").json()
        assert data["total"] == 19.5
        assert data["breakdown"]["individual"] == 19.5

    def test_causal_graph(self, client):
        client.post("/events", json=_make_kill())
        data = client.get("/causal-graph").json()
        assert [n["tier"] for n in data["nodes"]] == ["micro", "intermediate"]
        assert data["edges"][0]["evidence"] == ["early_death", "positioning_error"]

    def test_patterns(self, client):
        for i in range(3):
            client.post("/events", json=_make_kill(BASE + timedelta(seconds=i)))
        data = client.get("/patterns").json()
        assert "recurring_mistake" in {p["type"] for p in data["patterns"]}
        assert data["occurrences"][0]["count"] == 3

    def test_reset(self, client):
        for _ in range(5):
            client.post("/events", json=_make_kill())
        assert client.post("/reset").json() == {"status": "reset"}
        assert client.get("/insights").json()["insights"] == []


class TestWinProbabilityEndpoints:
    """Tests for game-state updates, simulation and counterfactuals."""

    def test_game_state_updates_history(self, client):
        result = client.post("/game-state", json=_make_state()).json()
        assert 0.05 <= result["probability"] <= 0.95
        assert len(result["factors"]) == 5

        data = client.get("/win-probability").json()
        assert data["model"]["probability"] == result["probability"]
        assert len(data["history"]) == 1
        assert data["recentTrend"] == "stable"

    def test_game_state_validation(self, client):
        response = client.post("/game-state", json=_make_state(objectivesControlled=2))
        assert response.status_code == 422

    def test_game_state_rejects_non_finite(self, client):
        response = client.post(
            "/game-state",
            content='{"manAdvantage": Infinity, "objectivesControlled": 0.5}',
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422

    def test_simulate_is_reproducible(self, client):
        body = {"state": _make_state(), "iterations": 500, "seed": 42}
        first = client.post("/win-probability/simulate", json=body).json()
        second = client.post("/win-probability/simulate", json=body).json()
        assert first == second
        assert first["iterations"] == 500
        assert client.get("/win-probability").json()["history"] == []

    def test_simulate_iteration_bounds(self, client):
        response = client.post("/win-probability/simulate", json={"state": _make_state(), "iterations": 0})
        assert response.status_code == 422

    def test_counterfactual(self, client):
        base = client.post("/win-probability/counterfactual", json={"state": _make_state()}).json()
        better = client.post(
            "/win-probability/counterfactual",
            json={"state": _make_state(), "changes": {"manAdvantage": 3}},
        ).json()
        assert better["probability"] > base["probability"]

    def test_counterfactual_leaves_history_alone(self, client):
        client.post("/game-state", json=_make_state())
        client.post(
            "/win-probability/counterfactual",
            json={"state": _make_state(), "changes": {"manAdvantage": -4}},
        )
        again = client.post("/game-state", json=_make_state()).json()
        assert again["trend"] == "stable"
        assert again["delta"] == pytest.approx(0.0)
        assert len(client.get("/win-probability").json()["history"]) == 2

    def test_counterfactual_non_numeric_change(self, client):
        response = client.post(
            "/win-probability/counterfactual",
            json={"state": _make_state(), "changes": {"manAdvantage": "lots"}},
        )
        assert response.status_code == 400

    def test_counterfactual_unknown_field(self, client):
        response = client.post(
            "/win-probability/counterfactual",
            json={"state": _make_state(), "changes": {"roundNumber": 9}},
        )
        assert response.status_code == 400
        assert "roundNumber" in response.json()["detail"]


class TestEventSocket:
    """Tests for the /ws/events WebSocket."""

    def test_synchronous_ingest_when_not_running(self, client, pipeline):
        with client.websocket_connect("/ws/events") as ws:
            ws.send_json(_make_kill())
            assert ws.receive_json() == {"insight": None}
            ws.send_json([1, 2, 3])
            assert "error" in ws.receive_json()
        assert pipeline.engine.events_processed == 1

    def test_queued_when_session_running(self):
        config = StratyxConfig()
        config.sync.enable_heartbeat = False
        session = CoachingPipeline(config=config)
        with TestClient(create_app(session)) as client:
            assert client.get("/status").json()["sync"]["state"] == "connected"
            with client.websocket_connect("/ws/events") as ws:
                ws.send_json(_make_kill(datetime.now(UTC)))
                assert ws.receive_json() == {"queued": True}
        assert session.engine.events_processed == 1

    def test_bad_messages_keep_socket_open(self, client, pipeline):
        with client.websocket_connect("/ws/events") as ws:
            ws.send_text("{not json")
            assert "error" in ws.receive_json()
            ws.send_json({**_make_kill(), "timestamp": 1e20})
            assert ws.receive_json() == {"insight": None}
            ws.send_text('{"type": "kill", "timestamp": NaN, "data": {}}')
            assert ws.receive_json() == {"insight": None}
            ws.send_json(_make_kill())
            assert ws.receive_json() == {"insight": None}
        assert pipeline.engine.drops.malformed == 2
        assert pipeline.engine.events_processed == 1

    def test_out_of_range_timestamp_queued_when_running(self):
        config = StratyxConfig()
        config.sync.enable_heartbeat = False
        session = CoachingPipeline(config=config)
        with TestClient(create_app(session)) as client:
            with client.websocket_connect("/ws/events") as ws:
                ws.send_json({**_make_kill(), "timestamp": 1e20})
                assert ws.receive_json() == {"queued": True}
                ws.send_json(_make_kill(datetime.now(UTC)))
                assert ws.receive_json() == {"queued": True}
        assert session.engine.drops.malformed == 1
        assert session.engine.events_processed == 1
