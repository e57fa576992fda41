"""
Tests for the bot status and control API.

These tests ensure:
1. Read endpoints report engine state
2. Control endpoints require the X-API-Key header
3. Strategy switches and settings updates reach the StrategyManager
4. Requests before the engine is up get 503
"""

import asyncio
import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

import routes.deps
from routes.deps import set_state
from server import app

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def client(monkeypatch, engine):
    monkeypatch.setattr(routes.deps, "API_KEY", API_KEY)
    set_state("engine", engine)
    yield TestClient(app)
    set_state("engine", None)


def test_engine_not_running():
    set_state("engine", None)
    response = TestClient(app).get("/api/status")
    assert response.status_code == 503


class TestReadEndpoints:
    def test_status(self, client):
        response = client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["active_strategy"] == "liquidity"
        assert data["max_positions"] == 2
        assert data["in_flight_orders"] == []

    def test_positions(self, client, engine, position_factory):
        asyncio.run(engine.book.open(position_factory("mint1")))
        data = client.get("/api/positions").json()
        assert data["count"] == 1
        assert data["positions"][0]["token"] == "mint1"
        assert data["positions"][0]["strategy"] == "momentum"

    def test_events(self, client, engine):
        engine.on_pool_discovered("pool1")
        engine.on_pool_discovered("pool2")
        data = client.get("/api/events", params={"limit": 5}).json()
        assert data["events"] == []

        response = client.get("/api/events", params={"limit": 0})
        assert response.status_code == 422

    def test_orders_empty(self, client):
        assert client.get("/api/orders").json() == {"orders": []}

    def test_strategy(self, client):
        data = client.get("/api/strategy").json()
        assert data["active_strategy"] == "liquidity"
        assert set(data["strategies"]) == {"momentum", "volume", "liquidity"}


class TestStrategyControl:
    def test_switch_requires_key(self, client):
        response = client.post("/api/strategy", json={"name": "volume"})
        assert response.status_code == 403

        response = client.post("/api/strategy", json={"name": "volume"}, headers={"X-API-Key": "wrong"})
        assert response.status_code == 403

    def test_switch(self, client, engine):
        response = client.post("/api/strategy", json={"name": "volume"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["active_strategy"] == "volume"
        assert engine.manager.active_strategy.value == "volume"

    def test_switch_unknown(self, client, engine):
        response = client.post("/api/strategy", json={"name": "scalper"}, headers=HEADERS)
        assert response.status_code == 404
        assert engine.manager.active_strategy.value == "liquidity"

    def test_update_settings(self, client, engine, bot_config):
        response = client.put(
            "/api/strategy/liquidity/settings",
            json={"min_liquidity": 25.0},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert engine.manager.strategies[engine.manager.active_strategy].config.min_liquidity == 25.0
        assert Path(bot_config.strategy_config_path).exists()

    def test_update_settings_unknown_key(self, client):
        response = client.put(
            "/api/strategy/liquidity/settings",
            json={"not_a_setting": 1},
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_update_settings_unknown_strategy(self, client):
        response = client.put("/api/strategy/scalper/settings", json={}, headers=HEADERS)
        assert response.status_code == 404

    def test_update_settings_requires_key(self, client):
        response = client.put("/api/strategy/liquidity/settings", json={"min_liquidity": 1.0})
        assert response.status_code == 403

    def test_update_settings_rejects_non_numeric(self, client, engine):
        response = client.put(
            "/api/strategy/liquidity/settings",
            json={"take_profit_pct": "40"},
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert engine.manager.strategies[engine.manager.active_strategy].config.take_profit_pct == 30.0
