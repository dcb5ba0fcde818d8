"""
Tests for REST API Endpoints (server.py).

Tests cover:
- Session activation endpoints
- Price, chart, wallet and history reads
- Opening and closing positions
- Fund transfers and physical quotes
- Error mapping (400 / 404 / 409 / 503)
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from server import app


@pytest.fixture
def client(controller):
    """Client bound to an activated controller."""
    with patch("server.controller", controller):
        yield TestClient(app)


@pytest.fixture
def inactive_client(inactive_controller):
    with patch("server.controller", inactive_controller):
        yield TestClient(app)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    def test_not_initialized(self):
        """Every endpoint returns 503 before startup."""
        with patch("server.controller", None):
            client = TestClient(app)

            for path in ("/api/session", "/api/price", "/api/wallets", "/api/positions"):
                response = client.get(path)
                assert response.status_code == 503
                assert response.json()["code"] == "not_initialized"


class TestSessionEndpoints:
    """Tests for activate / deactivate."""

    def test_get_session(self, client):
        data = client.get("/api/session").json()
        assert data["is_active"] is True
        assert data["session"]["id"] == "test-session"

    def test_activate(self, inactive_client, inactive_controller):
        response = inactive_client.post("/api/session/activate", json={"session_id": "web-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["changed"] is True
        assert data["is_active"] is True
        assert data["timer_running"] is True
        assert inactive_controller.session.id == "web-1"

    def test_activate_without_body(self, inactive_client):
        response = inactive_client.post("/api/session/activate")
        assert response.status_code == 200
        assert response.json()["changed"] is True

    def test_activate_twice(self, client):
        assert client.post("/api/session/activate").json()["changed"] is False

    def test_deactivate(self, client, timers):
        data = client.post("/api/session/deactivate").json()

        assert data["changed"] is True
        assert data["is_active"] is False
        assert timers[0].stop_calls == 1


class TestReadEndpoints:
    """Tests for price, chart, wallet and history reads."""

    def test_price(self, client):
        data = client.get("/api/price").json()
        assert data["price"] == 3884.00
        assert data["direction"] == "neutral"

    def test_chart(self, client, timers):
        timers[0].fire()

        data = client.get("/api/chart/5m").json()

        assert data["horizon"] == "5M"
        assert len(data["points"]) == 60
        assert data["points"][-1]["label"] == "T+1"

    def test_unknown_chart(self, client):
        response = client.get("/api/chart/1Y")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_wallets(self, client):
        wallets = client.get("/api/wallets").json()["wallets"]
        assert [w["kind"] for w in wallets] == ["Physical", "Trading"]
        assert wallets[1]["balance_usd"] == 25000.0

    def test_transactions(self, client):
        txs = client.get("/api/transactions").json()["transactions"]
        assert [t["id"] for t in txs] == ["1", "2", "3"]

    def test_transactions_filtered(self, client):
        txs = client.get("/api/transactions", params={"wallet": "Physical", "limit": 1}).json()["transactions"]
        assert [t["id"] for t in txs] == ["1"]

    def test_transactions_all(self, client):
        txs = client.get("/api/transactions", params={"wallet": "all"}).json()["transactions"]
        assert len(txs) == 3

    def test_transactions_negative_limit(self, client):
        response = client.get("/api/transactions", params={"limit": -1})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_amount"

    def test_inactive_reads_rejected(self, inactive_client):
        response = inactive_client.get("/api/price")
        assert response.status_code == 409
        assert response.json()["code"] == "session_inactive"


class TestPositionEndpoints:
    """Tests for opening and closing positions."""

    def test_open_position(self, client):
        response = client.post("/api/positions", json={"side": "Buy", "size_grams": 10})

        assert response.status_code == 200
        position = response.json()["position"]
        assert position["side"] == "Buy"
        assert position["size_grams"] == 10
        assert position["id"].startswith("pos_")

    def test_list_positions(self, client):
        client.post("/api/positions", json={"side": "Sell", "size_grams": 5})

        positions = client.get("/api/positions").json()["positions"]

        assert len(positions) == 1
        assert positions[0]["unrealized_pnl"] == 0.0

    def test_invalid_size(self, client):
        response = client.post("/api/positions", json={"side": "Buy", "size_grams": 0})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_size"

    def test_invalid_side(self, client):
        response = client.post("/api/positions", json={"side": "Long", "size_grams": 1})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_side"

    def test_close_position(self, client):
        position_id = client.post("/api/positions", json={"side": "Buy", "size_grams": 10}).json()["position"]["id"]

        response = client.post(f"/api/positions/{position_id}/close")

        assert response.status_code == 200
        data = response.json()
        assert data["position"]["id"] == position_id
        assert data["profit_loss"] == 0.0
        assert data["transaction"]["kind"] == "Deposit"
        assert client.get("/api/positions").json()["positions"] == []

    def test_close_twice(self, client):
        position_id = client.post("/api/positions", json={"side": "Buy", "size_grams": 1}).json()["position"]["id"]
        client.post(f"/api/positions/{position_id}/close")

        response = client.post(f"/api/positions/{position_id}/close")

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_open_while_inactive(self, inactive_client):
        response = inactive_client.post("/api/positions", json={"side": "Buy", "size_grams": 1})
        assert response.status_code == 409


class TestFundsEndpoints:
    """Tests for deposit / withdraw and physical quotes."""

    def test_deposit(self, client):
        response = client.post("/api/funds/deposit", json={"amount_usd": 1000})

        assert response.status_code == 200
        assert response.json()["transaction"]["kind"] == "Deposit"
        wallets = client.get("/api/wallets").json()["wallets"]
        assert wallets[1]["balance_usd"] == 26000.0

    def test_withdraw(self, client):
        response = client.post("/api/funds/withdraw", json={"amount_usd": 500})
        assert response.status_code == 200
        assert response.json()["transaction"]["kind"] == "Withdrawal"

    def test_withdraw_too_much(self, client):
        response = client.post("/api/funds/withdraw", json={"amount_usd": 1_000_000})
        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_balance"

    def test_invalid_deposit(self, client):
        response = client.post("/api/funds/deposit", json={"amount_usd": -5})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_amount"

    def test_missing_amount(self, client):
        response = client.post("/api/funds/deposit", json={})
        assert response.status_code == 400

    def test_physical_quote(self, client):
        data = client.get("/api/physical/quote", params={"side": "Sell", "grams": 10}).json()

        assert data["side"] == "Sell"
        assert data["total"] == pytest.approx(data["subtotal"] - data["commission"], abs=0.011)

    def test_physical_quote_invalid(self, client):
        response = client.get("/api/physical/quote", params={"side": "Buy", "grams": 0})
        assert response.status_code == 400
