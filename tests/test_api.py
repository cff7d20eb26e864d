"""HTTP tests through the FastAPI app."""

import sys
import os

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from opinion_market.config import settings
from opinion_market.main import create_app
from opinion_market.middleware.auth import create_access_token
from opinion_market.pricing import asset_id_for

OPINION = "Pluto is a planet"


def auth(account_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': account_id})}"}


@pytest.fixture
def client(exchange, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_ACCOUNT_IDS", "admin")
    return TestClient(create_app(exchange))


@pytest.fixture
def alice_client(client):
    response = client.post("/api/accounts", json={"username": "alice"}, headers=auth("alice"))
    assert response.status_code == 201
    return client


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "activity": "healthy"}

    def test_activity_health(self, client):
        assert client.get("/api/activity/health").json()["status"] == "healthy"


class TestAuth:
    def test_missing_token(self, client):
        assert client.get("/api/accounts/me").status_code in (401, 403)

    def test_bad_token(self, client):
        response = client.get("/api/accounts/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestAccounts:
    def test_open_and_read(self, alice_client):
        me = alice_client.get("/api/accounts/me", headers=auth("alice")).json()
        assert me["account_id"] == "alice"
        assert me["balance"] == 10000.0

    def test_bot_flag_ignored_on_self_signup(self, client):
        response = client.post("/api/accounts", json={"username": "sneaky", "is_bot": True}, headers=auth("sneaky"))
        assert response.status_code == 201
        assert response.json()["is_bot"] is False

    def test_unknown_account_404(self, client):
        response = client.get("/api/accounts/ghost", headers=auth("alice"))
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestAssetsAndTrades:
    def test_ensure_and_quote(self, alice_client):
        asset = alice_client.post("/api/assets", json={"text": OPINION}, headers=auth("alice")).json()
        assert asset["asset_id"] == asset_id_for(OPINION)
        assert asset["current_price"] == 10.0

        quote = alice_client.get(f"/api/assets/{asset['asset_id']}/quote", params={"action": "buy", "quantity": 1})
        assert quote.json()["execution_price"] == 10.01

    def test_buy_then_sell(self, alice_client):
        bought = alice_client.post("/api/trades/buy", json={"text": OPINION, "quantity": 1}, headers=auth("alice"))
        assert bought.status_code == 200
        assert bought.json()["account"]["balance"] == 9989.99

        portfolio = alice_client.get("/api/accounts/me/portfolio", headers=auth("alice")).json()
        assert portfolio["net_worth"] == 10000.0
        assert portfolio["positions"][0]["quantity"] == 1

        sold = alice_client.post(
            "/api/trades/sell",
            json={"asset_id": asset_id_for(OPINION), "quantity": 1},
            headers=auth("alice"),
        )
        assert sold.status_code == 200
        assert sold.json()["account"]["balance"] == 9999.99

        feed = alice_client.get("/api/activity").json()
        assert [e["type"] for e in feed] == ["sell", "buy"]

        listed = alice_client.get("/api/assets").json()
        assert listed["total"] == 1

    def test_insufficient_position_is_400(self, alice_client):
        response = alice_client.post("/api/trades/sell", json={"text": OPINION, "quantity": 1}, headers=auth("alice"))
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INSUFFICIENT_POSITION"
        assert body["retryable"] is False

    def test_unknown_asset_404(self, client):
        assert client.get(f"/api/assets/{'0' * 32}").status_code == 404


class TestBets:
    def test_place_and_list(self, alice_client):
        alice_client.post("/api/accounts", json={"username": "bob"}, headers=auth("bob"))
        response = alice_client.post(
            "/api/bets",
            json={
                "target_account_id": "bob",
                "direction": "increase",
                "target_percentage": 10,
                "timeframe_hours": 24,
                "stake": 100,
            },
            headers=auth("alice"),
        )
        assert response.status_code == 201
        bet_id = response.json()["id"]

        mine = alice_client.get("/api/bets/my", headers=auth("alice")).json()
        assert [b["id"] for b in mine] == [bet_id]

        resolved = alice_client.post(f"/api/bets/{bet_id}/resolve", headers=auth("alice")).json()
        assert resolved["status"] == "active"


class TestAdmin:
    def test_requires_admin(self, client):
        assert client.post("/api/admin/reconcile-prices", headers=auth("alice")).status_code == 403

    def test_reconcile(self, client, exchange):
        exchange.assets.get(OPINION)
        response = client.post("/api/admin/reconcile-prices", headers=auth("admin"))
        assert response.json() == {"fixed": 0, "validated": 1}

    def test_open_bot_account(self, client):
        response = client.post(
            "/api/admin/bots",
            json={"account_id": "bot-1", "username": "market maker", "starting_balance": 500},
            headers=auth("admin"),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["is_bot"] is True
        assert body["balance"] == 500.0

    def test_open_bot_account_requires_admin(self, client):
        response = client.post(
            "/api/admin/bots",
            json={"account_id": "bot-1", "username": "market maker"},
            headers=auth("alice"),
        )
        assert response.status_code == 403
        assert client.get("/api/accounts/bot-1", headers=auth("alice")).status_code == 404

    def test_resolve_bets_and_incidents(self, client):
        summary = client.post("/api/admin/resolve-bets", headers=auth("admin")).json()
        assert summary["active"] == 0
        assert client.get("/api/admin/incidents", headers=auth("admin")).json() == []
