"""Tests for the HTTP API."""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

import web.app as web_app
from coinpool.config import Config, OracleConfig
from coinpool.oracle import PriceOracleClient

MINT = "MintAddr111"
WALLET = "WalletAddr111"


def _wallet(wallet_id, exit_cap, entry=1_000_000, invested=1000):
    return {
        "id": wallet_id,
        "wallet_address": f"0x{wallet_id}",
        "token_name": "PEPE",
        "invested_amount": invested,
        "entry_market_cap": entry,
        "exit_market_cap": exit_cap,
    }


@pytest.fixture
def client():
    return TestClient(web_app.app)


class TestCalculate:

    def test_health(self, client) -> None:
        assert client.get("/api/health").json()["status"] == "ok"

    def test_equal_share(self, client) -> None:
        resp = client.post("/api/calculate", json={
            "wallets": [_wallet("a", 1_500_000), _wallet("b", 500_000)],
            "policy": "equal",
        })
        assert resp.status_code == 200
        body = resp.json()
        amounts = [Decimal(str(w["redistribution_amount"])) for w in body["wallets"]]
        assert amounts == [Decimal("-500"), Decimal("500")]
        assert Decimal(str(body["summary"]["pool"])) == Decimal("500")
        assert body["excluded"] == {}

    def test_zero_entry_wallet_excluded(self, client) -> None:
        resp = client.post("/api/calculate", json={
            "wallets": [_wallet("a", 1_500_000), _wallet("b", 500_000), _wallet("z", 1, entry=0)],
        })
        assert resp.status_code == 200
        body = resp.json()
        assert [w["id"] for w in body["wallets"]] == ["a", "b"]
        assert "z" in body["excluded"]

    def test_inconsistent_custom_percentages(self, client) -> None:
        resp = client.post("/api/calculate", json={
            "wallets": [_wallet("a", 1_500_000), _wallet("b", 500_000), _wallet("c", 800_000)],
            "policy": "custom",
            "percentages": {"b": 50, "c": 20},
        })
        assert resp.status_code == 400
        assert "100" in resp.json()["detail"]

    def test_custom_policy_without_losers_moves_nothing(self, client) -> None:
        resp = client.post("/api/calculate", json={
            "wallets": [_wallet("a", 1_500_000), _wallet("b", 1_200_000)],
            "policy": "custom",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert [Decimal(str(w["redistribution_amount"])) for w in body["wallets"]] == [0, 0]
        assert Decimal(str(body["summary"]["pool"])) == 0

    def test_duplicate_ids(self, client) -> None:
        resp = client.post("/api/calculate", json={"wallets": [_wallet("a", 1), _wallet("a", 2)]})
        assert resp.status_code == 422

    def test_negative_invested_rejected(self, client) -> None:
        resp = client.post("/api/calculate", json={"wallets": [_wallet("a", 1, invested=-1)]})
        assert resp.status_code == 422


class TestReconstruct:

    @pytest.fixture
    def mocked_oracle(self, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/v0/addresses/"):
                return httpx.Response(200, json=[
                    {"timestamp": 100, "tokenTransfers": [
                        {"mint": MINT, "toUserAccount": WALLET, "fromUserAccount": "pool", "tokenAmount": 10},
                    ]},
                    {"timestamp": 200, "tokenTransfers": [
                        {"mint": MINT, "toUserAccount": "pool", "fromUserAccount": WALLET, "tokenAmount": 4},
                    ]},
                ])
            if request.url.path == "/public/price_historical":
                time = int(request.url.params["time"])
                prices = {100: (2, 1000000), 200: (3, 1500000)}
                price, mcap = prices[time]
                return httpx.Response(200, json={"data": {"price": price, "market_cap": mcap}})
            return httpx.Response(404)

        config = Config(oracle=OracleConfig(helius_api_key="k"))
        monkeypatch.setattr(web_app, "get_config", lambda: config)
        monkeypatch.setattr(
            web_app,
            "PriceOracleClient",
            lambda cfg: PriceOracleClient(cfg, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))),
        )

    def test_reconstruct_position(self, client, mocked_oracle) -> None:
        resp = client.post("/api/reconstruct", json={
            "wallet_address": WALLET,
            "token_address": MINT,
            "fallback_market_cap": 1,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(str(body["net_invested_usd"])) == Decimal("12")
        assert Decimal(str(body["entry_market_cap"])) == Decimal("1000000")
        assert Decimal(str(body["exit_market_cap"])) == Decimal("1500000")

    def test_wallet_without_buys(self, client, mocked_oracle) -> None:
        resp = client.post("/api/reconstruct", json={
            "wallet_address": "someone-else",
            "token_address": MINT,
            "fallback_market_cap": 1,
        })
        assert resp.status_code == 422
        assert "No buy" in resp.json()["detail"]

    def test_unknown_token(self, client, mocked_oracle) -> None:
        assert client.get(f"/api/token/{MINT}").status_code == 404
