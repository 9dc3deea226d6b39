from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from shift.api import create_app
from shift.core.chat import ChatPipeline
from shift.core.errors import ModelInvocationError
from shift.core.gateway import Gateway
from shift.core.llm_provider import ChatResponse
from shift.core.portfolio import PortfolioAggregator
from shift.core.session import SessionRegistry
from shift.core.tools import ToolRegistry
from shift.integrations.solana.agent_kit import TokenBalance, WalletBalances
from shift.utils.price_cache import PriceCache
from tests.doubles import WALLET_A, WALLET_B, ScriptedLLM, make_agent

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _agent(wallet_key: str):
    agent = make_agent(wallet_key)
    agent.get_token_balance = AsyncMock(
        return_value=WalletBalances(
            sol=2.0,
            tokens=[TokenBalance(USDC, "USDC", "USD Coin", 12.5, 6)],
        )
    )
    return agent


def _create_client(responses=(), price_payload=None) -> tuple[TestClient, Gateway]:
    registry = SessionRegistry(_agent, tool_factory=lambda agent: ToolRegistry())
    llm = ScriptedLLM(list(responses))
    cache = PriceCache(fetcher=AsyncMock(return_value=price_payload))
    gateway = Gateway(
        registry,
        ChatPipeline(registry, llm),
        PortfolioAggregator(registry, cache),
        cache,
    )
    app = create_app(gateway, {"docs_url": None, "redoc_url": None})
    return TestClient(app), gateway


def test_health_endpoint() -> None:
    client, gateway = _create_client()
    gateway.init_session(WALLET_A)

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["sessions"] == 1
    assert data["llm_provider"] == "openai"
    assert response.headers["X-Request-ID"]


def test_request_id_is_echoed() -> None:
    client, _ = _create_client()
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_init_session() -> None:
    client, gateway = _create_client()

    response = client.post("/api/init-session", json={"publicKey": WALLET_A})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert WALLET_A in gateway.registry


def test_init_session_missing_key() -> None:
    client, _ = _create_client()

    response = client.post("/api/init-session", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Public key is required"


def test_chat_flow() -> None:
    client, _ = _create_client([ChatResponse(content="You have 2 SOL.")])
    client.post("/api/init-session", json={"publicKey": WALLET_A})

    response = client.post("/api/chat", json={"message": "balance?", "publicKey": WALLET_A})

    assert response.status_code == 200
    assert response.json() == {"response": "You have 2 SOL."}


def test_chat_requires_message_and_key() -> None:
    client, _ = _create_client()

    response = client.post("/api/chat", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Message and public key are required"


def test_chat_without_session() -> None:
    client, _ = _create_client()

    response = client.post("/api/chat", json={"message": "hi", "publicKey": WALLET_B})

    assert response.status_code == 404
    assert response.json()["error"] == "Session not found - please connect wallet first"


def test_chat_model_failure_is_bad_gateway() -> None:
    client, _ = _create_client([ModelInvocationError("LLM API error 500: down")])
    client.post("/api/init-session", json={"publicKey": WALLET_A})

    response = client.post("/api/chat", json={"message": "hi", "publicKey": WALLET_A})

    assert response.status_code == 502
    assert "LLM API error" in response.json()["error"]


def test_chat_stream() -> None:
    client, _ = _create_client([ChatResponse(content="streamed reply")])
    client.post("/api/init-session", json={"publicKey": WALLET_A})

    response = client.post(
        "/api/chat/stream", json={"message": "hi", "publicKey": WALLET_A}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text.strip() == "streamed reply"


def test_chat_stream_without_session() -> None:
    client, _ = _create_client()

    response = client.post("/api/chat/stream", json={"message": "hi", "publicKey": WALLET_A})

    assert response.status_code == 404


def test_sign_transaction() -> None:
    client, _ = _create_client()
    client.post("/api/init-session", json={"publicKey": WALLET_A})

    response = client.post(
        "/api/sign-transaction", json={"transaction": "AQAB", "publicKey": WALLET_A}
    )

    assert response.status_code == 200
    assert response.json() == {"transaction": "AQAB", "requiresSignature": True}


def test_sign_transaction_without_session() -> None:
    client, _ = _create_client()

    response = client.post(
        "/api/sign-transaction", json={"transaction": "AQAB", "publicKey": WALLET_A}
    )

    assert response.status_code == 404


def test_portfolio() -> None:
    client, _ = _create_client()
    client.post("/api/init-session", json={"publicKey": WALLET_A})

    response = client.get(f"/api/portfolio/{WALLET_A}")

    assert response.status_code == 200
    data = response.json()
    assert data["sol"] == 2.0
    assert data["solPrice"] == 150.0
    assert data["solUsdValue"] == 300.0
    assert data["tokens"] == [
        {"token": "USDC", "symbol": "USD Coin", "balance": 12.5, "usdValue": 12.5}
    ]
    assert data["watchlist"]["BTC"] == {"price": 0.0, "change": 0.0}


def test_portfolio_without_session() -> None:
    client, _ = _create_client()

    response = client.get(f"/api/portfolio/{WALLET_A}")

    assert response.status_code == 404


def test_price_lookup() -> None:
    payload = {
        "bitcoin": {"usd": 50000, "usd_24h_change": 1.25},
        "ethereum": {"usd": 3000, "usd_24h_change": 0.5},
        "solana": {"usd": 150, "usd_24h_change": -0.75},
    }
    client, gateway = _create_client(price_payload=payload)

    missing = client.get("/api/prices/btc")
    assert missing.status_code == 404
    assert "error" in missing.json()

    asyncio.run(gateway.price_cache.refresh())

    response = client.get("/api/prices/btc")
    assert response.status_code == 200
    body = response.json()
    assert body["symbol"] == "BTC"
    assert body["usd"] == 50000
    assert body["usd_24h_change"] == 1.25


def test_lifespan_starts_and_stops_gateway() -> None:
    client, gateway = _create_client()
    session = gateway.init_session(WALLET_A)

    with client:
        assert gateway.price_cache.running
        assert client.get("/health").json()["price_cache"]["running"] is True

    assert not gateway.price_cache.running
    assert len(gateway.registry) == 0
    session.agent.close.assert_awaited()


def test_lifespan_refuses_invalid_configuration(monkeypatch) -> None:
    monkeypatch.setenv("HELIUS_API_KEY", "")
    app = create_app(None, {"docs_url": None, "redoc_url": None})

    with pytest.raises(RuntimeError, match="HELIUS_API_KEY"):
        with TestClient(app):
            pass


def test_unknown_route_uses_error_body() -> None:
    client, _ = _create_client()
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
