from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shift.core.errors import ExternalFetchError
from shift.integrations.solana.agent_kit import (
    LAMPORTS_PER_SOL,
    SolanaAgentKit,
    create_agent_factory,
    validate_wallet_address,
)
from shift.integrations.solana.solana_tools import create_solana_tools
from tests.doubles import ACM, WALLET_A, make_response

BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
MYSTERY = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def _kit() -> SolanaAgentKit:
    return SolanaAgentKit(
        WALLET_A,
        "https://rpc.test.invalid",
        {"PYTH_HERMES_URL": "https://hermes.test", "JUPITER_PRICE_URL": "https://jup.test"},
    )


def _token_account(mint, ui_amount, decimals=5):
    return {
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "mint": mint,
                        "tokenAmount": {"uiAmount": ui_amount, "decimals": decimals},
                    }
                }
            }
        }
    }


class TestValidateWalletAddress:
    def test_valid(self):
        assert validate_wallet_address(WALLET_A) == WALLET_A

    def test_invalid_characters(self):
        with pytest.raises(ValueError, match="format"):
            validate_wallet_address("0OIl" * 10)

    def test_invalid_length(self):
        with pytest.raises(ValueError, match="length"):
            validate_wallet_address("abc")


class TestSolBalance:
    @patch("shift.integrations.solana.agent_kit.AsyncClient")
    async def test_get_sol_balance(self, mock_client_cls):
        client = MagicMock()
        client.get_balance = AsyncMock(return_value=MagicMock(value=2 * LAMPORTS_PER_SOL))
        client.close = AsyncMock()
        mock_client_cls.return_value = client

        kit = _kit()
        assert await kit.get_sol_balance() == 2.0
        mock_client_cls.assert_called_once_with("https://rpc.test.invalid")

        await kit.close()
        client.close.assert_awaited_once()
        assert kit.client is None

    @patch("shift.integrations.solana.agent_kit.AsyncClient")
    async def test_get_sol_balance_rpc_failure(self, mock_client_cls):
        client = MagicMock()
        client.get_balance = AsyncMock(side_effect=ConnectionError("refused"))
        mock_client_cls.return_value = client

        with pytest.raises(ExternalFetchError, match="refused"):
            await _kit().get_sol_balance()


class TestTokenBalances:
    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_aggregates_tokens_and_skips_empty(self, mock_get_session):
        accounts = {
            "jsonrpc": "2.0",
            "result": {
                "value": [
                    _token_account(BONK, 100.0),
                    _token_account(BONK, 50.0),
                    _token_account(MYSTERY, 0),
                    _token_account(MYSTERY, 3.0, decimals=9),
                ]
            },
        }
        assets = {
            "jsonrpc": "2.0",
            "result": [
                {"id": MYSTERY, "content": {"metadata": {"symbol": "MYST", "name": "Mystery"}}}
            ],
        }
        mock_session = MagicMock()
        mock_session.post.side_effect = [
            ACM(make_response(200, accounts)),
            ACM(make_response(200, assets)),
        ]
        mock_get_session.return_value = mock_session

        kit = _kit()
        kit.get_sol_balance = AsyncMock(return_value=1.5)

        balances = await kit.get_token_balance()

        assert balances.sol == 1.5
        by_mint = {t.token_address: t for t in balances.tokens}
        assert by_mint[BONK].balance == 150.0
        assert by_mint[BONK].symbol == "BONK"
        assert by_mint[MYSTERY].symbol == "MYST"
        assert by_mint[MYSTERY].decimals == 9

        method = mock_session.post.call_args_list[0].kwargs["json"]["method"]
        assert method == "getTokenAccountsByOwner"

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_metadata_goes_to_helius_when_keyed(self, mock_get_session):
        accounts = {"result": {"value": [_token_account(MYSTERY, 1.0)]}}
        assets = {"result": [{"id": MYSTERY, "content": {"metadata": {"symbol": "MYST"}}}]}
        mock_session = MagicMock()
        mock_session.post.side_effect = [
            ACM(make_response(200, accounts)),
            ACM(make_response(200, assets)),
        ]
        mock_get_session.return_value = mock_session

        kit = SolanaAgentKit(
            WALLET_A,
            "https://rpc.test.invalid",
            {"HELIUS_API_KEY": "hk", "HELIUS_RPC_URL": "https://helius.test"},
        )
        kit.get_sol_balance = AsyncMock(return_value=0.0)

        await kit.get_token_balance()

        rpc_call, das_call = mock_session.post.call_args_list
        assert rpc_call.args[0] == "https://rpc.test.invalid"
        assert das_call.args[0] == "https://helius.test/?api-key=hk"
        assert das_call.kwargs["json"]["method"] == "getAssetBatch"

    def test_metadata_falls_back_to_rpc_url_without_key(self):
        assert _kit().das_url == "https://rpc.test.invalid"

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_metadata_failure_falls_back_to_mint_prefix(self, mock_get_session):
        accounts = {"result": {"value": [_token_account(MYSTERY, 1.0)]}}
        mock_session = MagicMock()
        mock_session.post.side_effect = [
            ACM(make_response(200, accounts)),
            ACM(make_response(500, text="das unavailable")),
        ]
        mock_get_session.return_value = mock_session

        kit = _kit()
        kit.get_sol_balance = AsyncMock(return_value=0.0)

        balances = await kit.get_token_balance()

        assert balances.tokens[0].symbol == MYSTERY[:4]
        assert balances.tokens[0].name == "Unknown"

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_rpc_error_raises(self, mock_get_session):
        mock_session = MagicMock()
        mock_session.post.return_value = ACM(
            make_response(200, {"error": {"code": -32602, "message": "invalid param"}})
        )
        mock_get_session.return_value = mock_session

        kit = _kit()
        kit.get_sol_balance = AsyncMock(return_value=0.0)

        with pytest.raises(ExternalFetchError, match="invalid param"):
            await kit.get_token_balance()


class TestPythPrices:
    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_feed_lookup_matches_usd_quote(self, mock_get_session):
        feeds = [
            {"id": "sol-eur", "attributes": {"base": "SOL", "quote_currency": "EUR"}},
            {"id": "sol-usd", "attributes": {"base": "SOL", "quote_currency": "USD"}},
        ]
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, feeds))
        mock_get_session.return_value = mock_session

        assert await _kit().get_pyth_price_feed_id("SOL") == "sol-usd"
        args, kwargs = mock_session.get.call_args
        assert args[0] == "https://hermes.test/v2/price_feeds"
        assert kwargs["params"] == {"query": "SOL", "asset_type": "crypto"}

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_feed_lookup_not_found(self, mock_get_session):
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, []))
        mock_get_session.return_value = mock_session

        with pytest.raises(ExternalFetchError, match="No Pyth price feed"):
            await _kit().get_pyth_price_feed_id("SOL")

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_price_scaled_by_exponent(self, mock_get_session):
        latest = {"parsed": [{"price": {"price": "15012345678", "expo": -8}}]}
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, latest))
        mock_get_session.return_value = mock_session

        price = await _kit().get_pyth_price("sol-usd")

        assert price == pytest.approx(150.12345678)

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_malformed_price(self, mock_get_session):
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, {"parsed": []}))
        mock_get_session.return_value = mock_session

        with pytest.raises(ExternalFetchError, match="Malformed"):
            await _kit().get_pyth_price("sol-usd")


class TestJupiterPrice:
    @pytest.mark.parametrize(
        "body",
        [
            {"data": {BONK: {"price": "0.000021"}}},
            {BONK: {"usdPrice": 0.000021}},
        ],
    )
    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_price_response_shapes(self, mock_get_session, body):
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, body))
        mock_get_session.return_value = mock_session

        assert await _kit().fetch_token_price(BONK) == pytest.approx(0.000021)
        args, kwargs = mock_session.get.call_args
        assert args[0] == "https://jup.test/price"
        assert kwargs["params"] == {"ids": BONK}

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_missing_token(self, mock_get_session):
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(200, {"data": {}}))
        mock_get_session.return_value = mock_session

        with pytest.raises(ExternalFetchError, match="No price data"):
            await _kit().fetch_token_price(BONK)

    @patch("shift.integrations.solana.agent_kit.get_session")
    async def test_http_error(self, mock_get_session):
        mock_session = MagicMock()
        mock_session.get.return_value = ACM(make_response(503, text="maintenance"))
        mock_get_session.return_value = mock_session

        with pytest.raises(ExternalFetchError, match="503"):
            await _kit().fetch_token_price(BONK)


def test_agent_factory_binds_wallet_and_rpc():
    factory = create_agent_factory("https://rpc.custom", {"HELIUS_API_KEY": "k"})

    kit = factory(WALLET_A)

    assert kit.wallet_address == WALLET_A
    assert kit.rpc_url == "https://rpc.custom"
    assert kit.config["HELIUS_API_KEY"] == "k"


class TestSolanaTools:
    def test_tool_set(self):
        registry = create_solana_tools(_kit())
        assert set(registry.names()) == {
            "get_balance",
            "get_sol_price",
            "get_token_price",
            "get_wallet_address",
        }

    async def test_get_wallet_address(self):
        registry = create_solana_tools(_kit())
        result = await registry.call("get_wallet_address", {})
        assert result == {"address": WALLET_A, "success": True}

    async def test_get_sol_price_uses_pyth(self):
        kit = _kit()
        kit.get_pyth_price_feed_id = AsyncMock(return_value="sol-usd")
        kit.get_pyth_price = AsyncMock(return_value=151.2)

        result = await create_solana_tools(kit).call("get_sol_price", {})

        assert result["price_usd"] == 151.2
        kit.get_pyth_price.assert_awaited_once_with("sol-usd")

    async def test_get_token_price_validates_mint(self):
        kit = _kit()
        kit.fetch_token_price = AsyncMock(return_value=1.0)
        registry = create_solana_tools(kit)

        bad = await registry.call("get_token_price", {"token_address": "not-a-mint"})
        assert bad["success"] is False
        kit.fetch_token_price.assert_not_awaited()

        good = await registry.call("get_token_price", {"token_address": BONK})
        assert good["price_usd"] == 1.0

    async def test_get_balance_failure_is_error_result(self):
        kit = _kit()
        kit.get_token_balance = AsyncMock(side_effect=ExternalFetchError("rpc down"))

        result = await create_solana_tools(kit).call("get_balance", {})

        assert result["success"] is False
        assert "rpc down" in result["error"]
