"""Per-wallet Solana capability handle used by chat tools and portfolio queries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import base58
from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from ...config.settings import Settings
from ...core.errors import ExternalFetchError
from ...utils.http_client import get_session

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
LAMPORTS_PER_SOL = 1_000_000_000

# Well-known mints, used when the RPC has no metadata for a token
KNOWN_TOKENS: Dict[str, Dict[str, str]] = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": {"symbol": "USDC", "name": "USD Coin"},
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": {"symbol": "USDT", "name": "USDT"},
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": {"symbol": "BONK", "name": "Bonk"},
    "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm": {"symbol": "WIF", "name": "dogwifhat"},
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": {"symbol": "JUP", "name": "Jupiter"},
}


def validate_wallet_address(address: str) -> str:
    """Return ``address`` if it looks like a base58 Solana public key, else raise ValueError."""
    try:
        _ = base58.b58decode(address)
    except ValueError:
        raise ValueError("Invalid Solana address format")
    if not (32 <= len(address) <= 44):
        raise ValueError("Invalid Solana address length")
    return address


@dataclass
class TokenBalance:
    token_address: str
    symbol: str
    name: str
    balance: float
    decimals: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenAddress": self.token_address,
            "symbol": self.symbol,
            "name": self.name,
            "balance": self.balance,
            "decimals": self.decimals,
        }


@dataclass
class WalletBalances:
    sol: float
    tokens: List[TokenBalance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"sol": self.sol, "tokens": [t.to_dict() for t in self.tokens]}


class SolanaAgentKit:
    """Read-side Solana capabilities bound to one wallet and one RPC endpoint.

    Signing is never done here: the connected wallet signs in the client.
    """

    def __init__(self, wallet_address: str, rpc_url: str, config: Optional[Mapping[str, Any]] = None):
        self.wallet_address = wallet_address
        self.rpc_url = rpc_url
        self.config: Dict[str, Any] = dict(config or {})
        self.hermes_url = self.config.get("PYTH_HERMES_URL") or Settings.PYTH_HERMES_URL
        self.jupiter_price_url = self.config.get("JUPITER_PRICE_URL") or Settings.JUPITER_PRICE_URL
        # getAssetBatch is a DAS method, served by Helius rather than plain Solana RPC
        helius_key = self.config.get("HELIUS_API_KEY")
        helius_url = self.config.get("HELIUS_RPC_URL") or Settings.HELIUS_RPC_URL
        self.das_url = f"{helius_url}/?api-key={helius_key}" if helius_key else rpc_url
        # Created lazily so the client binds to the running loop
        self.client: Optional[AsyncClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def _get_client(self) -> AsyncClient:
        """Get or (re)create AsyncClient bound to current loop."""
        current_loop = asyncio.get_running_loop()
        if self.client is None or self._loop is None or self._loop is not current_loop:
            if self.client is not None and self._loop is not None and not self._loop.is_closed():
                await self.client.close()
            self.client = AsyncClient(self.rpc_url)
            self._loop = current_loop
        return self.client

    async def close(self) -> None:
        """Close the Solana client connection."""
        if self.client is not None:
            await self.client.close()
            logger.debug(f"Closed Solana client for {self.wallet_address}")
        self.client = None
        self._loop = None

    async def _rpc(self, method: str, params: Any, url: Optional[str] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        session = await get_session()
        async with session.post(
            url or self.rpc_url, json=payload, headers={"Content-Type": "application/json"}
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ExternalFetchError(f"RPC {method} failed ({response.status}): {error_text}")
            data = await response.json()
        if data.get("error"):
            raise ExternalFetchError(f"RPC {method} error: {data['error']}")
        return data.get("result")

    async def get_sol_balance(self) -> float:
        try:
            client = await self._get_client()
            response = await client.get_balance(Pubkey.from_string(self.wallet_address))
        except ValueError as e:
            raise ExternalFetchError(f"Invalid wallet address {self.wallet_address}: {e}")
        except Exception as e:
            raise ExternalFetchError(f"Failed to retrieve SOL balance: {e}")
        if response.value is None:
            raise ExternalFetchError("Failed to retrieve SOL balance from RPC")
        return response.value / LAMPORTS_PER_SOL

    async def _token_metadata(self, mints: List[str]) -> Dict[str, Dict[str, str]]:
        """Resolve symbol/name for mints via the DAS getAssetBatch method (Helius RPC)."""
        meta: Dict[str, Dict[str, str]] = {m: dict(KNOWN_TOKENS[m]) for m in mints if m in KNOWN_TOKENS}
        unknown = [m for m in mints if m not in meta]
        if not unknown:
            return meta
        try:
            assets = await self._rpc("getAssetBatch", {"ids": unknown}, url=self.das_url)
        except ExternalFetchError as e:
            logger.warning(f"Token metadata lookup failed, using mint prefixes: {e}")
            assets = []
        for asset in assets or []:
            if not isinstance(asset, Mapping):
                continue
            metadata = (asset.get("content") or {}).get("metadata") or {}
            mint = asset.get("id")
            if mint:
                meta[mint] = {
                    "symbol": metadata.get("symbol") or mint[:4],
                    "name": metadata.get("name") or "Unknown",
                }
        for mint in unknown:
            meta.setdefault(mint, {"symbol": mint[:4], "name": "Unknown"})
        return meta

    async def get_token_balance(self) -> WalletBalances:
        """SOL balance plus every SPL token with a non-zero balance."""
        sol = await self.get_sol_balance()

        result = await self._rpc(
            "getTokenAccountsByOwner",
            [self.wallet_address, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
        )
        holdings: Dict[str, Dict[str, Any]] = {}
        for account in (result or {}).get("value", []):
            try:
                info = account["account"]["data"]["parsed"]["info"]
                amount = info["tokenAmount"]
                ui_amount = float(amount.get("uiAmount") or 0)
            except (KeyError, TypeError, ValueError) as parse_error:
                logger.warning(f"Failed to parse token account: {parse_error}")
                continue
            if ui_amount <= 0:
                continue
            mint = info["mint"]
            entry = holdings.setdefault(mint, {"balance": 0.0, "decimals": int(amount.get("decimals", 0))})
            entry["balance"] += ui_amount

        meta = await self._token_metadata(list(holdings))
        tokens = [
            TokenBalance(
                token_address=mint,
                symbol=meta[mint]["symbol"],
                name=meta[mint]["name"],
                balance=entry["balance"],
                decimals=entry["decimals"],
            )
            for mint, entry in holdings.items()
        ]
        logger.info(f"Retrieved balances for {self.wallet_address}: {sol} SOL + {len(tokens)} tokens")
        return WalletBalances(sol=sol, tokens=tokens)

    async def get_pyth_price_feed_id(self, symbol: str) -> str:
        """Find the Pyth price feed id for ``symbol``/USD."""
        session = await get_session()
        params = {"query": symbol, "asset_type": "crypto"}
        async with session.get(f"{self.hermes_url}/v2/price_feeds", params=params) as response:
            if response.status != 200:
                raise ExternalFetchError(f"Pyth price feed lookup failed ({response.status})")
            feeds = await response.json()

        wanted = symbol.upper()
        for feed in feeds or []:
            attrs = feed.get("attributes") or {}
            if attrs.get("base", "").upper() == wanted and attrs.get("quote_currency", "").upper() == "USD":
                return str(feed["id"])
        raise ExternalFetchError(f"No Pyth price feed found for {symbol}")

    async def get_pyth_price(self, feed_id: str) -> float:
        """Latest price for a Pyth feed, scaled by its exponent."""
        session = await get_session()
        params = {"ids[]": feed_id}
        async with session.get(f"{self.hermes_url}/v2/updates/price/latest", params=params) as response:
            if response.status != 200:
                raise ExternalFetchError(f"Pyth price request failed ({response.status})")
            data = await response.json()
        try:
            quote = data["parsed"][0]["price"]
            return int(quote["price"]) * (10 ** int(quote["expo"]))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ExternalFetchError(f"Malformed Pyth price response: {e}")

    async def fetch_token_price(self, token_address: str) -> float:
        """Live USD price for a token mint from the Jupiter Price API."""
        session = await get_session()
        async with session.get(
            f"{self.jupiter_price_url}/price", params={"ids": token_address}
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ExternalFetchError(f"Jupiter price API error {response.status}: {error_text}")
            data = await response.json()

        prices = data.get("data", data) if isinstance(data, Mapping) else {}
        entry = prices.get(token_address) if isinstance(prices, Mapping) else None
        if not isinstance(entry, Mapping):
            raise ExternalFetchError(f"No price data found for token {token_address}")
        price = entry.get("usdPrice", entry.get("price"))
        try:
            return float(price)
        except (TypeError, ValueError):
            raise ExternalFetchError(f"Invalid price for token {token_address}: {price!r}")


def create_agent_factory(rpc_url: Optional[str] = None, config: Optional[Mapping[str, Any]] = None):
    """Return a callable building a SolanaAgentKit for a wallet key."""

    def factory(wallet_key: str) -> SolanaAgentKit:
        return SolanaAgentKit(wallet_key, rpc_url or Settings.RPC_URL, config)

    return factory
