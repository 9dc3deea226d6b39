"""Portfolio aggregation: wallet balances priced in USD plus the cached watchlist."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, List

from pydantic import BaseModel, ConfigDict, Field

from ..integrations.solana.agent_kit import SolanaAgentKit, TokenBalance
from ..utils.price_cache import WATCHLIST_IDS, PriceCache
from .errors import ExternalFetchError, ShiftError
from .session import Session, SessionRegistry

logger = logging.getLogger(__name__)

# Tokens valued 1:1 against USD
STABLE_ASSETS: FrozenSet[str] = frozenset({"USDC", "USDT"})

BALANCE_DECIMALS = 8
USD_DECIMALS = 2


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TokenHolding(_CamelModel):
    token: str
    symbol: str
    balance: float
    usd_value: float = Field(alias="usdValue")


class WatchlistQuote(_CamelModel):
    price: float = 0.0
    change: float = 0.0


class PortfolioSnapshot(_CamelModel):
    sol: float
    sol_price: float = Field(alias="solPrice")
    sol_usd_value: float = Field(alias="solUsdValue")
    tokens: List[TokenHolding] = Field(default_factory=list)
    watchlist: Dict[str, WatchlistQuote] = Field(default_factory=dict)


class PortfolioAggregator:
    def __init__(
        self,
        registry: SessionRegistry,
        price_cache: PriceCache,
        stable_assets: FrozenSet[str] = STABLE_ASSETS,
    ):
        self.registry = registry
        self.price_cache = price_cache
        self.stable_assets = stable_assets

    async def _price_token(self, agent: SolanaAgentKit, token: TokenBalance) -> TokenHolding:
        usd_value = 0.0
        if token.symbol.upper() in self.stable_assets:
            usd_value = token.balance
        else:
            try:
                price = await agent.fetch_token_price(token.token_address)
                usd_value = token.balance * price
                logger.debug(f"Price for {token.symbol}: {price}")
            except Exception as err:
                logger.warning(f"Failed to get price for {token.symbol}: {err}")

        return TokenHolding(
            token=token.symbol,
            symbol=token.name,
            balance=round(token.balance, BALANCE_DECIMALS),
            usd_value=round(usd_value, USD_DECIMALS),
        )

    def _watchlist(self) -> Dict[str, WatchlistQuote]:
        quotes: Dict[str, WatchlistQuote] = {}
        for symbol in WATCHLIST_IDS:
            entry = self.price_cache.get_price(symbol)
            if entry is None:
                quotes[symbol] = WatchlistQuote()
            else:
                quotes[symbol] = WatchlistQuote(price=entry.usd_price, change=entry.usd_24h_change)
        return quotes

    async def get_portfolio(self, wallet_key: str) -> PortfolioSnapshot:
        session = self.registry.require(wallet_key)
        logger.info(f"Portfolio request for {session.wallet_key}")
        with self.registry.hold(session):
            return await self._snapshot(session)

    async def _snapshot(self, session: Session) -> PortfolioSnapshot:
        agent = session.agent

        try:
            balances = await agent.get_token_balance()
            feed_id = await agent.get_pyth_price_feed_id("SOL")
            sol_price = await agent.get_pyth_price(feed_id)
        except ShiftError:
            raise
        except Exception as e:
            raise ExternalFetchError(f"Failed to load wallet data: {e}")

        sol_balance = round(balances.sol, BALANCE_DECIMALS)
        sol_usd_value = round(sol_balance * sol_price, USD_DECIMALS)

        # No ordering between tokens: price them concurrently
        tokens = await asyncio.gather(*(self._price_token(agent, t) for t in balances.tokens))

        snapshot = PortfolioSnapshot(
            sol=sol_balance,
            sol_price=sol_price,
            sol_usd_value=sol_usd_value,
            tokens=list(tokens),
            watchlist=self._watchlist(),
        )
        logger.debug(f"Portfolio for {session.wallet_key}: {snapshot.model_dump(by_alias=True)}")
        return snapshot
