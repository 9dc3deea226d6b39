"""Outward-facing facade over sessions, chat, portfolio and prices."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional

from ..config.prompts import SOLANA_AGENT_PROMPT
from ..config.settings import Settings
from ..integrations.solana.agent_kit import create_agent_factory
from ..utils.http_client import cleanup_http_client
from ..utils.price_cache import PriceCache, PriceCacheEntry
from .chat import ChatPipeline
from .errors import MissingParameter
from .llm_provider import LLMProvider, create_llm_provider
from .portfolio import PortfolioAggregator, PortfolioSnapshot
from .session import Session, SessionRegistry

logger = logging.getLogger(__name__)


class Gateway:
    def __init__(
        self,
        registry: SessionRegistry,
        pipeline: ChatPipeline,
        portfolio: PortfolioAggregator,
        price_cache: PriceCache,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.portfolio = portfolio
        self.price_cache = price_cache

    def start(self) -> None:
        """Start background work (the watchlist price refresher)."""
        self.price_cache.start()

    async def close(self) -> None:
        await self.price_cache.stop()
        await self.registry.close()
        await self.pipeline.llm.close()

    def init_session(self, wallet_key: Optional[str]) -> Session:
        return self.registry.init(wallet_key)

    async def chat(self, wallet_key: Optional[str], message: Optional[str]) -> str:
        return await self.pipeline.chat(wallet_key, message)

    def stream_chat(self, wallet_key: Optional[str], message: Optional[str]) -> AsyncIterator[str]:
        return self.pipeline.stream(wallet_key, message)

    async def get_portfolio(self, wallet_key: str) -> PortfolioSnapshot:
        return await self.portfolio.get_portfolio(wallet_key)

    def get_price(self, symbol: str) -> Optional[PriceCacheEntry]:
        return self.price_cache.get_price(symbol)

    def prepare_signature(self, wallet_key: Optional[str], transaction: Any) -> Dict[str, Any]:
        """Hand an unsigned transaction back to the client wallet for signing."""
        self.registry.require(wallet_key)
        if not transaction:
            raise MissingParameter("transaction")
        return {"transaction": transaction, "requiresSignature": True}


def build_gateway(
    settings: type = Settings,
    *,
    llm: Optional[LLMProvider] = None,
    price_cache: Optional[PriceCache] = None,
) -> Gateway:
    """Wire a Gateway from settings; collaborators can be injected for tests."""
    agent_factory = create_agent_factory(
        settings.RPC_URL,
        {
            "HELIUS_API_KEY": settings.HELIUS_API_KEY,
            "HELIUS_RPC_URL": settings.HELIUS_RPC_URL,
            "PYTH_HERMES_URL": settings.PYTH_HERMES_URL,
            "JUPITER_PRICE_URL": settings.JUPITER_PRICE_URL,
        },
    )
    registry = SessionRegistry(agent_factory, max_sessions=settings.SHIFT_MAX_SESSIONS)
    pipeline = ChatPipeline(
        registry,
        llm or create_llm_provider(settings),
        system_prompt=SOLANA_AGENT_PROMPT,
        max_steps=settings.SHIFT_MAX_STEPS,
        temperature=settings.SHIFT_TEMPERATURE,
    )
    cache = price_cache or PriceCache(interval=settings.SHIFT_PRICE_REFRESH_SECONDS)
    return Gateway(registry, pipeline, PortfolioAggregator(registry, cache), cache)


async def shutdown_gateway(gateway: Gateway) -> None:
    """Close the gateway and the shared HTTP client it used."""
    await gateway.close()
    await cleanup_http_client()
