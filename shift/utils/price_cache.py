"""Watchlist price cache refreshed periodically from CoinGecko.

Reads never touch the network: ``get_price`` returns whatever the last successful
refresh stored. A background task refreshes the whole table on a fixed interval;
a failed refresh keeps the previous table.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..config.settings import Settings
from ..core.errors import ExternalFetchError
from .http_client import get_session

logger = logging.getLogger(__name__)

# Watchlist symbol -> CoinGecko coin id
WATCHLIST_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
}

# Refresh every hour to stay within CoinGecko's public rate limits
CACHE_DURATION = 60 * 60

PriceFetcher = Callable[[], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True)
class PriceCacheEntry:
    """Last known USD quote for one watchlist symbol."""

    symbol: str
    usd_price: float
    usd_24h_change: float
    last_updated: float

    @property
    def age_seconds(self) -> float:
        return time.time() - self.last_updated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "usd": self.usd_price,
            "usd_24h_change": self.usd_24h_change,
            "last_updated": self.last_updated,
        }


async def fetch_coingecko_prices() -> Mapping[str, Any]:
    """Fetch USD price and 24h change for every watchlist coin in one request."""
    session = await get_session()
    url = f"{Settings.COINGECKO_BASE_URL}/simple/price"
    params = {
        "ids": ",".join(WATCHLIST_IDS.values()),
        "vs_currencies": "usd",
        "include_24hr_change": "true",
    }
    async with session.get(url, params=params) as response:
        if response.status != 200:
            error_text = await response.text()
            raise ExternalFetchError(f"CoinGecko error {response.status}: {error_text}")
        return await response.json()


class PriceCache:
    """In-memory watchlist price table with a start/stop refresh lifecycle."""

    def __init__(self, fetcher: Optional[PriceFetcher] = None, interval: float = CACHE_DURATION):
        self._fetcher: PriceFetcher = fetcher or fetch_coingecko_prices
        self.interval = interval
        self._cache: Dict[str, PriceCacheEntry] = {}
        self._task: Optional[asyncio.Task] = None

    def get_price(self, symbol: str) -> Optional[PriceCacheEntry]:
        """Return the cached entry for ``symbol`` or None if never populated."""
        return self._cache.get(symbol.upper())

    def snapshot(self) -> Dict[str, PriceCacheEntry]:
        return dict(self._cache)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> bool:
        """Run one refresh attempt; returns True if the table was replaced."""
        try:
            logger.info("Updating price cache...")
            data = await self._fetcher()
            logger.debug(f"Raw CoinGecko response: {data}")
            entries = self._parse(data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to update price cache: {e}")
            return False

        if entries is None:
            logger.error(f"Invalid response format from CoinGecko: {data}")
            return False

        # Swap the whole table so readers never see a partial update
        self._cache = entries
        logger.info(
            "Price cache updated: %s",
            ", ".join(f"{s}=${e.usd_price}" for s, e in entries.items()),
        )
        return True

    def _parse(self, data: Any) -> Optional[Dict[str, PriceCacheEntry]]:
        if not isinstance(data, Mapping):
            return None

        now = time.time()
        entries: Dict[str, PriceCacheEntry] = {}
        for symbol, coin_id in WATCHLIST_IDS.items():
            quote = data.get(coin_id)
            if not isinstance(quote, Mapping):
                return None
            try:
                usd = float(quote["usd"])
                change = float(quote.get("usd_24h_change") or 0.0)
            except (KeyError, TypeError, ValueError):
                return None
            if not (math.isfinite(usd) and math.isfinite(change)) or usd < 0:
                return None
            entries[symbol] = PriceCacheEntry(
                symbol=symbol, usd_price=usd, usd_24h_change=change, last_updated=now
            )
        return entries

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """Start the background refresher: one refresh now, then every interval."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="price-cache-refresh")
        logger.info(f"Price cache refresher started (interval {self.interval:.0f}s)")

    async def stop(self) -> None:
        """Cancel the background refresher and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Price cache refresher stopped")


__all__ = [
    "CACHE_DURATION",
    "PriceCache",
    "PriceCacheEntry",
    "WATCHLIST_IDS",
    "fetch_coingecko_prices",
]
