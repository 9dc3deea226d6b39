"""Pooled aiohttp session shared by every outbound call (LLM, RPC, price feeds)."""

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

USER_AGENT = "SHIFT-Gateway/0.1.0"

# Streamed completions can hold a connection for a long time
POOL_LIMIT = 100
POOL_LIMIT_PER_HOST = 20


def _default_timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=60, connect=10, sock_read=30)


class SharedHTTPClient:
    """Owns one ClientSession and rebuilds it whenever the running loop changes.

    Test runners and uvicorn reloads start fresh loops; a session created on a
    previous loop cannot be reused there.
    """

    _instance: Optional["SharedHTTPClient"] = None

    def __init__(self, timeout: Optional[aiohttp.ClientTimeout] = None):
        self.timeout = timeout or _default_timeout()
        self._session: Optional[aiohttp.ClientSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    async def get_instance(cls) -> "SharedHTTPClient":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _usable_on(self, loop: asyncio.AbstractEventLoop) -> bool:
        return self._session is not None and not self._session.closed and self._loop is loop

    async def get_session(self) -> aiohttp.ClientSession:
        loop = asyncio.get_running_loop()
        if self._usable_on(loop):
            return self._session

        await self._discard()
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=POOL_LIMIT,
                limit_per_host=POOL_LIMIT_PER_HOST,
                ttl_dns_cache=300,
                keepalive_timeout=30,
            ),
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            trust_env=True,
        )
        self._loop = loop
        logger.info("Opened shared HTTP session")
        return self._session

    async def _discard(self) -> None:
        session, self._session, self._loop = self._session, None, None
        if session is None or session.closed:
            return
        try:
            await session.close()
        except RuntimeError as exc:
            # Bound to a loop that is already gone
            logger.debug(f"Dropped stale HTTP session: {exc}")

    async def close(self) -> None:
        had_session = self._session is not None
        await self._discard()
        if had_session:
            logger.info("Closed shared HTTP session")


async def get_http_client() -> SharedHTTPClient:
    return await SharedHTTPClient.get_instance()


async def get_session() -> aiohttp.ClientSession:
    """Session for the running loop; callers must not close it."""
    client = await get_http_client()
    return await client.get_session()


async def cleanup_http_client() -> None:
    """Close the shared session and forget the client (gateway shutdown, test teardown)."""
    client, SharedHTTPClient._instance = SharedHTTPClient._instance, None
    if client is not None:
        await client.close()
