"""Per-wallet session registry.

A Session bundles one agent kit with the tool registry derived from it. Sessions
live in process memory and are replaced whole on re-initialization.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Set

from ..integrations.solana.agent_kit import SolanaAgentKit
from ..integrations.solana.solana_tools import create_solana_tools
from .errors import MissingParameter, SessionNotFound
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

AgentFactory = Callable[[str], SolanaAgentKit]
ToolFactory = Callable[[SolanaAgentKit], ToolRegistry]


@dataclass(frozen=True)
class Session:
    wallet_key: str
    agent: SolanaAgentKit
    tools: ToolRegistry
    created_at: float = field(default_factory=time.time)


def _normalize_wallet_key(wallet_key: Optional[str]) -> str:
    if isinstance(wallet_key, str) and wallet_key.strip():
        return wallet_key.strip()
    raise MissingParameter("publicKey")


class SessionRegistry:
    """Mapping from wallet public key to its Session."""

    def __init__(
        self,
        agent_factory: AgentFactory,
        tool_factory: ToolFactory = create_solana_tools,
        max_sessions: int = 0,
    ):
        self._agent_factory = agent_factory
        self._tool_factory = tool_factory
        # 0 keeps every session for the life of the process
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
        self._closing: Set[asyncio.Task] = set()
        # id(session) -> calls currently running against it
        self._holds: Dict[int, int] = {}

    def init(self, wallet_key: Optional[str]) -> Session:
        """Create a session for ``wallet_key``, replacing any existing one."""
        key = _normalize_wallet_key(wallet_key)

        logger.info(f"Creating agent kit for {key}")
        agent = self._agent_factory(key)
        session = Session(wallet_key=key, agent=agent, tools=self._tool_factory(agent))

        replaced = self._sessions.pop(key, None)
        self._sessions[key] = session
        if replaced is not None:
            logger.info(f"Replaced existing session for {key}")
            self._retire(replaced)
        self._evict_overflow()

        logger.info(f"Session initialized for {key} ({len(session.tools)} tools)")
        return session

    def _evict_overflow(self) -> None:
        if not self.max_sessions:
            return
        while len(self._sessions) > self.max_sessions:
            evicted_key, evicted = self._sessions.popitem(last=False)
            logger.info(f"Evicted oldest session {evicted_key} (cap {self.max_sessions})")
            self._retire(evicted)

    def _retire(self, session: Session) -> None:
        """Close a dropped session's RPC client, or leave it to the last call still holding it."""
        if id(session) in self._holds:
            logger.debug(f"Session for {session.wallet_key} still in use; closing after release")
            return
        self._close_later(session)

    def _close_later(self, session: Session) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(session.agent.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def lookup(self, wallet_key: Optional[str]) -> Optional[Session]:
        if not wallet_key:
            return None
        return self._sessions.get(wallet_key.strip())

    def require(self, wallet_key: Optional[str]) -> Session:
        key = _normalize_wallet_key(wallet_key)
        session = self._sessions.get(key)
        if session is None:
            logger.warning(f"Session not found for {key}")
            raise SessionNotFound(key)
        return session

    @contextmanager
    def hold(self, session: Session) -> Iterator[Session]:
        """Keep ``session``'s agent open while a call runs, even if the wallet re-inits."""
        sid = id(session)
        self._holds[sid] = self._holds.get(sid, 0) + 1
        try:
            yield session
        finally:
            remaining = self._holds.pop(sid) - 1
            if remaining:
                self._holds[sid] = remaining
            elif self._sessions.get(session.wallet_key) is not session:
                self._close_later(session)

    def remove(self, wallet_key: Optional[str]) -> bool:
        session = self._sessions.pop(_normalize_wallet_key(wallet_key), None)
        if session is None:
            return False
        self._retire(session)
        return True

    def __contains__(self, wallet_key: object) -> bool:
        return wallet_key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self) -> None:
        """Close every session's RPC client and forget all sessions."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        for session in sessions:
            try:
                await session.agent.close()
            except Exception as e:
                logger.warning(f"Failed to close agent for {session.wallet_key}: {e}")
