import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Who a tool call acts for and at which step of the exchange it was issued."""

    wallet_key: Optional[str] = None
    step: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


ToolCall = Callable[[Dict[str, Any], Optional[ToolContext]], Awaitable[Dict[str, Any]]]


class Middleware(Protocol):
    def wrap(self, name: str, call_next: ToolCall) -> ToolCall:  # pragma: no cover - interface
        ...


def chain(name: str, innermost: ToolCall, middlewares: Iterable[Middleware]) -> ToolCall:
    """Compose middlewares so the first one listed runs outermost."""
    call = innermost
    for mw in reversed(list(middlewares)):
        call = mw.wrap(name, call)
    return call


class LoggingMiddleware:
    """Logs start, duration and failure of each tool call, tagged with the wallet."""

    def __init__(self, include_args: bool = False, skip: Optional[set[str]] = None):
        self.include_args = include_args
        self.skip = skip or set()

    def wrap(self, name: str, call_next: ToolCall) -> ToolCall:
        if name in self.skip:
            return call_next

        async def _logged(args: Dict[str, Any], ctx: Optional[ToolContext]) -> Dict[str, Any]:
            tag = f"{name} wallet={ctx.wallet_key if ctx else None}"
            if ctx is not None:
                tag += f" step={ctx.step}"
            logger.debug(f"Tool {tag} args={args}" if self.include_args else f"Tool {tag}")

            started = time.perf_counter()
            try:
                result = await call_next(args, ctx)
            except Exception as e:
                logger.error(f"Tool {tag} failed after {time.perf_counter() - started:.3f}s: {e}")
                raise
            logger.debug(f"Tool {tag} done in {time.perf_counter() - started:.3f}s")
            return result

        return _logged
