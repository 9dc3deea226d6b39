"""Application settings resolved from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Floor for the watchlist refresh interval
MIN_PRICE_REFRESH_SECONDS = 60.0


def _env(key: str) -> Optional[str]:
    """Stripped value of an environment variable; blank counts as unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    return raw.strip() or None


def _env_str(key: str, default: str = "") -> str:
    value = _env(key)
    return default if value is None else value


def _env_int(key: str, default: int) -> int:
    value = _env(key)
    try:
        return default if value is None else int(value)
    except ValueError:
        logger.warning(f"{key}={value!r} is not an integer; using {default}")
        return default


def _env_float(key: str, default: float) -> float:
    value = _env(key)
    try:
        return default if value is None else float(value)
    except ValueError:
        logger.warning(f"{key}={value!r} is not a number; using {default}")
        return default


def _env_list(key: str, default: List[str]) -> List[str]:
    value = _env(key)
    if value is None:
        return list(default)
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings:
    """Gateway settings resolved from environment variables."""

    LLM_PROVIDER: str = "openai"

    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"

    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_BASE_URL: Optional[str] = "https://api.anthropic.com"
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-latest"

    HELIUS_API_KEY: Optional[str] = None
    HELIUS_RPC_URL: str = "https://mainnet.helius-rpc.com"
    RPC_URL: str = "https://api.mainnet-beta.solana.com"
    PYTH_HERMES_URL: str = "https://hermes.pyth.network"
    JUPITER_PRICE_URL: str = "https://api.jup.ag/price/v3"
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"

    SHIFT_MAX_STEPS: int = 10
    SHIFT_TEMPERATURE: float = 0.7
    SHIFT_PRICE_REFRESH_SECONDS: float = 3600.0
    SHIFT_MAX_SESSIONS: int = 0

    SHIFT_API_HOST: str = "0.0.0.0"
    SHIFT_API_PORT: int = 3000
    SHIFT_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    LOG_LEVEL: str = "INFO"

    @classmethod
    def refresh_from_env(cls) -> None:
        """Re-read every setting; tests call this after patching os.environ."""
        cls.LLM_PROVIDER = _env_str("LLM_PROVIDER", "openai").lower()

        cls.OPENAI_API_KEY = _env_str("OPENAI_API_KEY")
        cls.OPENAI_BASE_URL = _env("OPENAI_BASE_URL")
        cls.OPENAI_MODEL = _env_str("OPENAI_MODEL", "gpt-4o-mini")

        cls.ANTHROPIC_API_KEY = _env("ANTHROPIC_API_KEY")
        cls.ANTHROPIC_BASE_URL = _env_str("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
        cls.ANTHROPIC_MODEL = _env_str("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")

        cls.HELIUS_API_KEY = _env("HELIUS_API_KEY")
        cls.HELIUS_RPC_URL = _env_str("HELIUS_RPC_URL", "https://mainnet.helius-rpc.com")
        cls.RPC_URL = _env_str("RPC_URL", "https://api.mainnet-beta.solana.com")
        cls.PYTH_HERMES_URL = _env_str("PYTH_HERMES_URL", "https://hermes.pyth.network")
        cls.JUPITER_PRICE_URL = _env_str("JUPITER_PRICE_URL", "https://api.jup.ag/price/v3")
        cls.COINGECKO_BASE_URL = _env_str(
            "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"
        )

        cls.SHIFT_MAX_STEPS = max(1, _env_int("SHIFT_MAX_STEPS", 10))
        cls.SHIFT_TEMPERATURE = _env_float("SHIFT_TEMPERATURE", 0.7)
        cls.SHIFT_PRICE_REFRESH_SECONDS = max(
            MIN_PRICE_REFRESH_SECONDS, _env_float("SHIFT_PRICE_REFRESH_SECONDS", 3600.0)
        )
        cls.SHIFT_MAX_SESSIONS = max(0, _env_int("SHIFT_MAX_SESSIONS", 0))

        cls.SHIFT_API_HOST = _env_str("SHIFT_API_HOST", "0.0.0.0")
        # PORT is what most hosting platforms inject
        cls.SHIFT_API_PORT = _env_int("SHIFT_API_PORT", _env_int("PORT", 3000))
        cls.SHIFT_CORS_ORIGINS = _env_list("SHIFT_CORS_ORIGINS", ["http://localhost:5173"])

        cls.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> List[str]:
        """Return a list of configuration problems (empty when the gateway can start)."""
        errors: List[str] = []

        provider = cls.LLM_PROVIDER
        if provider == "openai":
            if not cls.OPENAI_API_KEY:
                errors.append("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        elif provider == "anthropic":
            if not cls.ANTHROPIC_API_KEY:
                errors.append("ANTHROPIC_API_KEY is required when LLM_PROVIDER=anthropic")
        elif provider == "openai_compat":
            if not cls.OPENAI_BASE_URL:
                errors.append("OPENAI_BASE_URL is required when LLM_PROVIDER=openai_compat")
        else:
            errors.append(f"Unknown LLM_PROVIDER '{provider}'")

        if not cls.HELIUS_API_KEY:
            errors.append("HELIUS_API_KEY is required")
        if not cls.RPC_URL:
            errors.append("RPC_URL is required")

        if errors:
            logger.error("Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")

        return errors

    @classmethod
    def log_config(cls) -> None:
        if cls.LLM_PROVIDER == "anthropic":
            model, endpoint = cls.ANTHROPIC_MODEL, cls.ANTHROPIC_BASE_URL
        else:
            model, endpoint = cls.OPENAI_MODEL, cls.OPENAI_BASE_URL or "api.openai.com"
        cap = cls.SHIFT_MAX_SESSIONS or "unbounded"
        logger.info(f"LLM {cls.LLM_PROVIDER}:{model} via {endpoint}")
        logger.info(
            f"Agent loop: {cls.SHIFT_MAX_STEPS} steps max, temperature {cls.SHIFT_TEMPERATURE}"
        )
        logger.info(f"Solana RPC {cls.RPC_URL}; session cap {cap}")
        logger.info(
            f"Prices refresh every {cls.SHIFT_PRICE_REFRESH_SECONDS:.0f}s; "
            f"CORS {', '.join(cls.SHIFT_CORS_ORIGINS)}"
        )


# Populate class attributes on import
Settings.refresh_from_env()


_SILENCED = logging.CRITICAL + 10
_CHATTY_LOGGERS = ("aiohttp", "solana", "httpx", "uvicorn.access")


def setup_logging(level_override: Optional[str] = None) -> None:
    """Configure root logging from LOG_LEVEL (or an explicit override such as ``--log-level``).

    ``OFF``/``NONE``/``NO`` silence everything. Third-party HTTP and RPC loggers
    never go below INFO.
    """
    name = (level_override or Settings.LOG_LEVEL or "INFO").upper()
    level = _SILENCED if name in ("OFF", "NONE", "NO") else getattr(logging, name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )
    logging.getLogger("shift").setLevel(level)
    for chatty in _CHATTY_LOGGERS:
        logging.getLogger(chatty).setLevel(max(level, logging.INFO))
