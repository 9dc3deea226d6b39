"""Configuration inspection command."""

from __future__ import annotations

import sys

from ..config.settings import Settings


def _mask(value: str | None) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def show_config() -> int:
    """Print the resolved configuration; exit non-zero when it cannot start the gateway."""

    Settings.refresh_from_env()
    rows = [
        ("LLM provider", Settings.LLM_PROVIDER),
        ("OpenAI model", Settings.OPENAI_MODEL),
        ("OpenAI base URL", Settings.OPENAI_BASE_URL or "default"),
        ("OpenAI API key", _mask(Settings.OPENAI_API_KEY)),
        ("Anthropic model", Settings.ANTHROPIC_MODEL),
        ("Anthropic API key", _mask(Settings.ANTHROPIC_API_KEY)),
        ("Helius API key", _mask(Settings.HELIUS_API_KEY)),
        ("Solana RPC", Settings.RPC_URL),
        ("Max agent steps", str(Settings.SHIFT_MAX_STEPS)),
        ("Temperature", str(Settings.SHIFT_TEMPERATURE)),
        ("Price refresh (s)", f"{Settings.SHIFT_PRICE_REFRESH_SECONDS:.0f}"),
        ("Session cap", str(Settings.SHIFT_MAX_SESSIONS or "unbounded")),
        ("API bind", f"{Settings.SHIFT_API_HOST}:{Settings.SHIFT_API_PORT}"),
        ("CORS origins", ", ".join(Settings.SHIFT_CORS_ORIGINS)),
    ]
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        print(f"{label.ljust(width)}  {value}")

    problems = Settings.validate()
    if problems:
        print("\nConfiguration problems:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        return 1

    print("\nConfiguration OK")
    return 0


__all__ = ["show_config"]
