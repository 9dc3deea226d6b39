"""SHIFT gateway command line: run the API server or inspect configuration."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config.settings import Settings, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SHIFT Solana chat gateway")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP gateway")
    serve_parser.add_argument("--host", default=None, help="Bind address (SHIFT_API_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (SHIFT_API_PORT)")
    serve_parser.add_argument("--log-level", default=None, help="Log level (LOG_LEVEL)")

    subparsers.add_parser("config", help="Show resolved configuration and problems")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        args = parser.parse_args(["serve"])

    setup_logging(getattr(args, "log_level", None))

    if args.command == "config":
        from .commands.config import show_config

        return show_config()

    if args.command == "serve":
        from .commands.api import run_api_server

        host = args.host or Settings.SHIFT_API_HOST
        port = args.port or Settings.SHIFT_API_PORT
        log_level = (args.log_level or Settings.LOG_LEVEL or "info").lower()
        return await run_api_server(host, port, log_level=log_level)

    parser.print_help()
    return 1


def app() -> None:
    """Entry point for the CLI application."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nShutting down")
        sys.exit(0)


if __name__ == "__main__":
    app()
