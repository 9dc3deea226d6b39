"""API route registration helpers."""

from fastapi import FastAPI

from . import chat, health, portfolio, sessions


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the provided FastAPI instance."""

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)
    app.include_router(portfolio.router)


__all__ = ["register_routes"]
