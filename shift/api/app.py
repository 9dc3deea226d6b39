"""FastAPI application factory for the SHIFT gateway."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config.settings import Settings
from ..core.errors import ShiftError
from ..core.gateway import Gateway, build_gateway, shutdown_gateway
from .middleware.request_id import RequestIDMiddleware
from .routes import register_routes

logger = logging.getLogger(__name__)


def create_app(
    gateway: Optional[Gateway] = None,
    extra_app_kwargs: dict[str, Any] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When no gateway is supplied one is built from ``Settings`` at startup, after the
    environment has been validated.
    """

    # Reload settings in case env vars changed before app startup
    Settings.refresh_from_env()

    app_kwargs: dict[str, Any] = {
        "title": "SHIFT Gateway API",
        "version": "0.1.0",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
    }
    if extra_app_kwargs:
        app_kwargs.update(extra_app_kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.gateway is None:
            problems = Settings.validate()
            if problems:
                raise RuntimeError("Missing required configuration: " + "; ".join(problems))
            app.state.gateway = build_gateway(Settings)
        Settings.log_config()
        app.state.gateway.start()
        logger.info(
            "Starting SHIFT API on %s:%s", Settings.SHIFT_API_HOST, Settings.SHIFT_API_PORT
        )
        try:
            yield
        finally:
            logger.info("Shutting down SHIFT API")
            await shutdown_gateway(app.state.gateway)

    app = FastAPI(lifespan=lifespan, **app_kwargs)
    app.state.gateway = gateway

    cors_origins = Settings.SHIFT_CORS_ORIGINS
    # Cannot use credentials with a wildcard origin
    allow_creds = "*" not in cors_origins
    if not allow_creds:
        logger.warning("CORS: Wildcard origins detected. Credentials disabled.")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_creds,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(ShiftError)
    async def _shift_error(request: Request, exc: ShiftError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    register_routes(app)

    return app


__all__ = ["create_app"]
