"""Shared dependency helpers for the FastAPI surface."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..core.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
    """Resolve the gateway attached to the running application."""

    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway is not ready",
        )
    return gateway


__all__ = ["get_gateway"]
