"""Health endpoints."""

from __future__ import annotations

import importlib.metadata

from fastapi import APIRouter, Depends

from ...config.settings import Settings
from ...core.gateway import Gateway
from ..dependencies import get_gateway

router = APIRouter(prefix="", tags=["health"])


def _package_version() -> str:
    try:
        return importlib.metadata.version("shift-gateway")
    except importlib.metadata.PackageNotFoundError:  # pragma: no cover - dev installs
        return "0.0.0"


@router.get("/health", summary="API health status")
async def health_status(gateway: Gateway = Depends(get_gateway)) -> dict[str, object]:
    return {
        "status": "ok",
        "version": _package_version(),
        "llm_provider": Settings.LLM_PROVIDER,
        "sessions": len(gateway.registry),
        "price_cache": {
            "running": gateway.price_cache.running,
            "symbols": sorted(gateway.price_cache.snapshot()),
        },
    }


__all__ = ["router"]
