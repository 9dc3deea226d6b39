"""Portfolio and price endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ...core.gateway import Gateway
from ..dependencies import get_gateway
from ..schemas import PriceEntryResponse

router = APIRouter(prefix="/api", tags=["portfolio"])


@router.get("/portfolio/{public_key}")
async def get_portfolio(
    public_key: str,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    snapshot = await gateway.get_portfolio(public_key)
    return snapshot.model_dump(by_alias=True)


@router.get("/prices/{symbol}", response_model=PriceEntryResponse)
async def get_price(
    symbol: str,
    gateway: Gateway = Depends(get_gateway),
) -> PriceEntryResponse:
    entry = gateway.get_price(symbol)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached price for {symbol.upper()}",
        )
    return PriceEntryResponse(**entry.to_dict())


__all__ = ["router"]
