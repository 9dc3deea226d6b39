"""Wallet session endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ...core.gateway import Gateway
from ..dependencies import get_gateway
from ..schemas import (
    InitSessionRequest,
    InitSessionResponse,
    SignTransactionRequest,
    SignTransactionResponse,
)

router = APIRouter(prefix="/api", tags=["sessions"])
logger = logging.getLogger(__name__)


@router.post("/init-session", response_model=InitSessionResponse)
async def init_session(
    payload: InitSessionRequest,
    gateway: Gateway = Depends(get_gateway),
) -> InitSessionResponse:
    session = gateway.init_session(payload.public_key)
    logger.info(f"Session initialized for {session.wallet_key}")
    return InitSessionResponse(success=True)


@router.post(
    "/sign-transaction",
    response_model=SignTransactionResponse,
    response_model_by_alias=True,
)
async def sign_transaction(
    payload: SignTransactionRequest,
    gateway: Gateway = Depends(get_gateway),
) -> SignTransactionResponse:
    prepared = gateway.prepare_signature(payload.public_key, payload.transaction)
    return SignTransactionResponse(
        transaction=prepared["transaction"],
        requires_signature=prepared["requiresSignature"],
    )


__all__ = ["router"]
