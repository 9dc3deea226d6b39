"""Chat endpoints (buffered and streamed)."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...core.errors import ShiftError
from ...core.gateway import Gateway
from ..dependencies import get_gateway
from ..schemas import ChatRequest, ChatResponseBody

router = APIRouter(prefix="/api", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChatResponseBody)
async def chat(
    payload: ChatRequest,
    gateway: Gateway = Depends(get_gateway),
) -> ChatResponseBody:
    text = await gateway.chat(payload.public_key, payload.message)
    return ChatResponseBody(response=text)


async def _relay(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for fragment in fragments:
            yield fragment
    except ShiftError as e:
        # Headers are already sent; report the failure in-band
        logger.error(f"Chat stream failed: {e.message}")
        yield f"\n[error] {e.message}"


@router.post("/chat/stream")
async def chat_stream(
    payload: ChatRequest,
    gateway: Gateway = Depends(get_gateway),
) -> StreamingResponse:
    # Validation errors surface here, before the response starts
    fragments = gateway.stream_chat(payload.public_key, payload.message)
    return StreamingResponse(_relay(fragments), media_type="text/plain; charset=utf-8")


__all__ = ["router"]
