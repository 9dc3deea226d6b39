"""Pydantic request/response schemas for the HTTP surface.

Field names follow the browser client's camelCase payloads. Required inputs are
declared optional so that absent values reach the core and fail as MissingParameter.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InitSessionRequest(_Request):
    public_key: Optional[str] = Field(default=None, alias="publicKey")


class ChatRequest(_Request):
    message: Optional[str] = None
    public_key: Optional[str] = Field(default=None, alias="publicKey")


class SignTransactionRequest(_Request):
    transaction: Any = None
    public_key: Optional[str] = Field(default=None, alias="publicKey")


class InitSessionResponse(BaseModel):
    success: bool = True


class ChatResponseBody(BaseModel):
    response: str


class SignTransactionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction: Any
    requires_signature: bool = Field(default=True, alias="requiresSignature")


class PriceEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    usd: float
    usd_24h_change: float
    last_updated: float


__all__ = [
    "ChatRequest",
    "ChatResponseBody",
    "InitSessionRequest",
    "InitSessionResponse",
    "PriceEntryResponse",
    "SignTransactionRequest",
    "SignTransactionResponse",
]
