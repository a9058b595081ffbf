"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from predbridge.models import Market, Position


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, already_claimed")
    details: dict[str, Any] = Field(default_factory=dict)


# --- Markets ---
class MarketsListResponse(BaseModel):
    markets: list[Market]
    total: int


class PositionsResponse(BaseModel):
    market_id: str
    positions: list[Position]
    yes_shares: float
    no_shares: float
    total_pool: float


# --- Actions ---
class BuyRequest(BaseModel):
    side: Literal["yes", "no"]
    amount: float = Field(..., gt=0, description="Stake in native units")
    user_address: str | None = None


class SellRequest(BaseModel):
    side: Literal["yes", "no"]
    shares: float = Field(..., gt=0)
    user_address: str | None = None


class ResolveRequest(BaseModel):
    mechanism: Literal["manual", "ai", "bridge"] = "manual"
    outcome: Literal["yes", "no"] | None = Field(None, description="Required for manual resolution")
    user_address: str | None = None


class ClaimRequest(BaseModel):
    user_address: str | None = None


class ActionResponse(BaseModel):
    ok: bool = True
    action: str
    market_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class CreateMarketRequest(BaseModel):
    question: str = Field(..., min_length=1)
    end_time: int = Field(..., description="Epoch milliseconds")
    description: str = ""
    category: str = "General"
    probability: float = Field(50.0, ge=0, le=100)
    creator_address: str | None = None
    settlement_address: str | None = None
    resolution_address: str | None = None
    contract_version: Literal["legacy", "current"] | None = None
    resolution_source: str | None = None
    deploy: bool = Field(False, description="Deploy a settlement contract through the market factory")
