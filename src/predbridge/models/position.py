"""Position and Trade - per-user ledger rows."""

from __future__ import annotations

from pydantic import BaseModel, Field

from predbridge.models.market import Side


class Position(BaseModel):
    """Accumulated stake of one user on one side of one market."""

    user_address: str
    market_id: str
    side: Side
    shares: float = Field(0.0, ge=0)
    avg_price: float = Field(0.0, ge=0)
    total_invested: float = Field(0.0, ge=0)
    claimed: bool = False
    claimed_amount: float | None = None
    claimed_at: int | None = None  # ms epoch
    claim_tx_hash: str | None = None
    updated_at: int | None = None


class Trade(BaseModel):
    """Immutable record of one buy or sell."""

    trade_id: str
    market_id: str
    user_address: str
    trade_type: str = Field("buy", pattern="^(buy|sell)$")
    side: Side
    shares: float = Field(..., ge=0)
    price: float = Field(..., ge=0)
    total_amount: float = Field(..., ge=0)
    timestamp: int  # ms epoch
    tx_hash: str | None = None
