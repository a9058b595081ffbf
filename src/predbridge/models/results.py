"""Results returned across the coordinator boundary."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class TxResult(BaseModel):
    """A confirmed settlement-chain transaction."""

    tx_hash: str
    block_number: int | None = None
    explorer_url: str | None = None


class ClaimResult(BaseModel):
    amount_wei: int
    amount: Decimal  # native units
    tx_hash: str | None = None


class ActionResult(BaseModel):
    """Discriminated outcome of a coordinator action: payload on success, typed failure otherwise."""

    ok: bool
    action: str
    market_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
