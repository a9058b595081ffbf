"""Market, status and outcome side - canonical entities."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

Side = Literal["yes", "no"]

# Numeric outcome codes shared by both escrow generations and the resolution chain.
OUTCOME_CODES: dict[str, int] = {"yes": 1, "no": 2}


def outcome_code(side: str) -> int:
    try:
        return OUTCOME_CODES[side]
    except KeyError:
        raise ValueError(f"unknown side: {side!r}") from None


def side_from_code(code: int) -> Side:
    for side, value in OUTCOME_CODES.items():
        if value == code:
            return side  # type: ignore[return-value]
    raise ValueError(f"unknown outcome code: {code!r}")


class MarketStatus(str, Enum):
    """Lifecycle status. Only ever moves forward."""

    OPEN = "open"
    ENDED = "ended"
    RESOLVING = "resolving"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_advance_to(self, target: MarketStatus) -> bool:
        return target.rank >= self.rank


_STATUS_ORDER = [MarketStatus.OPEN, MarketStatus.ENDED, MarketStatus.RESOLVING, MarketStatus.RESOLVED]


class Market(BaseModel):
    """A binary question traded on the shadow ledger and optionally on-chain."""

    market_id: str
    question: str
    description: str = ""  # resolution criteria
    category: str = "General"
    created_at: int = 0  # ms epoch
    end_time: int  # ms epoch; factory-deployed markets take the contract's end time
    probability: float = Field(50.0, ge=0, le=100)
    volume: float = Field(0.0, ge=0)  # display currency
    verified: bool = False
    status: MarketStatus = MarketStatus.OPEN
    creator_address: str | None = None
    settlement_address: str | None = None
    resolution_address: str | None = None
    contract_version: str | None = None  # declared at deployment, if known
    resolved_outcome: Side | None = None
    resolution_source: str | None = None

    @property
    def has_contract(self) -> bool:
        return bool(self.settlement_address)

    @property
    def is_ai_resolved(self) -> bool:
        return bool(self.resolution_address)
