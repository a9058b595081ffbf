"""ResolutionRecord and the persisted resolution sub-state."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from predbridge.models.market import Side


class ResolutionMechanism(str, Enum):
    AI_CONSENSUS = "ai-consensus"
    MANUAL_CREATOR = "manual-creator"


class ResolutionStage(str, Enum):
    UNDECIDED = "undecided"
    DECIDING = "deciding"  # resolution chain call in flight
    DECIDED_PENDING_BRIDGE = "decided-pending-bridge"
    BRIDGED = "bridged"


class ResolutionRecord(BaseModel):
    """How and when a market was decided. Written once."""

    market_id: str
    outcome: Side
    mechanism: ResolutionMechanism
    rationale: str | None = None
    tx_hash: str | None = None  # None for ledger-only markets
    timestamp: int  # ms epoch


class ResolutionState(BaseModel):
    """Where a market is in undecided -> deciding -> decided-pending-bridge -> bridged."""

    market_id: str
    stage: ResolutionStage = ResolutionStage.UNDECIDED
    outcome: Side | None = None
    rationale: str | None = None
    mechanism: ResolutionMechanism | None = None
    updated_at: int | None = None
