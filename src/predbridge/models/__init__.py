"""Canonical schema (Pydantic) - Market, Position, Trade, Resolution."""

from predbridge.models.contract import ContractBinding, ContractVersion
from predbridge.models.market import (
    OUTCOME_CODES,
    Market,
    MarketStatus,
    Side,
    outcome_code,
    side_from_code,
)
from predbridge.models.position import Position, Trade
from predbridge.models.resolution import (
    ResolutionMechanism,
    ResolutionRecord,
    ResolutionStage,
    ResolutionState,
)
from predbridge.models.results import ActionResult, ClaimResult, TxResult

__all__ = [
    "Market",
    "MarketStatus",
    "Side",
    "OUTCOME_CODES",
    "outcome_code",
    "side_from_code",
    "ContractBinding",
    "ContractVersion",
    "Position",
    "Trade",
    "ResolutionMechanism",
    "ResolutionRecord",
    "ResolutionStage",
    "ResolutionState",
    "ActionResult",
    "ClaimResult",
    "TxResult",
]
