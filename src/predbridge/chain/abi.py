"""Escrow contract ABIs for both interface generations, plus the market factory."""

from __future__ import annotations

from typing import Any


def _fn(
    name: str,
    inputs: list[str] | None = None,
    outputs: list[str] | None = None,
    mutability: str = "view",
) -> dict[str, Any]:
    """Build one JSON ABI function entry from bare type lists."""
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs or [])],
        "outputs": [{"name": "", "type": t} for t in (outputs or [])],
    }


def _event(name: str, params: list[tuple[str, str, bool]]) -> dict[str, Any]:
    """One JSON ABI event entry from (name, type, indexed) triples."""
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": i} for n, t, i in params],
    }


# Deployed before the factory. Single parameterized calls keyed by outcome code.
LEGACY_ESCROW_ABI: list[dict[str, Any]] = [
    _fn("question", outputs=["string"]),
    _fn("description", outputs=["string"]),
    _fn("endDate", outputs=["uint256"]),
    _fn("creator", outputs=["address"]),
    _fn("isResolved", outputs=["bool"]),
    _fn("winner", outputs=["uint8"]),
    _fn("totalPool", outputs=["uint256"]),
    _fn("totalShares", ["uint8"], ["uint256"]),
    _fn("userShares", ["address", "uint8"], ["uint256"]),
    _fn("buyShares", ["uint8"], mutability="payable"),
    _fn("sellShares", ["uint8", "uint256"], mutability="nonpayable"),
    _fn("resolve", ["uint8"], mutability="nonpayable"),
    _fn("claimWinnings", mutability="nonpayable"),
]

# Factory-deployed. Side-specific buys, per-side pools, no sell path.
CURRENT_ESCROW_ABI: list[dict[str, Any]] = [
    _fn("question", outputs=["string"]),
    _fn("description", outputs=["string"]),
    _fn("endTime", outputs=["uint256"]),
    _fn("creator", outputs=["address"]),
    _fn("resolved", outputs=["bool"]),
    _fn("outcome", outputs=["uint8"]),
    _fn("yesPool", outputs=["uint256"]),
    _fn("noPool", outputs=["uint256"]),
    _fn("yesShares", ["address"], ["uint256"]),
    _fn("noShares", ["address"], ["uint256"]),
    _fn("buyYes", mutability="payable"),
    _fn("buyNo", mutability="payable"),
    _fn("resolve", ["uint8"], mutability="nonpayable"),
    _fn("claimWinnings", mutability="nonpayable"),
]

# View function only the legacy shape exposes.
LEGACY_PROBE_FUNCTION = "totalShares"
LEGACY_PROBE_ARGS: tuple[Any, ...] = (1,)

# Deploys current-generation escrows; the new address arrives in MarketCreated.
FACTORY_ABI: list[dict[str, Any]] = [
    _fn("createMarket", ["string", "string", "uint256"], ["address", "uint256"], mutability="payable"),
    _fn("getAllMarkets", outputs=["address[]"]),
    _fn("getMarketsByCreator", ["address"], ["address[]"]),
    _fn("marketCount", outputs=["uint256"]),
    _fn("creationFee", outputs=["uint256"]),
    _event(
        "MarketCreated",
        [
            ("marketId", "uint256", True),
            ("marketAddress", "address", True),
            ("creator", "address", True),
            ("question", "string", False),
            ("endTime", "uint256", False),
        ],
    ),
]
MARKET_CREATED_EVENT = "MarketCreated"
