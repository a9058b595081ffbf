"""ContractVersion and ContractBinding."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ContractVersion(str, Enum):
    """Escrow interface generation detected at an address."""

    LEGACY = "legacy"  # buyShares(outcome) / sellShares / totalShares(outcome)
    CURRENT = "current"  # buyYes() / buyNo() / yesPool() / noPool()
    INVALID = "invalid"


class ContractBinding(BaseModel):
    """Resolver's belief about one settlement-chain address."""

    address: str
    version: ContractVersion
