"""Escrow contract call shapes - one class per interface generation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from predbridge.chain.abi import CURRENT_ESCROW_ABI, LEGACY_ESCROW_ABI
from predbridge.errors import InvalidContractError, UnsupportedOperationError
from predbridge.models import ContractVersion, Side, outcome_code, side_from_code

if TYPE_CHECKING:
    from predbridge.chain.providers import ChainConnection


@dataclass
class OnChainMarketState:
    """Snapshot of an escrow contract read through the read connection. Amounts in wei."""

    address: str
    version: ContractVersion
    resolved: bool
    winner: Side | None
    end_time: int  # seconds epoch, as enforced by the contract
    creator: str | None
    yes_shares: int
    no_shares: int
    total_pool: int

    def total_shares(self, side: str) -> int:
        return self.yes_shares if side == "yes" else self.no_shares


class EscrowContract(ABC):
    """Version-agnostic view of one escrow contract. Writes return the tx hash."""

    version: ContractVersion
    abi: list[dict[str, Any]]
    supports_sell: bool = False

    def __init__(self, address: str) -> None:
        self.address = address

    def _call(self, conn: ChainConnection, fn: str, *args: Any) -> Any:
        return conn.call(self.address, self.abi, fn, *args)

    def _send(self, conn: ChainConnection, fn: str, *args: Any, value: int = 0) -> str:
        return conn.transact(self.address, self.abi, fn, *args, value=value)

    @abstractmethod
    def is_resolved(self, conn: ChainConnection) -> bool: ...

    @abstractmethod
    def end_time(self, conn: ChainConnection) -> int: ...

    @abstractmethod
    def winner(self, conn: ChainConnection) -> Side | None: ...

    @abstractmethod
    def total_shares(self, conn: ChainConnection, side: str) -> int: ...

    @abstractmethod
    def total_pool(self, conn: ChainConnection) -> int: ...

    @abstractmethod
    def user_shares(self, conn: ChainConnection, user: str, side: str) -> int: ...

    @abstractmethod
    def submit_buy(self, conn: ChainConnection, side: str, value: int) -> str: ...

    @abstractmethod
    def submit_resolve(self, conn: ChainConnection, code: int) -> str: ...

    def creator(self, conn: ChainConnection) -> str:
        return str(self._call(conn, "creator"))

    def submit_sell(self, conn: ChainConnection, side: str, amount: int) -> str:
        raise UnsupportedOperationError(
            f"Selling is not available on {self.version.value} contracts",
            details={"address": self.address, "version": self.version.value},
        )

    def submit_claim(self, conn: ChainConnection) -> str:
        return self._send(conn, "claimWinnings")

    def read_state(self, conn: ChainConnection) -> OnChainMarketState:
        try:
            creator: str | None = self.creator(conn)
        except (ContractLogicError, BadFunctionCallOutput):
            # Some early deployments expose no creator accessor.
            creator = None
        return OnChainMarketState(
            address=self.address,
            version=self.version,
            resolved=self.is_resolved(conn),
            winner=self.winner(conn),
            end_time=self.end_time(conn),
            creator=creator,
            yes_shares=self.total_shares(conn, "yes"),
            no_shares=self.total_shares(conn, "no"),
            total_pool=self.total_pool(conn),
        )


def _winner_from_code(code: int) -> Side | None:
    # 0 means undecided on both generations
    try:
        return side_from_code(int(code))
    except ValueError:
        return None


class LegacyEscrow(EscrowContract):
    """buyShares(outcome) / sellShares(outcome, amount) / resolve(winner)."""

    version = ContractVersion.LEGACY
    abi = LEGACY_ESCROW_ABI
    supports_sell = True

    def is_resolved(self, conn: ChainConnection) -> bool:
        return bool(self._call(conn, "isResolved"))

    def end_time(self, conn: ChainConnection) -> int:
        return int(self._call(conn, "endDate"))

    def winner(self, conn: ChainConnection) -> Side | None:
        return _winner_from_code(self._call(conn, "winner"))

    def total_shares(self, conn: ChainConnection, side: str) -> int:
        return int(self._call(conn, "totalShares", outcome_code(side)))

    def total_pool(self, conn: ChainConnection) -> int:
        return int(self._call(conn, "totalPool"))

    def user_shares(self, conn: ChainConnection, user: str, side: str) -> int:
        return int(self._call(conn, "userShares", user, outcome_code(side)))

    def submit_buy(self, conn: ChainConnection, side: str, value: int) -> str:
        return self._send(conn, "buyShares", outcome_code(side), value=value)

    def submit_sell(self, conn: ChainConnection, side: str, amount: int) -> str:
        return self._send(conn, "sellShares", outcome_code(side), amount)

    def submit_resolve(self, conn: ChainConnection, code: int) -> str:
        return self._send(conn, "resolve", code)


class CurrentEscrow(EscrowContract):
    """buyYes() / buyNo() / resolve(outcome); per-side pools double as share totals."""

    version = ContractVersion.CURRENT
    abi = CURRENT_ESCROW_ABI

    def is_resolved(self, conn: ChainConnection) -> bool:
        return bool(self._call(conn, "resolved"))

    def end_time(self, conn: ChainConnection) -> int:
        return int(self._call(conn, "endTime"))

    def winner(self, conn: ChainConnection) -> Side | None:
        return _winner_from_code(self._call(conn, "outcome"))

    def total_shares(self, conn: ChainConnection, side: str) -> int:
        outcome_code(side)
        return int(self._call(conn, "yesPool" if side == "yes" else "noPool"))

    def total_pool(self, conn: ChainConnection) -> int:
        return self.total_shares(conn, "yes") + self.total_shares(conn, "no")

    def user_shares(self, conn: ChainConnection, user: str, side: str) -> int:
        outcome_code(side)
        return int(self._call(conn, "yesShares" if side == "yes" else "noShares", user))

    def submit_buy(self, conn: ChainConnection, side: str, value: int) -> str:
        outcome_code(side)
        return self._send(conn, "buyYes" if side == "yes" else "buyNo", value=value)

    def submit_resolve(self, conn: ChainConnection, code: int) -> str:
        return self._send(conn, "resolve", code)


_ESCROW_CLASSES: dict[ContractVersion, type[EscrowContract]] = {
    ContractVersion.LEGACY: LegacyEscrow,
    ContractVersion.CURRENT: CurrentEscrow,
}


def escrow_for(address: str, version: ContractVersion) -> EscrowContract:
    """Return the call shape for a detected version. Invalid versions have none."""
    cls = _ESCROW_CLASSES.get(version)
    if cls is None:
        raise InvalidContractError(
            "Trading unavailable for this market",
            details={"address": address, "version": version.value},
        )
    return cls(address)
