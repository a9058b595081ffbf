"""Market factory - deploys current-generation escrows and lists what it deployed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from predbridge.chain.abi import FACTORY_ABI, MARKET_CREATED_EVENT
from predbridge.chain.validation import normalize_address

if TYPE_CHECKING:
    from predbridge.chain.providers import ChainConnection

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365
DEFAULT_DESCRIPTION = "No description provided"


@dataclass
class CreatedMarket:
    """One decoded MarketCreated event."""

    address: str
    factory_market_id: int
    creator: str
    end_time: int  # seconds epoch, as set by the factory


class MarketFactory:
    def __init__(self, address: str) -> None:
        self.address = address

    def _call(self, conn: ChainConnection, fn: str, *args: Any) -> Any:
        return conn.call(self.address, FACTORY_ABI, fn, *args)

    def creation_fee(self, conn: ChainConnection) -> int:
        return int(self._call(conn, "creationFee"))

    def submit_create(
        self, conn: ChainConnection, question: str, description: str, duration_days: int, fee: int
    ) -> str:
        return conn.transact(
            self.address,
            FACTORY_ABI,
            "createMarket",
            question,
            description or DEFAULT_DESCRIPTION,
            duration_days,
            value=fee,
        )

    def created_market(self, conn: ChainConnection, receipt: dict[str, Any]) -> CreatedMarket | None:
        """The market announced in a createMarket receipt, if its event is there."""
        for args in conn.events(self.address, FACTORY_ABI, MARKET_CREATED_EVENT, receipt):
            return CreatedMarket(
                address=normalize_address(args["marketAddress"]),
                factory_market_id=int(args["marketId"]),
                creator=normalize_address(args["creator"]),
                end_time=int(args["endTime"]),
            )
        return None

    def markets_by_creator(self, conn: ChainConnection, creator: str) -> list[str]:
        return [normalize_address(a) for a in self._call(conn, "getMarketsByCreator", normalize_address(creator))]

    def all_markets(self, conn: ChainConnection) -> list[str]:
        return [normalize_address(a) for a in self._call(conn, "getAllMarkets")]
