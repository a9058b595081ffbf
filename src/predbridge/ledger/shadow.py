"""Shadow ledger - off-chain mirror of positions, trades, volume and probability.

The ledger is display state for on-chain markets and the only state for
ledger-only markets (no settlement contract). Payout entitlements use the
same integer arithmetic as on-chain claims.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Callable

import structlog

from predbridge.chain.validation import normalize_address
from predbridge.errors import (
    AlreadyClaimedError,
    InvalidInputError,
    MarketNotFoundError,
    NothingToClaimError,
)
from predbridge.models import ClaimResult, Market, MarketStatus, Position, Trade, outcome_code
from predbridge.settlement.payout import from_wei, payout_wei, to_wei_units
from predbridge.storage.markets import get_market, upsert_market
from predbridge.storage.positions import get_position, list_positions, mark_claimed, upsert_position
from predbridge.storage.trades import append_trade

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

MIN_PRICE = 0.01
MAX_PRICE_IMPACT = 0.15
MIN_PROBABILITY = 1
MAX_PROBABILITY = 99


def _now_ms() -> int:
    return int(time.time() * 1000)


def share_price(probability: float, side: str) -> float:
    """Price per share in native units: p/100 for yes, (100-p)/100 for no."""
    outcome_code(side)
    price = probability / 100 if side == "yes" else (100 - probability) / 100
    return max(price, MIN_PRICE)


def apply_price_impact(probability: float, volume: float, amount: float, side: str) -> float:
    """Move probability toward the bought side, proportional to the trade's share of volume."""
    impact = min(amount / (volume + amount + 0.1), MAX_PRICE_IMPACT)
    if side == "yes":
        moved = probability + (100 - probability) * impact
    else:
        moved = probability - probability * impact
    return float(min(max(round(moved), MIN_PROBABILITY), MAX_PROBABILITY))


@dataclass
class PoolSummary:
    market_id: str
    yes_shares: float
    no_shares: float
    yes_invested: float
    no_invested: float

    @property
    def total_pool(self) -> float:
        return self.yes_invested + self.no_invested

    def shares(self, side: str) -> float:
        return self.yes_shares if side == "yes" else self.no_shares


class ShadowLedger:
    """Ledger operations over one DuckDB connection."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        *,
        display_rate: float = 1.0,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.conn = conn
        self.display_rate = display_rate
        self._clock = clock or _now_ms

    def _market(self, market_id: str) -> Market:
        market = get_market(self.conn, market_id)
        if market is None:
            raise MarketNotFoundError(f"Market {market_id} not found", details={"market_id": market_id})
        return market

    def record_buy(
        self,
        market: Market,
        user: str,
        side: str,
        amount: float,
        tx_hash: str | None = None,
    ) -> Trade:
        """Mirror a buy of `amount` native units: position, trade, volume, probability."""
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than zero", details={"amount": amount})
        market = self._market(market.market_id)
        price = share_price(market.probability, side)
        shares = amount / price
        now = self._clock()

        existing = get_position(self.conn, user, market.market_id, side)
        total_shares = shares + (existing.shares if existing else 0.0)
        total_invested = amount + (existing.total_invested if existing else 0.0)
        position = Position(
            user_address=normalize_address(user),
            market_id=market.market_id,
            side=side,
            shares=total_shares,
            avg_price=total_invested / total_shares,
            total_invested=total_invested,
            updated_at=now,
        )
        upsert_position(self.conn, position)

        trade = Trade(
            trade_id=uuid.uuid4().hex,
            market_id=market.market_id,
            user_address=normalize_address(user),
            trade_type="buy",
            side=side,
            shares=shares,
            price=price,
            total_amount=amount,
            timestamp=now,
            tx_hash=tx_hash,
        )
        append_trade(self.conn, trade)

        volume_delta = amount * self.display_rate
        updated = market.model_copy(
            update={
                "probability": apply_price_impact(market.probability, market.volume, volume_delta, side),
                "volume": market.volume + volume_delta,
            }
        )
        upsert_market(self.conn, updated)
        log.info(
            "ledger_buy_recorded",
            market_id=market.market_id,
            side=side,
            shares=round(shares, 6),
            price=price,
            probability=updated.probability,
        )
        return trade

    def record_sell(
        self,
        market: Market,
        user: str,
        side: str,
        shares: float,
        tx_hash: str | None = None,
    ) -> Trade:
        """Mirror a legacy on-chain sell. Average price is unchanged."""
        market = self._market(market.market_id)
        existing = get_position(self.conn, user, market.market_id, side)
        held = existing.shares if existing else 0.0
        if shares <= 0 or shares > held + 1e-9:
            raise InvalidInputError(
                f"Cannot sell {shares} shares; position holds {held}",
                details={"shares": shares, "held": held},
            )
        price = share_price(market.probability, side)
        remaining = max(held - shares, 0.0)
        now = self._clock()
        upsert_position(
            self.conn,
            existing.model_copy(
                update={
                    "shares": remaining,
                    "total_invested": remaining * existing.avg_price,
                    "updated_at": now,
                }
            ),
        )
        trade = Trade(
            trade_id=uuid.uuid4().hex,
            market_id=market.market_id,
            user_address=normalize_address(user),
            trade_type="sell",
            side=side,
            shares=shares,
            price=price,
            total_amount=shares * price,
            timestamp=now,
            tx_hash=tx_hash,
        )
        append_trade(self.conn, trade)
        upsert_market(
            self.conn,
            market.model_copy(update={"volume": market.volume + trade.total_amount * self.display_rate}),
        )
        log.info("ledger_sell_recorded", market_id=market.market_id, side=side, shares=shares)
        return trade

    def pool_summary(self, market_id: str) -> PoolSummary:
        summary = PoolSummary(market_id, 0.0, 0.0, 0.0, 0.0)
        for p in list_positions(self.conn, market_id=market_id):
            if p.side == "yes":
                summary.yes_shares += p.shares
                summary.yes_invested += p.total_invested
            else:
                summary.no_shares += p.shares
                summary.no_invested += p.total_invested
        return summary

    def _payout_if(self, market_id: str, position: Position, winning_side: str) -> int:
        if position.side != winning_side:
            return 0
        positions = list_positions(self.conn, market_id=market_id)
        total_pool = sum(to_wei_units(p.total_invested) for p in positions)
        winning_total = sum(to_wei_units(p.shares) for p in positions if p.side == winning_side)
        return payout_wei(to_wei_units(position.shares), total_pool, winning_total)

    def entitlement(self, market: Market, position: Position) -> int:
        """Wei owed to `position` if the market resolved its way, else 0."""
        if market.resolved_outcome is None:
            return 0
        return self._payout_if(market.market_id, position, market.resolved_outcome)

    def potential_winnings(self, market_id: str, user: str) -> dict[str, Decimal]:
        """Payout per side should that side win, given the current pools."""
        result: dict[str, Decimal] = {}
        for side in ("yes", "no"):
            position = get_position(self.conn, user, market_id, side)
            wei = self._payout_if(market_id, position, side) if position else 0
            result[side] = from_wei(wei)
        return result

    def winning_position(self, market: Market, user: str) -> Position | None:
        if market.resolved_outcome is None:
            return None
        return get_position(self.conn, user, market.market_id, market.resolved_outcome)

    def record_claim(
        self, market: Market, user: str, amount_wei: int, tx_hash: str | None = None
    ) -> None:
        """Set the claimed flag after a confirmed on-chain claim."""
        if market.resolved_outcome is None:
            return
        marked = mark_claimed(
            self.conn,
            user,
            market.market_id,
            market.resolved_outcome,
            float(from_wei(amount_wei)),
            self._clock(),
            tx_hash,
        )
        if not marked:
            log.info("ledger_claim_not_recorded", market_id=market.market_id, user=normalize_address(user))

    def settle_claim(self, market: Market, user: str) -> ClaimResult:
        """Pay out a ledger-only market's winning position, once."""
        market = self._market(market.market_id)
        if market.status is not MarketStatus.RESOLVED or market.resolved_outcome is None:
            raise NothingToClaimError("Market is not resolved yet", details={"market_id": market.market_id})
        position = self.winning_position(market, user)
        if position is None or position.shares <= 0:
            raise NothingToClaimError("No winning position to claim", details={"market_id": market.market_id})
        if position.claimed:
            raise AlreadyClaimedError("Winnings already claimed", details={"market_id": market.market_id})
        amount_wei = self.entitlement(market, position)
        amount = from_wei(amount_wei)
        if not mark_claimed(
            self.conn, user, market.market_id, position.side, float(amount), self._clock()
        ):
            raise AlreadyClaimedError("Winnings already claimed", details={"market_id": market.market_id})
        log.info("ledger_claim_settled", market_id=market.market_id, user=normalize_address(user), amount=str(amount))
        return ClaimResult(amount_wei=amount_wei, amount=amount)
