"""Claim settlement for markets with a settlement contract."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from predbridge.chain.validation import normalize_address
from predbridge.errors import AlreadyClaimedError, NothingToClaimError
from predbridge.models import ClaimResult, Market
from predbridge.settlement.payout import from_wei, payout_wei

if TYPE_CHECKING:
    from predbridge.ledger.shadow import ShadowLedger
    from predbridge.trading.adapter import TradeExecutionAdapter

log = structlog.get_logger(__name__)


class ClaimSettlement:
    """Pays a winner once. The contract is the final guard; the ledger flag is a fast path."""

    def __init__(self, adapter: TradeExecutionAdapter, ledger: ShadowLedger) -> None:
        self.adapter = adapter
        self.ledger = ledger

    def claim(self, contract_address: str, acting_address: str, market: Market) -> ClaimResult:
        hint = market.contract_version
        state = self.adapter.read_market_state(contract_address, version_hint=hint)
        if not state.resolved or state.winner is None:
            raise NothingToClaimError("Market is not resolved yet", details={"market_id": market.market_id})
        winner = state.winner
        settled = market.model_copy(update={"resolved_outcome": winner})

        position = self.ledger.winning_position(settled, acting_address)
        if position is not None and position.claimed:
            raise AlreadyClaimedError("Winnings already claimed", details={"market_id": market.market_id})

        onchain_shares = self.adapter.read_user_shares(contract_address, acting_address, version_hint=hint)[winner]
        if onchain_shares > 0:
            amount_wei = payout_wei(onchain_shares, state.total_pool, state.total_shares(winner))
        elif position is not None and position.shares > 0:
            amount_wei = self.ledger.entitlement(settled, position)
        else:
            # nothing left on-chain; the contract decides between already claimed and never held
            amount_wei = 0

        tx = self.adapter.claim(contract_address, version_hint=hint)
        self.ledger.record_claim(settled, acting_address, amount_wei, tx.tx_hash)
        log.info(
            "claim_confirmed",
            market_id=market.market_id,
            user=normalize_address(acting_address),
            amount_wei=amount_wei,
            tx_hash=tx.tx_hash,
        )
        return ClaimResult(amount_wei=amount_wei, amount=from_wei(amount_wei), tx_hash=tx.tx_hash)

