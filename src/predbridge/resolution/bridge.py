"""Resolution bridge - carry a decided outcome into the settlement contract."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

import structlog

from predbridge.chain.validation import is_valid_address, normalize_address, same_address
from predbridge.errors import (
    InvalidInputError,
    MarketAlreadyResolvedError,
    MarketNotEndedError,
    NotAuthorizedError,
)
from predbridge.models import (
    Market,
    ResolutionMechanism,
    ResolutionRecord,
    TxResult,
    outcome_code,
)
from predbridge.storage.resolutions import DuplicateResolutionError, insert_resolution

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from predbridge.chain.escrow import OnChainMarketState
    from predbridge.config.settings import Settings
    from predbridge.resolution.remote import ResolutionChainClient, ResolutionStatus
    from predbridge.trading.adapter import TradeExecutionAdapter

log = structlog.get_logger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


class ResolutionBridge:
    """Checks resolve preconditions against fresh chain state, submits, records.

    Preconditions run in order and each one stops the flow: not already
    resolved, on-chain end time passed, acting address authorized.
    """

    def __init__(
        self,
        adapter: TradeExecutionAdapter,
        conn: DuckDBPyConnection,
        *,
        remote: ResolutionChainClient | None = None,
        factory_addresses: list[str] | None = None,
        allow_unrecorded_creator: bool = True,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.adapter = adapter
        self.conn = conn
        self.remote = remote
        self.factory_addresses = {normalize_address(a) for a in factory_addresses or []}
        self.allow_unrecorded_creator = allow_unrecorded_creator
        self._clock = clock or (lambda: int(time.time() * 1000))

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        adapter: TradeExecutionAdapter,
        conn: DuckDBPyConnection,
        remote: ResolutionChainClient | None = None,
        clock: Callable[[], int] | None = None,
    ) -> ResolutionBridge:
        return cls(
            adapter,
            conn,
            remote=remote,
            factory_addresses=settings.factory_addresses,
            allow_unrecorded_creator=settings.allow_unrecorded_creator,
            clock=clock,
        )

    def recognized_creator(self, market: Market, onchain_creator: str | None) -> str | None:
        """The creator address authorization is checked against, or None if nobody is known.

        A factory (or zero, or unreadable) on-chain creator says nothing about
        who created the market, so the stored creator is used instead.
        """
        if onchain_creator and is_valid_address(onchain_creator):
            key = normalize_address(onchain_creator)
            if key not in self.factory_addresses and key != ZERO_ADDRESS:
                return key
        if market.creator_address and is_valid_address(market.creator_address):
            return normalize_address(market.creator_address)
        return None

    def check_preconditions(
        self, contract_address: str, acting_address: str, market: Market
    ) -> OnChainMarketState:
        state = self.adapter.read_market_state(contract_address, version_hint=market.contract_version)
        if state.resolved:
            raise MarketAlreadyResolvedError(
                "Market already resolved", details={"address": contract_address, "winner": state.winner}
            )

        # The contract may enforce a later end time than the one stored for the market.
        now_sec = self._clock() // 1000
        effective_end = max(state.end_time, market.end_time // 1000)
        if now_sec < effective_end:
            raise MarketNotEndedError(
                "Market has not ended yet",
                details={
                    "end_time": effective_end,
                    "onchain_end_time": state.end_time,
                    "stored_end_time": market.end_time // 1000,
                },
            )

        recognized = self.recognized_creator(market, state.creator)
        if recognized is None:
            if not self.allow_unrecorded_creator:
                raise NotAuthorizedError("Market creator is unknown", recognized_address=None)
            log.warning(
                "resolve_creator_unknown",
                market_id=market.market_id,
                acting=normalize_address(acting_address),
            )
        elif not same_address(recognized, acting_address):
            raise NotAuthorizedError(
                "Only the market creator can resolve this market", recognized_address=recognized
            )
        return state

    def resolve(
        self,
        contract_address: str,
        outcome: str,
        acting_address: str,
        market: Market,
        *,
        mechanism: ResolutionMechanism = ResolutionMechanism.MANUAL_CREATOR,
        rationale: str | None = None,
    ) -> TxResult:
        code = outcome_code(outcome)
        self.check_preconditions(contract_address, acting_address, market)
        tx = self.adapter.resolve(contract_address, code, version_hint=market.contract_version)
        self.record(market, outcome, mechanism, rationale, tx.tx_hash)
        log.info(
            "bridge_confirmed",
            market_id=market.market_id,
            outcome=outcome,
            mechanism=mechanism.value,
            tx_hash=tx.tx_hash,
        )
        return tx

    def record(
        self,
        market: Market,
        outcome: str,
        mechanism: ResolutionMechanism,
        rationale: str | None = None,
        tx_hash: str | None = None,
    ) -> ResolutionRecord:
        record = ResolutionRecord(
            market_id=market.market_id,
            outcome=outcome,
            mechanism=mechanism,
            rationale=rationale,
            tx_hash=tx_hash,
            timestamp=self._clock(),
        )
        try:
            insert_resolution(self.conn, record)
        except DuplicateResolutionError:
            log.warning("resolution_record_exists", market_id=market.market_id)
        return record

    def request_ai_resolution(self, market: Market) -> ResolutionStatus:
        """Ask the resolution chain for consensus; returns once it is finalized."""
        if self.remote is None or not market.resolution_address:
            raise InvalidInputError(
                "Market has no AI resolution contract", details={"market_id": market.market_id}
            )
        log.info("ai_resolution_requested", market_id=market.market_id, address=market.resolution_address)
        return self.remote.request_resolution(market.resolution_address)
