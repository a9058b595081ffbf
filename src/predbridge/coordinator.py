"""Resolution coordinator - the single entry point for trading, resolving and claiming.

Every action returns an ActionResult. Chain and ledger failures arrive here
already typed (CoordinatorError) and are folded into the result; status text
for the user goes through the optional on_status callback.
"""

from __future__ import annotations

import math
import time
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable

import duckdb
import structlog

from predbridge.chain.providers import ProviderPool
from predbridge.chain.validation import is_settlement_network, is_valid_address, normalize_address, same_address
from predbridge.chain.versions import ContractVersionResolver
from predbridge.chain.wallet import LocalWallet, WalletConnection
from predbridge.errors import (
    CoordinatorError,
    InvalidContractError,
    InvalidInputError,
    InvalidTransitionError,
    LifecycleError,
    MarketAlreadyResolvedError,
    MarketClosedOrResolvedError,
    MarketNotEndedError,
    MarketNotFoundError,
    NoWalletError,
    NotAuthorizedError,
    UnsupportedOperationError,
)
from predbridge.ledger.shadow import ShadowLedger
from predbridge.models import (
    ActionResult,
    ContractVersion,
    Market,
    MarketStatus,
    ResolutionMechanism,
    ResolutionStage,
)
from predbridge.resolution.bridge import ResolutionBridge
from predbridge.resolution.remote import HttpResolutionChainClient, ResolutionChainClient
from predbridge.resolution.state import ResolutionStateMachine
from predbridge.settlement.claims import ClaimSettlement
from predbridge.storage.markets import get_market, list_markets, upsert_market
from predbridge.storage.resolutions import get_resolution
from predbridge.trading.adapter import TradeExecutionAdapter, check_side

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from predbridge.config.settings import Settings

log = structlog.get_logger(__name__)

StatusCallback = Callable[[str], None]

DAY_MS = 86_400_000


def advance_status(market: Market, target: MarketStatus) -> Market:
    """Return the market at `target`. Backward moves raise LifecycleError."""
    if not market.status.can_advance_to(target):
        raise LifecycleError(
            f"Market cannot move from {market.status.value} back to {target.value}",
            details={"market_id": market.market_id, "status": market.status.value},
        )
    if market.status is target:
        return market
    return market.model_copy(update={"status": target})


class ResolutionCoordinator:
    def __init__(
        self,
        conn: DuckDBPyConnection,
        pool: ProviderPool,
        adapter: TradeExecutionAdapter,
        ledger: ShadowLedger,
        bridge: ResolutionBridge,
        claims: ClaimSettlement,
        *,
        allow_unrecorded_creator: bool = True,
        factory_address: str | None = None,
        on_status: StatusCallback | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.conn = conn
        self.pool = pool
        self.adapter = adapter
        self.ledger = ledger
        self.bridge = bridge
        self.claims = claims
        self.allow_unrecorded_creator = allow_unrecorded_creator
        self.factory_address = normalize_address(factory_address) if factory_address else None
        self.on_status = on_status
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._account: str | None = None
        wallet = pool.wallet
        if wallet is not None:
            self._account = wallet.address
            wallet.subscribe(
                on_accounts_changed=self.on_accounts_changed,
                on_chain_changed=self.on_chain_changed,
            )

    # --- plumbing ---

    def _status(self, message: str) -> None:
        if self.on_status is not None:
            self.on_status(message)

    def _run(self, action: str, market_id: str, fn: Callable[[], dict[str, Any]]) -> ActionResult:
        try:
            payload = fn()
        except CoordinatorError as e:
            log.warning("action_failed", action=action, market_id=market_id, code=e.code, error=e.message)
            self._status(e.message)
            return ActionResult(
                ok=False,
                action=action,
                market_id=market_id,
                error_code=e.code,
                error=e.message,
                details=e.details,
            )
        return ActionResult(ok=True, action=action, market_id=market_id, payload=payload)

    def _market(self, market_id: str) -> Market:
        market = get_market(self.conn, market_id)
        if market is None:
            raise MarketNotFoundError(f"Market {market_id} not found", details={"market_id": market_id})
        return self._refresh(market)

    def _save(self, market: Market, target: MarketStatus | None = None, **updates: Any) -> Market:
        if target is not None:
            market = advance_status(market, target)
        if updates:
            market = market.model_copy(update=updates)
        upsert_market(self.conn, market)
        return market

    def _refresh(self, market: Market) -> Market:
        if market.status is MarketStatus.OPEN and self._clock() >= market.end_time:
            market = self._save(market, MarketStatus.ENDED)
            log.info("market_ended", market_id=market.market_id)
        return market

    def _acting(self, acting_address: str | None) -> str:
        address = acting_address or self._account
        if not address:
            raise NoWalletError("Please connect your wallet first")
        if not is_valid_address(address):
            raise InvalidInputError("Invalid wallet address", details={"address": address})
        return normalize_address(address)

    def _signer(self, acting_address: str | None) -> str:
        """The wallet account that signs settlement-contract actions.

        Shares, payouts and ledger rows all follow the signer, so a different
        acting address is refused rather than recorded.
        """
        wallet = self.pool.wallet
        if wallet is None or not wallet.is_unlocked or not wallet.address:
            raise NoWalletError("Please connect your wallet first")
        signer = normalize_address(wallet.address)
        if acting_address and not same_address(acting_address, signer):
            if not is_valid_address(acting_address):
                raise InvalidInputError("Invalid wallet address", details={"address": acting_address})
            raise NotAuthorizedError(
                "Acting address does not match the connected wallet",
                recognized_address=signer,
                details={"acting_address": normalize_address(acting_address)},
            )
        return signer

    def _actor(self, market: Market, acting_address: str | None) -> str:
        if market.has_contract:
            return self._signer(acting_address)
        return self._acting(acting_address)

    def _mirror(self, action: str, fn: Callable[[], Any]) -> bool:
        """Apply a ledger update after a confirmed chain write; the chain result stands either way."""
        try:
            fn()
        except (CoordinatorError, duckdb.Error) as e:
            log.error("ledger_mirror_failed", action=action, error=str(e))
            return False
        return True

    # --- trading ---

    def buy(
        self, market_id: str, side: str, amount: Decimal | float | str, acting_address: str | None = None
    ) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            if market.status is not MarketStatus.OPEN:
                raise MarketClosedOrResolvedError("Market closed", details={"status": market.status.value})
            check_side(side)
            if Decimal(str(amount)) <= 0:
                raise InvalidInputError("Amount must be greater than zero", details={"amount": str(amount)})
            if not market.has_contract:
                user = self._acting(acting_address)
                trade = self.ledger.record_buy(market, user, side, float(amount))
                self._status(f"Bought {trade.shares:.2f} {side.upper()} shares")
                return {"trade": trade.model_dump(), "tx": None, "ledger_synced": True}

            user = self._signer(acting_address)
            self._status("Confirm the transaction in your wallet...")
            tx = self.adapter.buy(
                market.settlement_address, side, amount, version_hint=market.contract_version
            )
            self._status("Trade confirmed on-chain")
            synced = self._mirror(
                "buy", lambda: self.ledger.record_buy(market, user, side, float(amount), tx.tx_hash)
            )
            return {"tx": tx.model_dump(), "ledger_synced": synced}

        return self._run("buy", market_id, run)

    def sell(
        self, market_id: str, side: str, shares: Decimal | float | str, acting_address: str | None = None
    ) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            if not market.has_contract:
                raise UnsupportedOperationError(
                    "Selling requires a legacy settlement contract", details={"market_id": market_id}
                )
            if market.status is not MarketStatus.OPEN:
                raise MarketClosedOrResolvedError("Market closed", details={"status": market.status.value})
            user = self._signer(acting_address)
            self._status("Confirm the transaction in your wallet...")
            tx = self.adapter.sell(
                market.settlement_address, side, shares, version_hint=market.contract_version
            )
            self._status("Sale confirmed on-chain")
            synced = self._mirror(
                "sell", lambda: self.ledger.record_sell(market, user, side, float(shares), tx.tx_hash)
            )
            return {"tx": tx.model_dump(), "ledger_synced": synced}

        return self._run("sell", market_id, run)

    # --- resolution ---

    def _check_ledger_only_resolve(self, market: Market, acting: str) -> None:
        if market.status is MarketStatus.RESOLVED:
            raise MarketAlreadyResolvedError("Market already resolved")
        if self._clock() < market.end_time:
            raise MarketNotEndedError("Market has not ended yet", details={"end_time": market.end_time // 1000})
        recognized = normalize_address(market.creator_address) if market.creator_address else None
        if recognized is None:
            if not self.allow_unrecorded_creator:
                raise NotAuthorizedError("Market creator is unknown", recognized_address=None)
            log.warning("resolve_creator_unknown", market_id=market.market_id, acting=acting)
        elif not same_address(recognized, acting):
            raise NotAuthorizedError(
                "Only the market creator can resolve this market", recognized_address=recognized
            )

    def _bridge(self, market: Market, acting: str) -> dict[str, Any]:
        """Carry a decided-pending-bridge outcome into settlement and finish the lifecycle."""
        machine = ResolutionStateMachine(self.conn, market.market_id, clock=self._clock)
        state = machine.state
        if state.stage is not ResolutionStage.DECIDED_PENDING_BRIDGE or state.outcome is None:
            raise InvalidTransitionError(
                "No decided outcome waiting to be bridged",
                details={"market_id": market.market_id, "stage": state.stage.value},
            )
        mechanism = state.mechanism or ResolutionMechanism.MANUAL_CREATOR
        tx = None
        if market.has_contract:
            self._status("Submitting the outcome to the settlement contract...")
            try:
                tx = self.bridge.resolve(
                    market.settlement_address,
                    state.outcome,
                    acting,
                    market,
                    mechanism=mechanism,
                    rationale=state.rationale,
                )
            except CoordinatorError as e:
                machine.fail()
                e.details.setdefault("stage", ResolutionStage.DECIDED_PENDING_BRIDGE.value)
                raise
        else:
            self.bridge.record(market, state.outcome, mechanism, state.rationale)
        machine.mark_bridged()
        market = self._save(market, MarketStatus.RESOLVED, resolved_outcome=state.outcome)
        self._status(f"Market resolved: {state.outcome.upper()}")
        return {
            "outcome": state.outcome,
            "mechanism": mechanism.value,
            "rationale": state.rationale,
            "tx": tx.model_dump() if tx else None,
            "status": market.status.value,
        }

    def resolve_manual(self, market_id: str, outcome: str, acting_address: str | None = None) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            check_side(outcome)
            acting = self._actor(market, acting_address)
            machine = ResolutionStateMachine(self.conn, market_id, clock=self._clock)
            stage = machine.stage
            if stage is ResolutionStage.DECIDED_PENDING_BRIDGE:
                # an earlier decision is still waiting; bridge that one
                return self._bridge(market, acting)
            if stage is ResolutionStage.DECIDING:
                log.warning("resolution_step_abandoned", market_id=market_id)
                machine.fail()
            if market.has_contract:
                self.bridge.check_preconditions(market.settlement_address, acting, market)
            else:
                self._check_ledger_only_resolve(market, acting)
            machine.start(ResolutionMechanism.MANUAL_CREATOR)
            machine.decide(outcome)
            market = self._save(market, MarketStatus.RESOLVING)
            return self._bridge(market, acting)

        return self._run("resolve_manual", market_id, run)

    def resolve_with_ai(self, market_id: str, acting_address: str | None = None) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            if not market.is_ai_resolved:
                raise InvalidInputError("Market has no AI resolution contract", details={"market_id": market_id})
            acting = self._actor(market, acting_address)
            machine = ResolutionStateMachine(self.conn, market_id, clock=self._clock)
            stage = machine.stage
            if stage is ResolutionStage.DECIDED_PENDING_BRIDGE:
                return self._bridge(market, acting)
            if stage is ResolutionStage.DECIDING:
                log.warning("resolution_step_abandoned", market_id=market_id)
                machine.fail()
            if market.has_contract:
                self.bridge.check_preconditions(market.settlement_address, acting, market)
            else:
                self._check_ledger_only_resolve(market, acting)

            machine.start(ResolutionMechanism.AI_CONSENSUS)
            market = self._save(market, MarketStatus.RESOLVING)
            self._status("Submitting to AI validators...")
            try:
                decided = self.bridge.request_ai_resolution(market)
            except CoordinatorError:
                machine.fail()
                raise
            machine.decide(decided.outcome, decided.rationale or None)
            self._status(f"Validators decided {decided.outcome.upper()}")
            result = self._bridge(market, acting)
            result["resolution_tx_hash"] = decided.tx_hash
            return result

        return self._run("resolve_with_ai", market_id, run)

    def bridge_pending(self, market_id: str, acting_address: str | None = None) -> ActionResult:
        """Retry the settlement step for an outcome that was decided but never bridged."""

        def run() -> dict[str, Any]:
            market = self._market(market_id)
            return self._bridge(market, self._actor(market, acting_address))

        return self._run("bridge_pending", market_id, run)

    # --- claims ---

    def claim(self, market_id: str, acting_address: str | None = None) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            user = self._actor(market, acting_address)
            if market.has_contract:
                self._status("Confirm the claim in your wallet...")
                result = self.claims.claim(market.settlement_address, user, market)
            else:
                result = self.ledger.settle_claim(market, user)
            self._status(f"Claimed {result.amount} winnings")
            return result.model_dump(mode="json")

        return self._run("claim", market_id, run)

    # --- lifecycle & status ---

    def refresh_lifecycle(self, market_id: str | None = None) -> ActionResult:
        """Move open markets whose end time has passed to ended."""

        def run() -> dict[str, Any]:
            markets = [self._market(market_id)] if market_id else [
                self._refresh(m) for m in list_markets(self.conn, status=MarketStatus.OPEN.value)
            ]
            return {"markets": {m.market_id: m.status.value for m in markets}}

        return self._run("refresh_lifecycle", market_id or "*", run)

    def resolution_status(self, market_id: str) -> ActionResult:
        def run() -> dict[str, Any]:
            market = self._market(market_id)
            state = ResolutionStateMachine(self.conn, market_id, clock=self._clock).state
            record = get_resolution(self.conn, market_id)
            payload: dict[str, Any] = {
                "status": market.status.value,
                "stage": state.stage.value,
                "outcome": market.resolved_outcome or state.outcome,
                "mechanism": state.mechanism.value if state.mechanism else None,
                "rationale": state.rationale,
                "record": record.model_dump(mode="json") if record else None,
            }
            if market.has_contract:
                try:
                    onchain = self.adapter.read_market_state(
                        market.settlement_address, version_hint=market.contract_version
                    )
                    payload["onchain"] = {
                        "version": onchain.version.value,
                        "resolved": onchain.resolved,
                        "winner": onchain.winner,
                        "end_time": onchain.end_time,
                        "total_pool_wei": onchain.total_pool,
                    }
                except CoordinatorError as e:
                    payload["onchain"] = {"error_code": e.code, "error": e.message}
            if market.is_ai_resolved and self.bridge.remote is not None:
                try:
                    remote = self.bridge.remote.read_status(market.resolution_address)
                    payload["resolution_chain"] = remote.model_dump(mode="json")
                except CoordinatorError as e:
                    payload["resolution_chain"] = {"error_code": e.code, "error": e.message}
            return payload

        return self._run("resolution_status", market_id, run)

    def create_market(
        self,
        question: str,
        end_time: int,
        *,
        description: str = "",
        category: str = "General",
        probability: float = 50.0,
        creator_address: str | None = None,
        settlement_address: str | None = None,
        resolution_address: str | None = None,
        contract_version: str | None = None,
        resolution_source: str | None = None,
        deploy: bool = False,
    ) -> ActionResult:
        """Register a market; with `deploy`, first deploy its escrow through the factory."""
        market_id = uuid.uuid4().hex

        def run() -> dict[str, Any]:
            if not question.strip():
                raise InvalidInputError("Question is required")
            now = self._clock()
            if end_time <= now:
                raise InvalidInputError("End time must be in the future", details={"end_time": end_time})
            for label, address in (
                ("creator_address", creator_address),
                ("settlement_address", settlement_address),
                ("resolution_address", resolution_address),
            ):
                if address is not None and not is_valid_address(address):
                    raise InvalidInputError(f"Invalid {label}", details={label: address})

            tx = None
            if deploy:
                if settlement_address or contract_version:
                    raise InvalidInputError(
                        "A deployed market gets its own settlement contract",
                        details={"settlement_address": settlement_address, "contract_version": contract_version},
                    )
                if not self.factory_address:
                    raise InvalidContractError("No market factory is configured")
                creator = self._signer(creator_address)
                duration_days = math.ceil((end_time - now) / DAY_MS)
                self._status("Confirm the deployment in your wallet...")
                created, tx = self.adapter.deploy_market(
                    self.factory_address, question.strip(), description, duration_days
                )
                self._status(f"Market contract deployed at {created.address}")
                settlement, version, ends = created.address, ContractVersion.CURRENT.value, created.end_time * 1000
            else:
                creator = creator_address or self._account
                settlement = normalize_address(settlement_address) if settlement_address else None
                version, ends = contract_version, end_time

            market = Market(
                market_id=market_id,
                question=question.strip(),
                description=description,
                category=category,
                created_at=now,
                end_time=ends,
                probability=probability,
                creator_address=normalize_address(creator) if creator else None,
                settlement_address=settlement,
                resolution_address=resolution_address,
                contract_version=version,
                resolution_source=resolution_source,
            )
            upsert_market(self.conn, market)
            log.info("market_created", market_id=market_id, on_chain=market.has_contract, deployed=deploy)
            return {"market": market.model_dump(mode="json"), "tx": tx.model_dump() if tx else None}

        return self._run("create_market", market_id, run)

    def factory_markets(self, creator_address: str | None = None) -> ActionResult:
        """Escrows the factory deployed (for one creator, if given), matched to known markets."""

        def run() -> dict[str, Any]:
            if not self.factory_address:
                raise InvalidContractError("No market factory is configured")
            if creator_address is not None and not is_valid_address(creator_address):
                raise InvalidInputError("Invalid creator_address", details={"creator_address": creator_address})
            addresses = self.adapter.factory_markets(self.factory_address, creator_address)
            known = {
                normalize_address(m.settlement_address): m.market_id for m in list_markets(self.conn) if m.settlement_address
            }
            return {
                "factory": self.factory_address,
                "creator": normalize_address(creator_address) if creator_address else None,
                "markets": [{"address": a, "market_id": known.get(a)} for a in addresses],
            }

        return self._run("factory_markets", "*", run)

    # --- wallet events ---

    def on_accounts_changed(self, accounts: list[str]) -> None:
        self._account = normalize_address(accounts[0]) if accounts else None
        log.info("wallet_account_changed", account=self._account)
        self._status("Wallet disconnected" if self._account is None else "Wallet account changed")

    def on_chain_changed(self, chain_id: int) -> None:
        log.info("wallet_chain_changed", chain_id=chain_id)
        if not is_settlement_network(chain_id, self.adapter.settlement_chain_id):
            self._status(f"Please switch to {self.adapter.settlement_chain_name} to trade")


def build_coordinator(
    settings: Settings,
    conn: DuckDBPyConnection,
    *,
    wallet: WalletConnection | None = None,
    remote: ResolutionChainClient | None = None,
    on_status: StatusCallback | None = None,
    clock: Callable[[], int] | None = None,
) -> ResolutionCoordinator:
    """Wire the coordinator from settings. Wallet and resolution client default to the configured ones."""
    if wallet is None:
        wallet = LocalWallet.from_settings(settings)
    if remote is None:
        remote = HttpResolutionChainClient.from_settings(settings, sender=wallet.address if wallet else None)
    pool = ProviderPool.from_settings(settings, wallet)
    resolver = ContractVersionResolver(pool)
    adapter = TradeExecutionAdapter.from_settings(settings, pool, resolver)
    ledger = ShadowLedger(conn, display_rate=settings.display_rate, clock=clock)
    bridge = ResolutionBridge.from_settings(settings, adapter, conn, remote=remote, clock=clock)
    return ResolutionCoordinator(
        conn,
        pool,
        adapter,
        ledger,
        bridge,
        ClaimSettlement(adapter, ledger),
        allow_unrecorded_creator=settings.allow_unrecorded_creator,
        factory_address=settings.factory_address,
        on_status=on_status,
        clock=clock,
    )
