"""Trade execution adapter - one version-agnostic surface over both escrow interfaces."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable

import structlog
from web3 import Web3

from predbridge.chain.escrow import EscrowContract, OnChainMarketState, escrow_for
from predbridge.chain.factory import MAX_DURATION_DAYS, MIN_DURATION_DAYS, CreatedMarket, MarketFactory
from predbridge.chain.providers import ChainConnection, ProviderPool
from predbridge.chain.validation import is_valid_address, normalize_address, require_network
from predbridge.chain.versions import ContractVersionResolver
from predbridge.errors import (
    ContractRevertError,
    CoordinatorError,
    InvalidContractError,
    InvalidInputError,
    NoWalletError,
    UnsupportedOperationError,
)
from predbridge.models import ContractVersion, TxResult, outcome_code
from predbridge.trading.errors import is_untranslated_revert, translate_chain_error

if TYPE_CHECKING:
    from predbridge.config.settings import Settings

log = structlog.get_logger(__name__)

Submit = Callable[[EscrowContract, ChainConnection], str]


def to_wei(amount: Decimal | float | str) -> int:
    """Native units (ether) to wei, going through str so floats keep their printed value."""
    value = Decimal(str(amount))
    if value <= 0:
        raise InvalidInputError("Amount must be greater than zero", details={"amount": str(amount)})
    return int(Web3.to_wei(value, "ether"))


def check_side(side: str) -> None:
    try:
        outcome_code(side)
    except ValueError:
        raise InvalidInputError(f"Side must be 'yes' or 'no', got {side!r}") from None


class TradeExecutionAdapter:
    """Buy, sell, claim and resolve against whichever escrow generation lives at an address.

    Writes go through the wallet-bound connection and wait for one confirmation;
    reads go through the pool's read connection. Every failure leaves here as a
    CoordinatorError.
    """

    def __init__(
        self,
        pool: ProviderPool,
        resolver: ContractVersionResolver,
        *,
        settlement_chain_id: int,
        settlement_chain_name: str = "the settlement chain",
        explorer_url: str | None = None,
        funding_url: str | None = None,
    ) -> None:
        self.pool = pool
        self.resolver = resolver
        self.settlement_chain_id = settlement_chain_id
        self.settlement_chain_name = settlement_chain_name
        self.explorer_url = explorer_url.rstrip("/") if explorer_url else None
        self.funding_url = funding_url

    @classmethod
    def from_settings(
        cls, settings: Settings, pool: ProviderPool, resolver: ContractVersionResolver
    ) -> TradeExecutionAdapter:
        return cls(
            pool,
            resolver,
            settlement_chain_id=settings.settlement_chain_id,
            settlement_chain_name=settings.settlement_chain_name,
            explorer_url=settings.settlement_explorer_url,
            funding_url=settings.funding_url,
        )

    # --- writes ---

    def buy(
        self,
        contract_address: str,
        side: str,
        amount: Decimal | float | str,
        *,
        version_hint: str | None = None,
    ) -> TxResult:
        """Stake `amount` native units on `side`."""
        check_side(side)
        value = to_wei(amount)
        return self._submit(
            "buy",
            contract_address,
            version_hint,
            lambda escrow, conn: escrow.submit_buy(conn, side, value),
        )

    def sell(
        self,
        contract_address: str,
        side: str,
        shares: Decimal | float | str,
        *,
        version_hint: str | None = None,
    ) -> TxResult:
        """Sell back `shares` (native units of share). Legacy contracts only."""
        check_side(side)
        amount = to_wei(shares)

        def send(escrow: EscrowContract, conn: ChainConnection) -> str:
            if not escrow.supports_sell:
                raise UnsupportedOperationError(
                    "Selling is not supported for this market's contract",
                    details={"address": escrow.address, "version": escrow.version.value},
                )
            return escrow.submit_sell(conn, side, amount)

        return self._submit("sell", contract_address, version_hint, send)

    def claim(self, contract_address: str, *, version_hint: str | None = None) -> TxResult:
        return self._submit(
            "claim",
            contract_address,
            version_hint,
            lambda escrow, conn: escrow.submit_claim(conn),
        )

    def resolve(
        self, contract_address: str, code: int, *, version_hint: str | None = None
    ) -> TxResult:
        """Submit the numeric outcome (yes=1, no=2) to the escrow's resolve()."""
        return self._submit(
            "resolve",
            contract_address,
            version_hint,
            lambda escrow, conn: escrow.submit_resolve(conn, code),
        )

    def deploy_market(
        self, factory_address: str, question: str, description: str, duration_days: int
    ) -> tuple[CreatedMarket, TxResult]:
        """Deploy a current-generation escrow through the factory, paying its creation fee."""
        if not MIN_DURATION_DAYS <= duration_days <= MAX_DURATION_DAYS:
            raise InvalidInputError(
                f"Duration must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS} days",
                details={"duration_days": duration_days},
            )
        conn = self._writer()
        factory = MarketFactory(self._checked_address(factory_address))
        try:
            fee = factory.creation_fee(conn)
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e
        tx, receipt = self._confirm(
            "deploy",
            conn,
            factory.address,
            lambda: factory.submit_create(conn, question, description, duration_days, fee),
        )
        try:
            created = factory.created_market(conn, receipt)
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e
        if created is None:
            raise InvalidContractError(
                "Factory did not report the deployed market",
                details={"factory": factory.address, "tx_hash": tx.tx_hash},
            )
        log.info(
            "market_deployed",
            factory=factory.address,
            address=created.address,
            factory_market_id=created.factory_market_id,
            tx_hash=tx.tx_hash,
        )
        return created, tx

    # --- reads ---

    def factory_markets(self, factory_address: str, creator: str | None = None) -> list[str]:
        """Escrows the factory deployed, optionally only those of one creator."""
        factory = MarketFactory(self._checked_address(factory_address))
        conn = self.pool.get_read_connection()
        try:
            if creator is None:
                return factory.all_markets(conn)
            return factory.markets_by_creator(conn, creator)
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e

    def read_market_state(
        self, contract_address: str, *, version_hint: str | None = None
    ) -> OnChainMarketState:
        address = self._checked_address(contract_address)
        escrow = self._escrow(address, version_hint)
        conn = self.pool.get_read_connection()
        try:
            return escrow.read_state(conn)
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e

    def read_user_shares(
        self, contract_address: str, user: str, *, version_hint: str | None = None
    ) -> dict[str, int]:
        """On-chain shares (wei) held by `user` per side."""
        address = self._checked_address(contract_address)
        escrow = self._escrow(address, version_hint)
        conn = self.pool.get_read_connection()
        try:
            return {side: escrow.user_shares(conn, user, side) for side in ("yes", "no")}
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e

    def explorer_link(self, tx_hash: str) -> str | None:
        return f"{self.explorer_url}/tx/{tx_hash}" if self.explorer_url else None

    # --- internals ---

    def _checked_address(self, contract_address: str) -> str:
        if not is_valid_address(contract_address):
            raise InvalidContractError(
                "Trading unavailable for this market", details={"address": contract_address}
            )
        return normalize_address(contract_address)

    def _escrow(self, address: str, version_hint: str | None) -> EscrowContract:
        try:
            version = self.resolver.resolve_version(address, version_hint)
        except CoordinatorError:
            raise
        except Exception as e:
            raise translate_chain_error(e, funding_url=self.funding_url) from e
        return escrow_for(address, version)

    def _writer(self) -> ChainConnection:
        wallet = self.pool.wallet
        if wallet is None or not wallet.is_unlocked:
            raise NoWalletError("Please connect your wallet first")
        require_network(wallet.chain_id, self.settlement_chain_id, self.settlement_chain_name)
        return self.pool.get_write_connection()

    def _submit(
        self, action: str, contract_address: str, version_hint: str | None, send: Submit
    ) -> TxResult:
        conn = self._writer()
        address = self._checked_address(contract_address)
        was_cached = self.resolver.cached(address) is not None
        escrow = self._escrow(address, version_hint)
        try:
            return self._execute(action, conn, escrow, send)
        except CoordinatorError as err:
            if not (was_cached and is_untranslated_revert(err)):
                raise
            fresh = self._reprobe(address, escrow.version)
            if fresh is None:
                raise
            log.warning(
                "stale_contract_binding",
                address=address,
                cached=escrow.version.value,
                detected=fresh.version.value,
                action=action,
            )
            return self._execute(action, conn, fresh, send)

    def _reprobe(self, address: str, previous: ContractVersion) -> EscrowContract | None:
        self.resolver.clear(address)
        version = self.resolver.resolve_version(address)
        if version in (previous, ContractVersion.INVALID):
            return None
        return escrow_for(address, version)

    def _execute(
        self, action: str, conn: ChainConnection, escrow: EscrowContract, send: Submit
    ) -> TxResult:
        tx, _ = self._confirm(action, conn, escrow.address, lambda: send(escrow, conn))
        return tx

    def _confirm(
        self, action: str, conn: ChainConnection, address: str, send: Callable[[], str]
    ) -> tuple[TxResult, dict[str, Any]]:
        """Submit, wait for one confirmation, and return the result with its receipt."""
        try:
            tx_hash = send()
            log.info("tx_submitted", action=action, address=address, tx_hash=tx_hash)
            receipt = conn.wait_for_receipt(tx_hash)
        except CoordinatorError:
            raise
        except Exception as e:
            err = translate_chain_error(e, funding_url=self.funding_url)
            log.warning("tx_failed", action=action, address=address, code=err.code, error=err.message)
            raise err from e
        if receipt.get("status") != 1:
            log.warning("tx_reverted", action=action, address=address, tx_hash=tx_hash)
            raise ContractRevertError("Transaction failed", details={"tx_hash": tx_hash})
        log.info(
            "tx_confirmed",
            action=action,
            address=address,
            tx_hash=tx_hash,
            block=receipt.get("blockNumber"),
        )
        tx = TxResult(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            explorer_url=self.explorer_link(tx_hash),
        )
        return tx, receipt
