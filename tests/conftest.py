"""Shared fixtures: temp DuckDB, in-memory settlement chain, fake wallet and resolution chain."""

from __future__ import annotations

import itertools
import tempfile
from pathlib import Path
from typing import Any

import pytest
from web3.exceptions import ContractLogicError

from predbridge.chain.providers import ProviderPool, reset_endpoint_memo
from predbridge.chain.versions import ContractVersionResolver, clear_version_cache
from predbridge.coordinator import ResolutionCoordinator
from predbridge.ledger.shadow import ShadowLedger
from predbridge.models import Market
from predbridge.resolution.bridge import ResolutionBridge
from predbridge.resolution.remote import ResolutionStatus
from predbridge.settlement.claims import ClaimSettlement
from predbridge.storage.db import get_connection, init_schema
from predbridge.storage.markets import upsert_market
from predbridge.trading.adapter import TradeExecutionAdapter

SETTLEMENT_CHAIN_ID = 84532
FACTORY = "0xb7f06cc21dee9b1fc0349d08c72ff5c632fec2d7"
CREATOR = "0x" + "c1" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
LEGACY_ADDR = "0x" + "11" * 20
CURRENT_ADDR = "0x" + "22" * 20
EMPTY_ADDR = "0x" + "33" * 20
RESOLVER_ADDR = "0x" + "44" * 20
ENDPOINTS = ["https://primary.example", "https://fallback.example"]

DAY_MS = 86_400_000
T0 = 1_700_000_000_000  # ms epoch; "day 0"
WEI = 10**18


def revert(reason: str) -> ContractLogicError:
    return ContractLogicError(f"execution reverted: {reason}")


class WalletRejected(Exception):
    code = 4001

    def __init__(self) -> None:
        super().__init__("User rejected the request.")
        self.message = "User rejected the request."


# --- settlement chain ---


class FakeEscrow:
    """Common state for both escrow generations. Shares are 1:1 with wei staked."""

    def __init__(self, chain: FakeChain, creator: str, end_time: int) -> None:
        self.chain = chain
        self.creator = creator
        self.resolver = creator  # address allowed to call resolve()
        self.end_time = end_time  # seconds
        self.resolved = False
        self.winner = 0
        self.pool = 0
        self.totals = {1: 0, 2: 0}
        self.holdings: dict[tuple[str, int], int] = {}
        self.claimed: set[str] = set()
        self.writes: list[tuple[str, tuple, int]] = []

    def _now(self) -> int:
        return self.chain.now_ms // 1000

    def _buy(self, code: int, sender: str, value: int) -> None:
        if self.resolved:
            raise revert("Market resolved")
        if self._now() >= self.end_time:
            raise revert("Market closed")
        if value <= 0:
            raise revert("Below minimum")
        self.totals[code] += value
        self.pool += value
        key = (sender, code)
        self.holdings[key] = self.holdings.get(key, 0) + value

    def _resolve(self, code: int, sender: str) -> None:
        if sender != self.resolver:
            raise revert("Only creator")
        if self._now() < self.end_time:
            raise revert("Market not ended")
        if self.resolved:
            raise revert("Market resolved")
        self.resolved = True
        self.winner = code

    def _claim(self, sender: str) -> None:
        if not self.resolved:
            raise revert("Market not resolved")
        if sender in self.claimed:
            raise revert("Already claimed")
        shares = self.holdings.get((sender, self.winner), 0)
        if shares == 0:
            raise revert("No winning shares")
        self.holdings[(sender, self.winner)] = 0
        self.claimed.add(sender)

    def seed(self, sender: str, code: int, shares: int) -> None:
        self.holdings[(sender, code)] = self.holdings.get((sender, code), 0) + shares
        self.totals[code] += shares

    def view(self, fn: str, args: tuple) -> Any:
        raise NotImplementedError

    def write(self, fn: str, args: tuple, sender: str, value: int) -> None:
        raise NotImplementedError


class FakeLegacyEscrow(FakeEscrow):
    def view(self, fn: str, args: tuple) -> Any:
        views = {
            "isResolved": lambda: self.resolved,
            "winner": lambda: self.winner,
            "endDate": lambda: self.end_time,
            "creator": lambda: self.creator,
            "totalPool": lambda: self.pool,
            "totalShares": lambda: self.totals[args[0]],
            "userShares": lambda: self.holdings.get((args[0].lower(), args[1]), 0),
        }
        if fn not in views:
            raise revert("")
        return views[fn]()

    def write(self, fn: str, args: tuple, sender: str, value: int) -> None:
        if fn == "buyShares":
            self._buy(args[0], sender, value)
        elif fn == "sellShares":
            code, amount = args
            held = self.holdings.get((sender, code), 0)
            if self.resolved:
                raise revert("Market resolved")
            if amount > held:
                raise revert("Insufficient shares")
            self.holdings[(sender, code)] = held - amount
            self.totals[code] -= amount
            self.pool -= amount
        elif fn == "resolve":
            self._resolve(args[0], sender)
        elif fn == "claimWinnings":
            self._claim(sender)
        else:
            raise revert("")


class FakeCurrentEscrow(FakeEscrow):
    def view(self, fn: str, args: tuple) -> Any:
        views = {
            "resolved": lambda: self.resolved,
            "outcome": lambda: self.winner,
            "endTime": lambda: self.end_time,
            "creator": lambda: self.creator,
            "yesPool": lambda: self.totals[1],
            "noPool": lambda: self.totals[2],
            "yesShares": lambda: self.holdings.get((args[0].lower(), 1), 0),
            "noShares": lambda: self.holdings.get((args[0].lower(), 2), 0),
        }
        if fn not in views:
            # No legacy views on this shape; the call reverts.
            raise revert("")
        return views[fn]()

    def write(self, fn: str, args: tuple, sender: str, value: int) -> None:
        if fn == "buyYes":
            self._buy(1, sender, value)
        elif fn == "buyNo":
            self._buy(2, sender, value)
        elif fn == "resolve":
            self._resolve(args[0], sender)
        elif fn == "claimWinnings":
            self._claim(sender)
        else:
            raise revert("")


class FakeFactory:
    """Deploys FakeCurrentEscrow markets and announces each with a MarketCreated log."""

    def __init__(self, chain: FakeChain, address: str, fee: int = 0) -> None:
        self.chain = chain
        self.address = address.lower()
        self.fee = fee
        self.markets: list[tuple[str, str]] = []  # (market address, creator)
        self.writes: list[tuple[str, tuple, int]] = []
        self.silent = False

    def view(self, fn: str, args: tuple) -> Any:
        views = {
            "creationFee": lambda: self.fee,
            "marketCount": lambda: len(self.markets),
            "getAllMarkets": lambda: [m for m, _ in self.markets],
            "getMarketsByCreator": lambda: [m for m, c in self.markets if c == args[0].lower()],
        }
        if fn not in views:
            raise revert("")
        return views[fn]()

    def write(self, fn: str, args: tuple, sender: str, value: int) -> None:
        if fn != "createMarket":
            raise revert("")
        question, _description, days = args
        if value < self.fee:
            raise revert("Insufficient fee")
        if not 1 <= days <= 365:
            raise revert("Invalid duration")
        market_id = len(self.markets) + 1
        address = f"0x{0xFAC000 + market_id:040x}"
        end_s = self.chain.now_ms // 1000 + days * 86_400
        escrow = self.chain.deploy_current(address, creator=self.address, end_ms=end_s * 1000)
        escrow.resolver = sender
        self.markets.append((address, sender))
        if not self.silent:
            self.chain.pending_logs.append(
                {
                    "address": self.address,
                    "event": "MarketCreated",
                    "args": {
                        "marketId": market_id,
                        "marketAddress": address,
                        "creator": sender,
                        "question": question,
                        "endTime": end_s,
                    },
                }
            )


class FakeConnection:
    """Stands in for ChainConnection; counts every RPC it would make."""

    def __init__(self, chain: FakeChain, endpoint: str, account: str | None = None) -> None:
        self.chain = chain
        self.endpoint = endpoint
        self.account = account
        self.rpc_calls = 0

    def _rpc(self) -> None:
        self.rpc_calls += 1
        self.chain.rpc_calls += 1
        if self.endpoint in self.chain.down:
            raise ConnectionError(f"cannot reach {self.endpoint}")

    def _raise_planned(self, method: str) -> None:
        error = self.chain.rpc_errors.get(method)
        if error is not None:
            raise error

    def block_number(self) -> int:
        self._rpc()
        return 1000

    def chain_id(self) -> int:
        return self.chain.chain_id

    def get_code(self, address: str) -> bytes:
        self._rpc()
        self._raise_planned("eth_getCode")
        return b"\x60\x80" if address.lower() in self.chain.contracts else b""

    def call(self, address: str, abi: list, function_name: str, *args: Any) -> Any:
        self._rpc()
        self._raise_planned(function_name)
        return self.chain.contracts[address.lower()].view(function_name, args)

    def transact(self, address: str, abi: list, function_name: str, *args: Any, value: int = 0) -> str:
        self._rpc()
        if self.chain.reject_next:
            self.chain.reject_next = False
            raise WalletRejected()
        self.chain.submitted.append(function_name)
        contract = self.chain.contracts[address.lower()]
        contract.write(function_name, args, self.account, value)
        contract.writes.append((function_name, args, value))
        tx_hash = f"0x{next(self.chain.tx_counter):064x}"
        self.chain.logs[tx_hash], self.chain.pending_logs = self.chain.pending_logs, []
        self.chain.receipts[tx_hash] = 0 if self.chain.fail_receipts else 1
        return tx_hash

    def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        self._rpc()
        return {
            "status": self.chain.receipts[tx_hash],
            "blockNumber": 1001,
            "transactionHash": tx_hash,
            "logs": self.chain.logs.get(tx_hash, []),
        }

    def events(self, address: str, abi: list, event_name: str, receipt: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            dict(entry["args"])
            for entry in receipt["logs"]
            if entry["event"] == event_name and entry["address"] == address.lower()
        ]


class FakeChain:
    def __init__(self, chain_id: int = SETTLEMENT_CHAIN_ID, now_ms: int = T0) -> None:
        self.chain_id = chain_id
        self.now_ms = now_ms
        self.contracts: dict[str, FakeEscrow] = {}
        self.down: set[str] = set()
        self.receipts: dict[str, int] = {}
        self.tx_counter = itertools.count(1)
        self.rpc_calls = 0
        self.reject_next = False
        self.fail_receipts = False
        # method or view name -> error the node answers with
        self.rpc_errors: dict[str, Exception] = {}
        self.submitted: list[str] = []
        self.pending_logs: list[dict[str, Any]] = []
        self.logs: dict[str, list[dict[str, Any]]] = {}

    def clock(self) -> int:
        return self.now_ms

    def deploy_legacy(self, address: str, creator: str = CREATOR, end_ms: int = T0 + DAY_MS) -> FakeLegacyEscrow:
        contract = FakeLegacyEscrow(self, creator.lower(), end_ms // 1000)
        self.contracts[address.lower()] = contract
        return contract

    def deploy_current(self, address: str, creator: str = FACTORY, end_ms: int = T0 + DAY_MS) -> FakeCurrentEscrow:
        contract = FakeCurrentEscrow(self, creator.lower(), end_ms // 1000)
        self.contracts[address.lower()] = contract
        return contract

    def deploy_factory(self, address: str = FACTORY, fee: int = 0) -> FakeFactory:
        factory = FakeFactory(self, address, fee)
        self.contracts[address.lower()] = factory
        return factory

    def connect(self, endpoint: str, account: str | None = None) -> FakeConnection:
        return FakeConnection(self, endpoint, account)


class FakeWallet:
    def __init__(self, chain: FakeChain, address: str = ALICE, chain_id: int = SETTLEMENT_CHAIN_ID) -> None:
        self.chain = chain
        self._address: str | None = address.lower()
        self._chain_id = chain_id
        self.account_listeners: list = []
        self.chain_listeners: list = []

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def chain_id(self) -> int | None:
        return self._chain_id

    @property
    def is_unlocked(self) -> bool:
        return self._address is not None

    def request_accounts(self) -> list[str]:
        return [self._address] if self._address else []

    def switch_chain(self, chain_id: int) -> None:
        self._chain_id = chain_id
        for listener in self.chain_listeners:
            listener(chain_id)

    def add_chain(self, network: Any) -> None:
        pass

    def use_account(self, address: str | None) -> None:
        self._address = address.lower() if address else None
        for listener in self.account_listeners:
            listener([self._address] if self._address else [])

    def connection(self) -> FakeConnection:
        return self.chain.connect("wallet", self._address)

    def subscribe(self, on_accounts_changed=None, on_chain_changed=None) -> None:
        if on_accounts_changed:
            self.account_listeners.append(on_accounts_changed)
        if on_chain_changed:
            self.chain_listeners.append(on_chain_changed)


# --- resolution chain ---


class FakeResolutionClient:
    def __init__(self, outcome: str = "yes", rationale: str = "Source confirms the event happened.") -> None:
        self.outcome = outcome
        self.rationale = rationale
        self.error: Exception | None = None
        self.requests: list[str] = []

    def request_resolution(self, address: str) -> ResolutionStatus:
        self.requests.append(address)
        if self.error is not None:
            raise self.error
        return ResolutionStatus(
            address=address, resolved=True, outcome=self.outcome, rationale=self.rationale, tx_hash="0xgen1"
        )

    def read_status(self, address: str) -> ResolutionStatus:
        done = bool(self.requests) and self.error is None
        return ResolutionStatus(
            address=address,
            resolved=done,
            outcome=self.outcome if done else None,
            rationale=self.rationale if done else "",
        )


# --- fixtures ---


@pytest.fixture(autouse=True)
def _reset_process_caches():
    clear_version_cache()
    reset_endpoint_memo()
    yield
    clear_version_cache()
    reset_endpoint_memo()


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def wallet(chain: FakeChain) -> FakeWallet:
    return FakeWallet(chain)


@pytest.fixture
def pool(chain: FakeChain, wallet: FakeWallet) -> ProviderPool:
    return ProviderPool(SETTLEMENT_CHAIN_ID, ENDPOINTS, wallet=wallet, connect=chain.connect)


@pytest.fixture
def adapter(pool: ProviderPool) -> TradeExecutionAdapter:
    return TradeExecutionAdapter(
        pool,
        ContractVersionResolver(pool),
        settlement_chain_id=SETTLEMENT_CHAIN_ID,
        settlement_chain_name="Base Sepolia",
        explorer_url="https://sepolia.basescan.org",
        funding_url="https://faucet.example",
    )


@pytest.fixture
def remote() -> FakeResolutionClient:
    return FakeResolutionClient()


@pytest.fixture
def coordinator(temp_db, chain, pool, adapter, remote) -> ResolutionCoordinator:
    ledger = ShadowLedger(temp_db, clock=chain.clock)
    bridge = ResolutionBridge(adapter, temp_db, remote=remote, factory_addresses=[FACTORY], clock=chain.clock)
    return ResolutionCoordinator(
        temp_db,
        pool,
        adapter,
        ledger,
        bridge,
        ClaimSettlement(adapter, ledger),
        factory_address=FACTORY,
        clock=chain.clock,
    )


def make_market(conn, market_id: str = "m1", **fields: Any) -> Market:
    data = {
        "market_id": market_id,
        "question": "Will it happen?",
        "created_at": T0 - DAY_MS,
        "end_time": T0 + DAY_MS,
        "creator_address": CREATOR,
    }
    data.update(fields)
    market = Market(**data)
    upsert_market(conn, market)
    return market
