"""Wallet boundary - accounts, network selection, signing, change notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, cast

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import HTTPProvider, Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from predbridge.chain.providers import ChainConnection
from predbridge.errors import NoWalletError, WrongNetworkError

if TYPE_CHECKING:
    from predbridge.config.settings import Settings

log = structlog.get_logger(__name__)

AccountsListener = Callable[[list[str]], None]
ChainListener = Callable[[int], None]


@dataclass(frozen=True)
class NetworkConfig:
    """A chain the wallet can be pointed at."""

    chain_id: int
    name: str
    rpc_url: str
    explorer_url: str | None = None


class WalletConnection(Protocol):
    """What the coordinator needs from a connected wallet."""

    @property
    def address(self) -> str | None: ...
    @property
    def chain_id(self) -> int | None: ...
    @property
    def is_unlocked(self) -> bool: ...
    def request_accounts(self) -> list[str]: ...
    def switch_chain(self, chain_id: int) -> None: ...
    def add_chain(self, network: NetworkConfig) -> None: ...
    def connection(self) -> ChainConnection: ...
    def subscribe(
        self,
        on_accounts_changed: AccountsListener | None = None,
        on_chain_changed: ChainListener | None = None,
    ) -> None: ...


class LocalWallet:
    """Wallet backed by a local private key, signing through web3 middleware."""

    def __init__(
        self,
        private_key: str,
        networks: list[NetworkConfig],
        chain_id: int,
        *,
        request_timeout: float = 10.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._account: LocalAccount | None = cast(LocalAccount, Account.from_key(private_key))
        self._networks = {n.chain_id: n for n in networks}
        if chain_id not in self._networks:
            raise WrongNetworkError(f"Unknown chain {chain_id}; add it first")
        self._chain_id = chain_id
        self._request_timeout = request_timeout
        self._receipt_timeout = receipt_timeout
        self._connections: dict[int, ChainConnection] = {}
        self._account_listeners: list[AccountsListener] = []
        self._chain_listeners: list[ChainListener] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> LocalWallet | None:
        """Build from the key in the configured environment variable, or None if unset."""
        key = settings.private_key
        if not key:
            return None
        networks = [
            NetworkConfig(
                chain_id=settings.settlement_chain_id,
                name=settings.settlement_chain_name,
                rpc_url=settings.settlement_rpc_endpoints[0],
                explorer_url=settings.settlement_explorer_url,
            ),
            NetworkConfig(
                chain_id=settings.resolution_chain_id,
                name="Resolution chain",
                rpc_url=settings.resolution_rpc_url,
            ),
        ]
        return cls(
            key,
            networks,
            settings.settlement_chain_id,
            request_timeout=settings.request_timeout_sec,
            receipt_timeout=settings.receipt_timeout_sec,
        )

    @property
    def address(self) -> str | None:
        return self._account.address if self._account is not None else None

    @property
    def chain_id(self) -> int | None:
        return self._chain_id

    @property
    def is_unlocked(self) -> bool:
        return self._account is not None

    def request_accounts(self) -> list[str]:
        if self._account is None:
            raise NoWalletError("Wallet is locked")
        return [self._account.address]

    def add_chain(self, network: NetworkConfig) -> None:
        self._networks[network.chain_id] = network
        self._connections.pop(network.chain_id, None)

    def switch_chain(self, chain_id: int) -> None:
        if chain_id not in self._networks:
            raise WrongNetworkError(f"Unknown chain {chain_id}; add it first")
        if chain_id == self._chain_id:
            return
        self._chain_id = chain_id
        log.info("wallet_chain_changed", chain_id=chain_id)
        for listener in self._chain_listeners:
            listener(chain_id)

    def lock(self) -> None:
        """Drop the key; listeners see an empty account list."""
        self._account = None
        self._connections.clear()
        for listener in self._account_listeners:
            listener([])

    def subscribe(
        self,
        on_accounts_changed: AccountsListener | None = None,
        on_chain_changed: ChainListener | None = None,
    ) -> None:
        if on_accounts_changed is not None:
            self._account_listeners.append(on_accounts_changed)
        if on_chain_changed is not None:
            self._chain_listeners.append(on_chain_changed)

    def connection(self) -> ChainConnection:
        if self._account is None:
            raise NoWalletError("Wallet is locked")
        conn = self._connections.get(self._chain_id)
        if conn is None:
            network = self._networks[self._chain_id]
            web3 = Web3(HTTPProvider(network.rpc_url, request_kwargs={"timeout": self._request_timeout}))
            web3.middleware_onion.add(cast(Any, SignAndSendRawMiddlewareBuilder.build(self._account)))
            web3.eth.default_account = self._account.address
            conn = ChainConnection(
                web3,
                network.rpc_url,
                account=self._account.address,
                receipt_timeout=self._receipt_timeout,
            )
            self._connections[self._chain_id] = conn
        return conn
