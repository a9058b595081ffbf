"""Provider pool - wallet-bound write connection and rotating read-only connection."""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING, Any, Callable

import structlog
from web3 import HTTPProvider, Web3
from web3.exceptions import TimeExhausted
from web3.logs import DISCARD

from predbridge.errors import NetworkUnavailableError, NoWalletError

if TYPE_CHECKING:
    from predbridge.chain.wallet import WalletConnection
    from predbridge.config.settings import Settings

log = structlog.get_logger(__name__)

# Process-wide: chain_id -> endpoint that last answered the liveness probe.
_endpoint_memo: dict[int, str] = {}
_memo_lock = Lock()


def reset_endpoint_memo(chain_id: int | None = None) -> None:
    """Forget the memoized endpoint for one chain, or all of them."""
    with _memo_lock:
        if chain_id is None:
            _endpoint_memo.clear()
        else:
            _endpoint_memo.pop(chain_id, None)


def memoized_endpoint(chain_id: int) -> str | None:
    with _memo_lock:
        return _endpoint_memo.get(chain_id)


def is_transport_error(exc: BaseException) -> bool:
    """True for failures of the connection itself rather than of the contract call."""
    # requests exceptions derive from OSError
    return isinstance(exc, (OSError, TimeExhausted))


class ChainConnection:
    """One web3 connection bound to one endpoint (and optionally a signing account)."""

    def __init__(
        self,
        web3: Web3,
        endpoint: str,
        *,
        account: str | None = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        self.web3 = web3
        self.endpoint = endpoint
        self.account = account
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        request_timeout: float = 10.0,
        receipt_timeout: float = 120.0,
    ) -> ChainConnection:
        provider = HTTPProvider(url, request_kwargs={"timeout": request_timeout})
        return cls(Web3(provider), url, receipt_timeout=receipt_timeout)

    def block_number(self) -> int:
        return int(self.web3.eth.block_number)

    def chain_id(self) -> int:
        return int(self.web3.eth.chain_id)

    def get_code(self, address: str) -> bytes:
        return bytes(self.web3.eth.get_code(Web3.to_checksum_address(address)))

    def _function(self, address: str, abi: list[dict[str, Any]], function_name: str, args: tuple[Any, ...]):
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return getattr(contract.functions, function_name)(*args)

    def call(self, address: str, abi: list[dict[str, Any]], function_name: str, *args: Any) -> Any:
        """Call a view function."""
        return self._function(address, abi, function_name, args).call()

    def transact(
        self,
        address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        *args: Any,
        value: int = 0,
    ) -> str:
        """Sign and submit a transaction; return its hash without waiting."""
        if not self.account:
            raise NoWalletError("Connection has no signing account")
        tx_hash = self._function(address, abi, function_name, args).transact(
            {"from": Web3.to_checksum_address(self.account), "value": value}
        )
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        """Block until the transaction is mined (or the receipt timeout passes)."""
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        return {
            "status": int(receipt["status"]),
            "blockNumber": receipt.get("blockNumber"),
            "transactionHash": tx_hash,
            "logs": list(receipt.get("logs") or []),
        }

    def events(
        self, address: str, abi: list[dict[str, Any]], event_name: str, receipt: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Decoded arguments of every `event_name` log in a receipt; other logs are skipped."""
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        decoded = getattr(contract.events, event_name)().process_receipt(receipt, errors=DISCARD)
        return [dict(entry["args"]) for entry in decoded]


ConnectionFactory = Callable[[str], ChainConnection]


class ProviderPool:
    """Supplies the wallet-bound write connection and a failover read connection."""

    def __init__(
        self,
        chain_id: int,
        endpoints: list[str],
        *,
        wallet: WalletConnection | None = None,
        connect: ConnectionFactory | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("at least one RPC endpoint is required")
        self.chain_id = chain_id
        self.endpoints = list(endpoints)
        self._wallet = wallet
        self._connect = connect or ChainConnection.from_url
        self._connections: dict[str, ChainConnection] = {}

    @classmethod
    def from_settings(cls, settings: Settings, wallet: WalletConnection | None = None) -> ProviderPool:
        def connect(url: str) -> ChainConnection:
            return ChainConnection.from_url(
                url,
                request_timeout=settings.request_timeout_sec,
                receipt_timeout=settings.receipt_timeout_sec,
            )

        return cls(
            settings.settlement_chain_id,
            settings.settlement_rpc_endpoints,
            wallet=wallet,
            connect=connect,
        )

    @property
    def wallet(self) -> WalletConnection | None:
        return self._wallet

    def set_wallet(self, wallet: WalletConnection | None) -> None:
        self._wallet = wallet

    def get_write_connection(self) -> ChainConnection:
        if self._wallet is None or not self._wallet.is_unlocked:
            raise NoWalletError("Please connect your wallet first")
        return self._wallet.connection()

    def _connection_for(self, endpoint: str) -> ChainConnection:
        conn = self._connections.get(endpoint)
        if conn is None:
            conn = self._connect(endpoint)
            self._connections[endpoint] = conn
        return conn

    def _rotation_order(self) -> list[str]:
        remembered = memoized_endpoint(self.chain_id)
        if remembered in self.endpoints:
            return [remembered] + [e for e in self.endpoints if e != remembered]
        return list(self.endpoints)

    def get_read_connection(self) -> ChainConnection:
        """Probe endpoints once, in rotation order, and return the first live one."""
        tried: list[str] = []
        for endpoint in self._rotation_order():
            conn = self._connection_for(endpoint)
            try:
                conn.block_number()
            except Exception as e:
                log.warning("rpc_endpoint_unreachable", endpoint=endpoint, error=str(e))
                tried.append(endpoint)
                continue
            with _memo_lock:
                previous = _endpoint_memo.get(self.chain_id)
                _endpoint_memo[self.chain_id] = endpoint
            if previous != endpoint:
                log.info("rpc_endpoint_selected", chain_id=self.chain_id, endpoint=endpoint)
            return conn
        raise NetworkUnavailableError(
            "All settlement-chain RPC endpoints are unreachable",
            details={"endpoints": tried},
        )
