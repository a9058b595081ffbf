"""Resolution-chain client - trigger AI consensus and read its finalized outcome."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Protocol

import httpx
import structlog
from pydantic import BaseModel

from predbridge.errors import (
    ContractRevertError,
    NetworkUnavailableError,
    ResolutionPendingError,
    UserRejectedError,
)
from predbridge.models import Side, side_from_code

if TYPE_CHECKING:
    from predbridge.config.settings import Settings

log = structlog.get_logger(__name__)

FINALIZED_STATUSES = frozenset({"ACCEPTED", "FINALIZED"})
FAILED_STATUSES = frozenset({"UNDETERMINED", "CANCELED", "LEADER_TIMEOUT", "VALIDATORS_TIMEOUT"})


class ResolutionStatus(BaseModel):
    """What the resolution contract currently reports."""

    address: str
    resolved: bool
    outcome: Side | None = None
    rationale: str = ""
    tx_hash: str | None = None


class ResolutionChainClient(Protocol):
    def request_resolution(self, address: str) -> ResolutionStatus:
        """Trigger consensus and return only once a finalized outcome exists."""
        ...

    def read_status(self, address: str) -> ResolutionStatus: ...


class HttpResolutionChainClient:
    """JSON-RPC client for the resolution chain over httpx.

    The three RPC method names (call, send, receipt) come from config so the
    client can follow the node's naming.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        methods: dict[str, str] | None = None,
        sender: str | None = None,
        poll_interval: float = 3.0,
        timeout: float = 600.0,
        request_timeout: float = 30.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc_url = rpc_url
        self.methods = {
            "call": "gen_call",
            "send": "gen_sendTransaction",
            "receipt": "gen_getTransactionReceipt",
            **(methods or {}),
        }
        self.sender = sender
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=request_timeout)
        self._sleep = sleep
        self._monotonic = monotonic
        self._next_id = 0

    @classmethod
    def from_settings(cls, settings: Settings, sender: str | None = None) -> HttpResolutionChainClient:
        return cls(
            settings.resolution_rpc_url,
            methods=settings.resolution_rpc_methods,
            sender=sender,
            poll_interval=settings.resolution_poll_interval_sec,
            timeout=settings.resolution_timeout_sec,
            request_timeout=settings.request_timeout_sec,
        )

    def close(self) -> None:
        self._client.close()

    def _rpc(self, kind: str, params: list[Any]) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": self.methods[kind], "params": params}
        try:
            resp = self._client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise NetworkUnavailableError(
                "Resolution chain unreachable", details={"rpc_url": self.rpc_url, "reason": str(e)}
            ) from e
        error = body.get("error")
        if error:
            message = str(error.get("message", error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if code == 4001 or "rejected" in message.lower():
                raise UserRejectedError("Transaction cancelled")
            raise ContractRevertError(message[:100], details={"method": payload["method"]})
        return body.get("result")

    def _read(self, address: str, function: str) -> Any:
        return self._rpc("call", [{"to": address, "function": function, "args": []}])

    def read_status(self, address: str) -> ResolutionStatus:
        resolved = bool(self._read(address, "resolved"))
        code = self._read(address, "outcome")
        try:
            rationale = self._read(address, "resolution_reasoning") or ""
        except ContractRevertError:
            rationale = ""
        try:
            outcome: Side | None = side_from_code(int(code)) if code is not None else None
        except ValueError:
            outcome = None
        return ResolutionStatus(address=address, resolved=resolved, outcome=outcome, rationale=str(rationale))

    def _wait_finalized(self, tx_hash: str) -> str:
        deadline = self._monotonic() + self.timeout
        while True:
            receipt = self._rpc("receipt", [tx_hash]) or {}
            status = str(receipt.get("status", "")).upper()
            if status in FINALIZED_STATUSES:
                return status
            if status in FAILED_STATUSES:
                raise ContractRevertError(
                    f"Resolution transaction ended as {status}", details={"tx_hash": tx_hash}
                )
            if self._monotonic() >= deadline:
                raise ResolutionPendingError(
                    "Consensus has not finalized yet; try again later",
                    details={"tx_hash": tx_hash, "status": status or None},
                )
            self._sleep(self.poll_interval)

    def request_resolution(self, address: str) -> ResolutionStatus:
        tx: dict[str, Any] = {"to": address, "function": "resolve", "args": [], "value": 0}
        if self.sender:
            tx["from"] = self.sender
        tx_hash = str(self._rpc("send", [tx]))
        log.info("consensus_requested", address=address, tx_hash=tx_hash)
        status = self._wait_finalized(tx_hash)
        result = self.read_status(address)
        if not result.resolved or result.outcome is None:
            raise ResolutionPendingError(
                "Consensus finished without a usable outcome",
                details={"address": address, "tx_hash": tx_hash},
            )
        log.info("consensus_finalized", address=address, status=status, outcome=result.outcome)
        return result.model_copy(update={"tx_hash": tx_hash})
