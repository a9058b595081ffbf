"""Translate raw settlement-chain failures into the coordinator's error taxonomy."""

from __future__ import annotations

from typing import Any

from predbridge.chain.providers import is_transport_error
from predbridge.errors import (
    AlreadyClaimedError,
    ContractRevertError,
    CoordinatorError,
    InsufficientFundsError,
    MarketAlreadyResolvedError,
    MarketClosedOrResolvedError,
    MarketNotEndedError,
    NetworkUnavailableError,
    NotAuthorizedError,
    UserRejectedError,
)

MAX_REASON_LENGTH = 100

USER_REJECTED_CODE = 4001
_REJECT_MARKERS = ("action_rejected", "user rejected", "user denied", "rejected by user")

# Checked in order; the first phrase found in the revert reason wins.
_GUARD_PHRASES: list[tuple[str, type[CoordinatorError]]] = [
    ("market not ended", MarketNotEndedError),
    ("market resolved", MarketAlreadyResolvedError),
    ("already resolved", MarketAlreadyResolvedError),
    ("market closed", MarketClosedOrResolvedError),
    ("trading closed", MarketClosedOrResolvedError),
    ("already claimed", AlreadyClaimedError),
    ("no winning shares", AlreadyClaimedError),
]


def _error_code(exc: BaseException) -> Any:
    code = getattr(exc, "code", None)
    if code is not None:
        return code
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0].get("code")
    return None


def error_reason(exc: BaseException) -> str:
    """Best human-readable reason carried by a web3 / RPC exception."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get("message", exc.args[0]))
    return str(exc) or type(exc).__name__


def is_user_rejection(exc: BaseException) -> bool:
    if _error_code(exc) in (USER_REJECTED_CODE, "ACTION_REJECTED"):
        return True
    reason = error_reason(exc).lower()
    return any(marker in reason for marker in _REJECT_MARKERS)


def truncate_reason(reason: str) -> str:
    return reason[:MAX_REASON_LENGTH]


def is_untranslated_revert(err: CoordinatorError) -> bool:
    """A revert none of the known guard phrases explained."""
    return type(err) is ContractRevertError


def translate_chain_error(exc: BaseException, *, funding_url: str | None = None) -> CoordinatorError:
    """Map one raw exception to a typed CoordinatorError. Typed errors pass through."""
    if isinstance(exc, CoordinatorError):
        return exc
    reason = error_reason(exc)
    lowered = reason.lower()
    if is_user_rejection(exc):
        return UserRejectedError("Transaction cancelled")
    if "insufficient funds" in lowered:
        return InsufficientFundsError(
            "Insufficient funds for this transaction. Get testnet funds from a faucet.",
            funding_url=funding_url,
        )
    if "only creator" in lowered:
        return NotAuthorizedError("Only the market creator can resolve this market")
    for phrase, cls in _GUARD_PHRASES:
        if phrase in lowered:
            return cls(truncate_reason(reason), details={"reason": truncate_reason(reason)})
    if is_transport_error(exc):
        return NetworkUnavailableError(
            "Settlement chain unreachable", details={"reason": truncate_reason(reason)}
        )
    return ContractRevertError(truncate_reason(reason), details={"reason": truncate_reason(reason)})
