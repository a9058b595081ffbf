"""Coordinator error taxonomy.

Every chain-call failure is translated into one of these before it reaches a
caller of the coordinator. Each class carries a stable machine-readable
``code`` (used by the API and ActionResult) and a ``details`` dict for context.
"""

from __future__ import annotations

from typing import Any


class CoordinatorError(Exception):
    """Base for all typed coordinator failures."""

    code: str = "coordinator_error"
    retryable: bool = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UserRejectedError(CoordinatorError):
    """The wallet owner cancelled the transaction. Informational, never retried."""

    code = "user_rejected"


class NetworkUnavailableError(CoordinatorError):
    """Every configured RPC endpoint is unreachable."""

    code = "network_unavailable"
    retryable = True


class NoWalletError(CoordinatorError):
    code = "no_wallet"


class WrongNetworkError(CoordinatorError):
    code = "wrong_network"


class InvalidContractError(CoordinatorError):
    """No code at the address, or not a recognized escrow interface."""

    code = "invalid_contract"


class MarketClosedOrResolvedError(CoordinatorError):
    code = "market_closed"


class MarketNotEndedError(MarketClosedOrResolvedError):
    code = "market_not_ended"


class MarketAlreadyResolvedError(MarketClosedOrResolvedError):
    code = "market_already_resolved"


class NotAuthorizedError(CoordinatorError):
    code = "not_authorized"

    def __init__(
        self,
        message: str,
        *,
        recognized_address: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged["recognized_address"] = recognized_address
        super().__init__(message, details=merged)
        self.recognized_address = recognized_address


class InsufficientFundsError(CoordinatorError):
    code = "insufficient_funds"

    def __init__(
        self,
        message: str,
        *,
        funding_url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged["funding_url"] = funding_url
        super().__init__(message, details=merged)
        self.funding_url = funding_url


class AlreadyClaimedError(CoordinatorError):
    """Terminal: the position was already paid out."""

    code = "already_claimed"


class NothingToClaimError(CoordinatorError):
    code = "nothing_to_claim"


class UnsupportedOperationError(CoordinatorError):
    """The contract's interface version has no such operation."""

    code = "unsupported_operation"


class ContractRevertError(CoordinatorError):
    """Any other revert, reason truncated."""

    code = "contract_revert"


class ResolutionPendingError(CoordinatorError):
    """The resolution chain has not produced a finalized outcome."""

    code = "resolution_pending"
    retryable = True


class InvalidTransitionError(CoordinatorError):
    code = "invalid_transition"


class LifecycleError(CoordinatorError):
    code = "lifecycle_violation"


class MarketNotFoundError(CoordinatorError):
    code = "market_not_found"


class InvalidInputError(CoordinatorError):
    """Caller-supplied value out of range (amount, side, address)."""

    code = "invalid_input"
