"""Address and network checks. Pure functions, no I/O."""

from __future__ import annotations

import re

from predbridge.errors import WrongNetworkError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(value: str | None) -> bool:
    """True for a syntactically well-formed settlement-chain address (0x + 40 hex)."""
    if not isinstance(value, str):
        return False
    return bool(_ADDRESS_RE.match(value.strip()))


def normalize_address(value: str) -> str:
    """Canonical lower-case form, used as cache and comparison key."""
    return value.strip().lower()


def same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return normalize_address(a) == normalize_address(b)


def is_settlement_network(chain_id: int | None, expected_chain_id: int) -> bool:
    return chain_id is not None and int(chain_id) == int(expected_chain_id)


def is_resolution_network(chain_id: int | None, expected_chain_id: int) -> bool:
    return chain_id is not None and int(chain_id) == int(expected_chain_id)


def require_network(chain_id: int | None, expected_chain_id: int, name: str) -> None:
    """Raise WrongNetworkError unless the wallet is on the expected chain."""
    if chain_id is None or int(chain_id) != int(expected_chain_id):
        raise WrongNetworkError(
            f"Please switch to {name} (chain {expected_chain_id})",
            details={"current_chain_id": chain_id, "expected_chain_id": expected_chain_id},
        )
