"""Pari-mutuel payout arithmetic in integer wei.

Floor division everywhere, so the sum of all winners' payouts never exceeds
the pool; the undistributed remainder is below one wei per claimant.
"""

from __future__ import annotations

from decimal import Decimal

from predbridge.errors import ContractRevertError

WEI_PER_UNIT = 10**18


def to_wei_units(amount: Decimal | float | str) -> int:
    """Native units to wei, truncating anything below one wei."""
    return int(Decimal(str(amount)) * WEI_PER_UNIT)


def from_wei(amount_wei: int) -> Decimal:
    return Decimal(amount_wei) / WEI_PER_UNIT


def payout_wei(winning_shares: int, total_pool: int, total_winning_shares: int) -> int:
    """winning_shares / total_winning_shares of total_pool, floored."""
    if winning_shares <= 0 or total_winning_shares <= 0 or total_pool <= 0:
        return 0
    if winning_shares > total_winning_shares:
        raise ContractRevertError(
            "Position holds more shares than the winning side in total",
            details={
                "winning_shares": winning_shares,
                "total_winning_shares": total_winning_shares,
                "total_pool": total_pool,
            },
        )
    return winning_shares * total_pool // total_winning_shares
