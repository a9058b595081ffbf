"""Address and network validation."""

import pytest

from predbridge.chain.validation import (
    is_resolution_network,
    is_settlement_network,
    is_valid_address,
    normalize_address,
    require_network,
    same_address,
)
from predbridge.errors import WrongNetworkError


def test_valid_addresses():
    assert is_valid_address("0x" + "ab" * 20)
    assert is_valid_address("0xB7F06cC21DeE9b1FC0349d08C72fF5c632feC2d7")


@pytest.mark.parametrize(
    "value",
    ["", None, "0x", "0x123", "b7f06cc21dee9b1fc0349d08c72ff5c632fec2d7", "0x" + "g" * 40, "0x" + "a" * 41],
)
def test_malformed_addresses(value):
    assert not is_valid_address(value)


def test_normalize_and_compare():
    mixed = "0xB7F06cC21DeE9b1FC0349d08C72fF5c632feC2d7"
    assert normalize_address(mixed) == mixed.lower()
    assert same_address(mixed, mixed.lower())
    assert not same_address(mixed, None)


def test_network_checks():
    assert is_settlement_network(84532, 84532)
    assert not is_settlement_network(None, 84532)
    assert is_resolution_network(4221, 4221)
    require_network(84532, 84532, "Base Sepolia")
    with pytest.raises(WrongNetworkError) as exc:
        require_network(1, 84532, "Base Sepolia")
    assert exc.value.details["expected_chain_id"] == 84532
