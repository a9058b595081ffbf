"""Local key-backed wallet: accounts, network switching, notifications."""

import pytest

from predbridge.chain.wallet import LocalWallet, NetworkConfig
from predbridge.errors import NoWalletError, WrongNetworkError

KEY = "0x" + "01" * 32

NETWORKS = [
    NetworkConfig(chain_id=84532, name="Base Sepolia", rpc_url="https://sepolia.base.org"),
    NetworkConfig(chain_id=4221, name="Resolution chain", rpc_url="https://studio.genlayer.com/api/"),
]


@pytest.fixture
def local_wallet():
    return LocalWallet(KEY, NETWORKS, 84532)


def test_account_from_key(local_wallet):
    assert local_wallet.is_unlocked
    assert local_wallet.request_accounts() == [local_wallet.address]
    assert local_wallet.address.startswith("0x") and len(local_wallet.address) == 42


def test_switch_chain_notifies(local_wallet):
    seen = []
    local_wallet.subscribe(on_chain_changed=seen.append)
    local_wallet.switch_chain(4221)
    local_wallet.switch_chain(4221)
    assert seen == [4221]
    assert local_wallet.chain_id == 4221
    with pytest.raises(WrongNetworkError):
        local_wallet.switch_chain(1)


def test_add_chain_then_switch(local_wallet):
    local_wallet.add_chain(NetworkConfig(chain_id=1, name="Mainnet", rpc_url="https://eth.example"))
    local_wallet.switch_chain(1)
    assert local_wallet.chain_id == 1


def test_lock_drops_account(local_wallet):
    seen = []
    local_wallet.subscribe(on_accounts_changed=seen.append)
    local_wallet.lock()
    assert seen == [[]]
    assert not local_wallet.is_unlocked
    with pytest.raises(NoWalletError):
        local_wallet.connection()
