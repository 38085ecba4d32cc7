"""Mini README: Tests for the wallet provider registry and memory wallet.

Ensures that providers register correctly, instantiation works as expected
and the in-memory wallet refuses overdrafts.
"""

import pytest

from levytreasury.exceptions import BackendFailure, InsufficientFundsError
from levytreasury.wallets import REGISTRY, MemoryWalletProvider, WalletGateway


def test_registry_contains_memory_provider():
    assert "memory" in REGISTRY.available_providers()


def test_registry_instantiates_provider():
    provider = REGISTRY.create("memory", currency_name="gold")
    assert isinstance(provider, WalletGateway)
    assert provider.metadata()["currency"] == "gold"


def test_registry_rejects_unknown_provider():
    with pytest.raises(KeyError, match="registered: .*memory"):
        REGISTRY.create("abacus")


def test_memory_wallet_refuses_overdraft():
    wallet = MemoryWalletProvider(balances={1: 50})

    with pytest.raises(InsufficientFundsError) as caught:
        wallet.debit(1, 60)

    assert isinstance(caught.value, BackendFailure)
    assert wallet.balance(1) == 50
    wallet.deposit(1, 10)
    wallet.debit(1, 60)
    assert wallet.balance(1) == 0
