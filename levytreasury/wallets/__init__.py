"""Mini README: Wallet and membership collaborators package initialiser.

Re-exports the gateway abstraction, the provider registry and the
membership sources. The package is divided into ``base`` for the abstract
gateway, ``registry`` for plugin management, ``providers`` for concrete
wallet backends and ``membership`` for group enumeration.
"""

from .base import WalletGateway
from .membership import Member, MembershipSource, StaticMembership
from .registry import REGISTRY, WalletProviderRegistry
from .providers import MemoryWalletProvider  # registers built-in providers

__all__ = [
    "Member",
    "MembershipSource",
    "MemoryWalletProvider",
    "REGISTRY",
    "StaticMembership",
    "WalletGateway",
    "WalletProviderRegistry",
]
