"""Mini README: Concrete wallet provider implementations.

New providers should export a subclass of ``WalletGateway`` and call
``REGISTRY.register`` during module import to keep the system discoverable.
"""

from .memory_provider import MemoryWalletProvider

__all__ = ["MemoryWalletProvider"]
