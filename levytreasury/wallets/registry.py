"""Mini README: Name-to-class lookup for wallet backends.

Structure:
    * WalletProviderRegistry - maps ``provider_name`` to a ``WalletGateway``
      subclass and builds the configured one.
    * REGISTRY - process-wide instance read by ``build_desk``.

``LEVY_WALLET_PROVIDER`` names the backend. The in-memory wallet registers
itself on import; ``discover_plugins`` adds backends published under the
``levytreasury.wallets`` entry point group.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Type

from .base import WalletGateway
from ..logging_utils import get_logger
from ..utils import load_entry_point_plugins

LOGGER = get_logger(__name__)

PLUGIN_GROUP = "levytreasury.wallets"


class WalletProviderRegistry:
    """Wallet backends keyed by lower-cased ``provider_name``."""

    def __init__(self) -> None:
        self._providers: Dict[str, Type[WalletGateway]] = {}

    def register(self, provider: Type[WalletGateway]) -> None:
        """Add or replace the backend registered under its ``provider_name``."""

        identifier = provider.provider_name.lower()
        LOGGER.debug("Registering wallet provider '%s'", identifier)
        self._providers[identifier] = provider

    def available_providers(self) -> Iterable[str]:
        """Sorted backend names, as accepted by ``create``."""

        return sorted(self._providers.keys())

    def discover_plugins(self, group: str = PLUGIN_GROUP) -> int:
        """Register entry point backends; return how many were accepted."""

        registered = 0
        for plugin in load_entry_point_plugins(group):
            if isinstance(plugin, type) and issubclass(plugin, WalletGateway):
                self.register(plugin)
                registered += 1
            else:
                LOGGER.warning("Ignoring entry point %r: not a WalletGateway subclass", plugin)
        return registered

    def create(
        self,
        identifier: str,
        *,
        connection_string: Optional[str] = None,
        currency_name: str = "coins",
    ) -> WalletGateway:
        """Build the backend named ``identifier`` for the given currency."""

        wallet_cls = self._providers.get(identifier.lower())
        if wallet_cls is None:
            known = ", ".join(self.available_providers()) or "none"
            raise KeyError(f"Unknown wallet provider '{identifier}' (registered: {known})")
        LOGGER.info("Using %s wallet backend (currency=%s)", identifier, currency_name)
        return wallet_cls(connection_string=connection_string, currency_name=currency_name)


REGISTRY = WalletProviderRegistry()
