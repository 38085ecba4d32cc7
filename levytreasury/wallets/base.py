"""Mini README: Abstract wallet gateway consumed by the levy engine.

Structure:
    * WalletGateway - abstract interface implemented by wallet providers.

The wallet service holds and mutates entity balances; the levy core only
reads a balance and debits a computed amount. Providers raise
``InsufficientFundsError`` or ``BackendFailure`` when a debit cannot be
applied and must return (or fail) within a bounded time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class WalletGateway(ABC):
    """Base interface for wallet provider integrations."""

    provider_name: str = "generic"

    def __init__(self, connection_string: Optional[str] = None, *, currency_name: str = "coins") -> None:
        self.connection_string = connection_string
        self.currency_name = currency_name
        LOGGER.debug(
            "Initialising %s wallet provider with connection '%s'", self.provider_name, connection_string
        )

    @abstractmethod
    def balance(self, entity_id: int) -> int:
        """Return the entity's current balance."""

    @abstractmethod
    def debit(self, entity_id: int, amount: int) -> None:
        """Subtract ``amount`` from the entity's balance."""

    def metadata(self) -> Dict[str, str]:
        """Return diagnostic metadata for status displays."""

        return {
            "provider": self.provider_name,
            "connection": self.connection_string or "not configured",
            "currency": self.currency_name,
        }
