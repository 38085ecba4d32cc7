"""Mini README: In-process wallet provider.

Structure:
    * MemoryWalletProvider - thread-safe dictionary of balances.

Balances live only for the lifetime of the process. The provider backs
the default HTTP service and the test-suite, and shows how a real wallet
integration plugs into the registry.
"""

from __future__ import annotations

import threading
from typing import Dict, Mapping, Optional

from ..base import WalletGateway
from ..registry import REGISTRY
from ...exceptions import InsufficientFundsError, InvalidRangeError
from ...logging_utils import get_logger

LOGGER = get_logger(__name__)


class MemoryWalletProvider(WalletGateway):
    provider_name = "memory"

    def __init__(
        self,
        connection_string: Optional[str] = None,
        *,
        currency_name: str = "coins",
        balances: Optional[Mapping[int, int]] = None,
    ) -> None:
        super().__init__(connection_string, currency_name=currency_name)
        self._balances: Dict[int, int] = dict(balances or {})
        self._lock = threading.Lock()

    def balance(self, entity_id: int) -> int:
        with self._lock:
            return self._balances.get(entity_id, 0)

    def deposit(self, entity_id: int, amount: int) -> int:
        if amount < 0:
            raise InvalidRangeError("amount", amount, "an integer >= 0")
        with self._lock:
            self._balances[entity_id] = self._balances.get(entity_id, 0) + amount
            return self._balances[entity_id]

    def debit(self, entity_id: int, amount: int) -> None:
        if amount < 0:
            raise InvalidRangeError("amount", amount, "an integer >= 0")
        with self._lock:
            current = self._balances.get(entity_id, 0)
            if current < amount:
                raise InsufficientFundsError(entity_id, current, amount)
            self._balances[entity_id] = current - amount
        LOGGER.debug("Debited %s %s from entity %s", amount, self.currency_name, entity_id)


REGISTRY.register(MemoryWalletProvider)
