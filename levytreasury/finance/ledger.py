"""Mini README: Append-only treasury ledger supporting income and expenses.

Structure:
    * OperationKind - enum representing income versus expense entries.
    * LedgerEntry - immutable record of one treasury operation.
    * Ledger - appends entries to the row store and folds the balance.

The treasury balance is never cached: ``treasury_balance`` folds the signed
amounts of every stored entry, so it always matches the log, including
after a restart or a crash between writes. Levy collections are posted as
income with ``actor_id`` 0 for the automatic pass or the operator id for
manual runs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidRangeError
from ..logging_utils import get_logger
from ..storage import RowStore, TableSchema

LOGGER = get_logger(__name__)

SYSTEM_ACTOR = 0

LEDGER_TABLE = TableSchema(
    name="treasury_logs",
    columns=(
        ("amount", "INTEGER"),
        ("operation", "TEXT"),
        ("operator", "INTEGER"),
        ("op_time", "INTEGER"),
        ("description", "TEXT"),
    ),
    indexes=(("op_time",),),
)


class OperationKind(str, Enum):
    """Enumerate the supported treasury operations."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    @classmethod
    def from_str(cls, value: str) -> "OperationKind":
        """Coerce arbitrary casing (and the legacy levy label) into a kind."""

        try:
            normalised = value.strip().upper()
            if normalised == "TAX_INCOME":
                return cls.INCOME
            return cls(normalised)
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported operation kind: {value}") from error

    @property
    def sign(self) -> int:
        return 1 if self is OperationKind.INCOME else -1


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """A single treasury operation; ``entry_id`` is set once stored."""

    amount: int
    operation_kind: OperationKind
    actor_id: int
    timestamp: int
    description: str
    entry_id: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise InvalidRangeError("amount", self.amount, "an integer >= 0")

    @property
    def signed_amount(self) -> int:
        return self.operation_kind.sign * self.amount

    def as_dict(self) -> Dict[str, object]:
        """Export the entry with serialisable values."""

        return {
            "entry_id": self.entry_id,
            "amount": self.amount,
            "operation_kind": self.operation_kind.value,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp,
            "description": self.description,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "operation": self.operation_kind.value,
            "operator": self.actor_id,
            "op_time": self.timestamp,
            "description": self.description,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            amount=int(row["amount"]),
            operation_kind=OperationKind.from_str(str(row["operation"])),
            actor_id=int(row["operator"]),
            timestamp=int(row["op_time"]),
            description=str(row["description"] or ""),
            entry_id=int(row["id"]),
        )


class Ledger:
    """Treasury log backed by a row store."""

    def __init__(self, store: RowStore) -> None:
        self._store = store
        self._store.create_table(LEDGER_TABLE)

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Persist ``entry`` and return it with the assigned id."""

        entry_id = self._store.insert(LEDGER_TABLE.name, entry.to_row())
        LOGGER.debug(
            "Ledger entry %s: %s %s by actor %s",
            entry_id,
            entry.operation_kind.value,
            entry.amount,
            entry.actor_id,
        )
        return replace(entry, entry_id=entry_id)

    def record(
        self,
        kind: OperationKind | str,
        amount: int,
        *,
        actor_id: int = SYSTEM_ACTOR,
        description: str = "",
        timestamp: Optional[int] = None,
    ) -> LedgerEntry:
        """Build and append an entry stamped with the current time."""

        if not isinstance(kind, OperationKind):
            kind = OperationKind.from_str(kind)
        entry = LedgerEntry(
            amount=amount,
            operation_kind=kind,
            actor_id=actor_id,
            timestamp=int(time.time()) if timestamp is None else timestamp,
            description=description,
        )
        stored = self.append(entry)
        LOGGER.info("Recorded treasury %s of %s (%s)", kind.value.lower(), amount, description)
        return stored

    def entries(self, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Return entries newest first."""

        rows = self._store.find_all(
            LEDGER_TABLE.name, order_by=("op_time", "id"), descending=True, limit=limit
        )
        return [LedgerEntry.from_row(row) for row in rows]

    def treasury_balance(self) -> int:
        """Fold the full log: income adds, expense subtracts."""

        rows = self._store.find_all(LEDGER_TABLE.name, order_by=("id",))
        return sum(LedgerEntry.from_row(row).signed_amount for row in rows)
