"""Mini README: Levy history records per entity.

Structure:
    * HistoryEntry - immutable record of one collected levy.
    * RankingRow - cumulative levy paid by one entity within a group.
    * HistoryStore - append, recency and ranking queries.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidRangeError
from ..logging_utils import get_logger
from ..storage import RowStore, TableSchema

LOGGER = get_logger(__name__)

HISTORY_TABLE = TableSchema(
    name="tax_records",
    columns=(
        ("user_id", "INTEGER"),
        ("group_id", "INTEGER"),
        ("tax_amount", "INTEGER"),
        ("tax_time", "INTEGER"),
        ("user_name", "TEXT"),
    ),
    indexes=(("user_id", "tax_time"), ("group_id",)),
)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One levy collected from one entity."""

    entity_id: int
    group_id: int
    amount: int
    timestamp: int
    display_name: str
    entry_id: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 1:
            raise InvalidRangeError("amount", self.amount, "an integer >= 1")

    def as_dict(self) -> Dict[str, object]:
        return {
            "entry_id": self.entry_id,
            "entity_id": self.entity_id,
            "group_id": self.group_id,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "display_name": self.display_name,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.entity_id,
            "group_id": self.group_id,
            "tax_amount": self.amount,
            "tax_time": self.timestamp,
            "user_name": self.display_name,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            entity_id=int(row["user_id"]),
            group_id=int(row["group_id"]),
            amount=int(row["tax_amount"]),
            timestamp=int(row["tax_time"]),
            display_name=str(row["user_name"] or ""),
            entry_id=int(row["id"]),
        )


@dataclass(frozen=True, slots=True)
class RankingRow:
    entity_id: int
    total_amount: int


class HistoryStore:
    """Append-only levy history backed by a row store."""

    def __init__(self, store: RowStore) -> None:
        self._store = store
        self._store.create_table(HISTORY_TABLE)

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        entry_id = self._store.insert(HISTORY_TABLE.name, entry.to_row())
        LOGGER.debug(
            "History entry %s: entity=%s group=%s amount=%s",
            entry_id,
            entry.entity_id,
            entry.group_id,
            entry.amount,
        )
        return replace(entry, entry_id=entry_id)

    def recent(self, entity_id: int, limit: int = 10) -> List[HistoryEntry]:
        """Return the entity's levies, newest first."""

        rows = self._store.find_all(
            HISTORY_TABLE.name,
            {"user_id": entity_id},
            order_by=("tax_time", "id"),
            descending=True,
            limit=limit,
        )
        return [HistoryEntry.from_row(row) for row in rows]

    def top_by_total(self, group_id: int, limit: int = 10) -> List[RankingRow]:
        """Rank the group's entities by cumulative levy paid, largest first."""

        totals = self._store.sum_grouped(
            HISTORY_TABLE.name,
            "tax_amount",
            "user_id",
            {"group_id": group_id},
            limit=limit,
        )
        return [RankingRow(entity_id=int(entity_id), total_amount=total) for entity_id, total in totals]
