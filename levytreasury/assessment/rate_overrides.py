"""Mini README: Per-entity levy rates that override the global rate.

Structure:
    * RateOverride - stored override for one (entity, group) pair.
    * RateOverrideStore - resolve and upsert overrides.

Each (entity, group) pair has at most one row. The store enforces that
itself: ``upsert`` finds and then inserts or updates inside one critical
section, so concurrent writers cannot create duplicates and an updated row
keeps its id.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Tuple

from ..logging_utils import get_logger
from ..storage import RowStore, TableSchema
from .config_store import validate_rate

LOGGER = get_logger(__name__)

OVERRIDE_TABLE = TableSchema(
    name="user_tax_rates",
    columns=(("user_id", "INTEGER"), ("group_id", "INTEGER"), ("rate", "REAL")),
    indexes=(("user_id", "group_id"),),
)


@dataclass(frozen=True, slots=True)
class RateOverride:
    override_id: int
    entity_id: int
    group_id: int
    rate: float


class RateOverrideStore:
    """Persist custom rates keyed by (entity_id, group_id)."""

    def __init__(self, store: RowStore) -> None:
        self._store = store
        self._store.create_table(OVERRIDE_TABLE)
        self._write_lock = threading.Lock()

    def resolve(self, entity_id: int, group_id: int) -> Tuple[float, bool]:
        """Return ``(rate, True)`` for a stored override, ``(0.0, False)`` otherwise."""

        row = self._store.find_one(OVERRIDE_TABLE.name, {"user_id": entity_id, "group_id": group_id})
        if row is None:
            return 0.0, False
        return float(row["rate"]), True

    def effective_rate(self, entity_id: int, group_id: int, global_rate: float) -> Tuple[float, bool]:
        """Return the rate that applies and whether it came from an override."""

        rate, found = self.resolve(entity_id, group_id)
        return (rate, True) if found else (global_rate, False)

    def upsert(self, entity_id: int, group_id: int, rate: float) -> RateOverride:
        value = validate_rate(rate)
        key = {"user_id": entity_id, "group_id": group_id}
        with self._write_lock:
            existing = self._store.find_one(OVERRIDE_TABLE.name, key)
            if existing is None:
                override_id = self._store.insert(OVERRIDE_TABLE.name, {**key, "rate": value})
                LOGGER.info("Created rate override %.4f for entity %s in group %s", value, entity_id, group_id)
            else:
                override_id = int(existing["id"])
                self._store.update(OVERRIDE_TABLE.name, override_id, {"rate": value})
                LOGGER.info("Updated rate override %.4f for entity %s in group %s", value, entity_id, group_id)
        return RateOverride(override_id=override_id, entity_id=entity_id, group_id=group_id, rate=value)

    def list_group(self, group_id: int) -> List[RateOverride]:
        rows = self._store.find_all(OVERRIDE_TABLE.name, {"group_id": group_id}, order_by=("user_id",))
        return [
            RateOverride(
                override_id=int(row["id"]),
                entity_id=int(row["user_id"]),
                group_id=int(row["group_id"]),
                rate=float(row["rate"]),
            )
            for row in rows
        ]
