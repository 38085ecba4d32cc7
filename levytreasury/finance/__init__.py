"""Mini README: Treasury records for the levy service.

This package groups the two append-only logs written by every collected
levy: the per-entity history (who paid what and when) and the treasury
ledger (signed income/expense operations whose fold is the treasury
balance). Both persist through the shared ``RowStore`` and never update or
delete a written row.
"""

from .history import HistoryEntry, HistoryStore, RankingRow
from .ledger import SYSTEM_ACTOR, Ledger, LedgerEntry, OperationKind

__all__ = [
    "HistoryEntry",
    "HistoryStore",
    "Ledger",
    "LedgerEntry",
    "OperationKind",
    "RankingRow",
    "SYSTEM_ACTOR",
]
