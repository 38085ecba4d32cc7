"""Mini README: Row storage package for the levy treasury.

Exposes the ``RowStore`` protocol and its SQLAlchemy implementations used
by the override, history and ledger stores. ``SqliteRowStore`` is the
default; ``SqlRowStore`` accepts any SQLAlchemy database URL.
"""

from .row_store import Row, RowStore, SqlRowStore, SqliteRowStore, TableSchema

__all__ = ["Row", "RowStore", "SqlRowStore", "SqliteRowStore", "TableSchema"]
