"""Mini README: Generic row storage used by the levy stores.

Structure:
    * TableSchema - declared table name and typed columns.
    * RowStore - protocol of the primitives the levy core relies on.
    * SqlRowStore - SQLAlchemy Core realisation for any database URL.
    * SqliteRowStore - ``SqlRowStore`` over a SQLite file (or ``:memory:``).

The store knows nothing about levies. It offers create-table, insert,
update-by-id, equality-filtered lookups with ``ORDER BY`` and ``LIMIT``, and
a grouped ``SUM``. Every table gets an integer ``id`` primary key assigned on
insert. Statements are built with SQLAlchemy Core against the ``Table``
objects registered by ``create_table``; ``SQLAlchemyError`` surfaces as
``BackendFailure``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    and_,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..exceptions import BackendFailure
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

Row = Dict[str, Any]

_COLUMN_TYPES = {"INTEGER": BigInteger, "REAL": Float, "TEXT": Text}


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Table declaration; ``id`` is implicit and must not be listed."""

    name: str
    columns: Tuple[Tuple[str, str], ...]
    indexes: Tuple[Tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        names = set()
        for column, column_type in self.columns:
            if column == "id":
                raise ValueError("The id column is managed by the store")
            if column_type not in _COLUMN_TYPES:
                raise ValueError(f"Unsupported column type {column_type!r} for {column}")
            names.add(column)
        for index in self.indexes:
            unknown = [column for column in index if column not in names]
            if unknown:
                raise ValueError(f"Index on unknown column(s) {unknown} for table {self.name!r}")

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column for column, _ in self.columns)

    def to_table(self, metadata: MetaData) -> Table:
        """Declare the SQLAlchemy ``Table`` for this schema on ``metadata``."""

        columns = [Column(name, _COLUMN_TYPES[column_type]()) for name, column_type in self.columns]
        indexes = [
            Index(f"idx_{self.name}_{'_'.join(index)}", *index) for index in self.indexes
        ]
        return Table(
            self.name,
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            *columns,
            *indexes,
            sqlite_autoincrement=True,
        )


class RowStore(Protocol):
    """Minimal contract every row store backend must satisfy (thread-safe)."""

    def create_table(self, schema: TableSchema) -> None:
        ...

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        """Insert a row and return the assigned id."""
        ...

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> None:
        ...

    def find_one(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        ...

    def find_all(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    def sum_grouped(
        self,
        table: str,
        value_column: str,
        group_column: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        limit: Optional[int] = None,
    ) -> List[Tuple[Any, int]]:
        """Return ``(group value, SUM(value_column))`` pairs, largest first."""
        ...

    def close(self) -> None:
        ...


class SqlRowStore:
    """SQLAlchemy Core row store shared by the override, history and ledger stores.

    Every call is serialised by an ``RLock`` so concurrent appends never
    interleave, whatever pool the engine uses. Writes run inside
    ``engine.begin()`` and commit before the call returns.
    """

    backend_name = "sql"

    def __init__(self, url: str, *, engine: Optional[Engine] = None, **engine_options: Any) -> None:
        self._url = url
        self._lk = threading.RLock()
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        try:
            self._engine = engine or create_engine(url, **engine_options)
        except SQLAlchemyError as error:
            raise BackendFailure(self.backend_name, f"cannot open {url}", cause=error) from error
        LOGGER.debug("Opened row store at %s", url)

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self) -> Engine:
        return self._engine

    def _failure(self, action: str, error: SQLAlchemyError) -> BackendFailure:
        LOGGER.error("Row store %s failed: %s", action, error)
        return BackendFailure(self.backend_name, str(error), cause=error)

    def _table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise ValueError(f"Table {name!r} has not been created") from None

    @staticmethod
    def _column(table: Table, name: str) -> Column:
        try:
            return table.c[name]
        except KeyError:
            raise ValueError(f"Unknown column {name!r} for table {table.name!r}") from None

    def _conditions(self, table: Table, filters: Optional[Mapping[str, Any]]) -> list:
        return [self._column(table, column) == value for column, value in (filters or {}).items()]

    def create_table(self, schema: TableSchema) -> None:
        """Create ``schema`` if missing and register it for later statements."""

        with self._lk:
            table = self._tables.get(schema.name)
            if table is None:
                table = schema.to_table(self._metadata)
            try:
                self._metadata.create_all(self._engine, tables=[table], checkfirst=True)
            except SQLAlchemyError as error:
                raise self._failure(f"create_table({schema.name})", error) from error
            self._tables[schema.name] = table
        LOGGER.debug("Ensured table %s", schema.name)

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        target = self._table(table)
        values = {self._column(target, column).name: value for column, value in row.items() if column != "id"}
        statement = target.insert().values(**values)
        with self._lk:
            try:
                with self._engine.begin() as connection:
                    result = connection.execute(statement)
            except SQLAlchemyError as error:
                raise self._failure(f"insert into {table}", error) from error
        return int(result.inserted_primary_key[0])

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> None:
        target = self._table(table)
        changes = {self._column(target, column).name: value for column, value in values.items() if column != "id"}
        if not changes:
            return
        statement = target.update().where(target.c.id == int(row_id)).values(**changes)
        with self._lk:
            try:
                with self._engine.begin() as connection:
                    result = connection.execute(statement)
            except SQLAlchemyError as error:
                raise self._failure(f"update of {table}", error) from error
        if result.rowcount == 0:
            raise KeyError(f"Row {row_id} not found in {table}")

    def find_one(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        rows = self.find_all(table, filters, order_by=("id",), limit=1)
        return rows[0] if rows else None

    def find_all(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        target = self._table(table)
        statement = select(target)
        conditions = self._conditions(target, filters)
        if conditions:
            statement = statement.where(and_(*conditions))
        for column_name in order_by:
            column = self._column(target, column_name)
            statement = statement.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            statement = statement.limit(max(0, int(limit)))
        with self._lk:
            try:
                with self._engine.connect() as connection:
                    rows = connection.execute(statement).mappings().all()
            except SQLAlchemyError as error:
                raise self._failure(f"select from {table}", error) from error
        return [dict(row) for row in rows]

    def sum_grouped(
        self,
        table: str,
        value_column: str,
        group_column: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        limit: Optional[int] = None,
    ) -> List[Tuple[Any, int]]:
        target = self._table(table)
        group = self._column(target, group_column)
        total = func.coalesce(func.sum(self._column(target, value_column)), 0).label("total")
        statement = select(group.label("grp"), total)
        conditions = self._conditions(target, filters)
        if conditions:
            statement = statement.where(and_(*conditions))
        statement = statement.group_by(group).order_by(total.desc(), group.asc())
        if limit is not None:
            statement = statement.limit(max(0, int(limit)))
        with self._lk:
            try:
                with self._engine.connect() as connection:
                    rows = connection.execute(statement).all()
            except SQLAlchemyError as error:
                raise self._failure(f"grouped sum over {table}", error) from error
        return [(row.grp, int(row.total)) for row in rows]

    def close(self) -> None:
        with self._lk:
            self._engine.dispose()
        LOGGER.debug("Closed row store at %s", self._url)


def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


class SqliteRowStore(SqlRowStore):
    """SQLite file store; ``":memory:"`` gives an isolated store for tests.

    File databases use WAL with ``synchronous=NORMAL``. The in-memory
    database lives on a single shared connection (``StaticPool``).
    """

    backend_name = "sqlite"

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        self._path = str(path)
        connect_args = {"check_same_thread": False, "timeout": 30.0}
        if self._path == ":memory:":
            super().__init__("sqlite://", connect_args=connect_args, poolclass=StaticPool)
        else:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            super().__init__(f"sqlite:///{self._path}", connect_args=connect_args)
            event.listen(self._engine, "connect", _sqlite_pragmas)

    @property
    def path(self) -> str:
        return self._path
