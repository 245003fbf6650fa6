from __future__ import annotations

import copy
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, ContextManager, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import Integer, create_engine, delete, func, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.schema import Table

from .config import DatabaseConfig
from .schema import metadata
from .timeutils import normalize_datetime

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Optional[Mapping[str, Any]]
Since = Optional[Tuple[str, datetime]]


class DataStoreError(Exception):
    """Raised for any failure talking to the data store."""


class DataStore:
    """
    Table-scoped query surface used by every service.

    ``filters`` map column names to values and are combined with AND; a
    list, tuple or set value matches any of its members. ``since`` keeps
    rows whose column is at or after the given moment. Rows whose
    ``order_by`` column is NULL always come last.

    Writes issued on the object yielded by ``transaction()`` are committed
    together, or not at all when the block raises.
    """

    def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        since: Since = None,
    ) -> List[Row]:
        raise NotImplementedError

    def count(self, table: str, filters: Filters = None, *, since: Since = None) -> int:
        raise NotImplementedError

    def insert(self, table: str, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Row]:
        raise NotImplementedError

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Filters) -> int:
        raise NotImplementedError

    def transaction(self) -> ContextManager["DataStore"]:
        raise NotImplementedError


def _as_rows(values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Row]:
    if isinstance(values, Mapping):
        return [dict(values)]
    return [dict(item) for item in values]


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return normalize_datetime(value, timezone.utc)
    return value


def _wrap_errors(method: Callable) -> Callable:
    @wraps(method)
    def wrapper(self, table: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, table, *args, **kwargs)
        except SQLAlchemyError as exc:
            raise DataStoreError(f"{method.__name__} on {table} failed: {exc}") from exc

    return wrapper


class _SQLSession(DataStore):
    """Runs the query surface on one open connection."""

    def __init__(self, connection: Connection):
        self.connection = connection

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return metadata.tables[name]
        except KeyError:
            raise DataStoreError(f"Unknown table: {name}") from None

    @staticmethod
    def _column(table: Table, name: str) -> ColumnElement:
        try:
            return table.c[name]
        except KeyError:
            raise DataStoreError(f"Unknown column {table.name}.{name}") from None

    def _conditions(self, table: Table, filters: Filters, since: Since) -> List[ColumnElement]:
        conditions = []
        for name, value in (filters or {}).items():
            column = self._column(table, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        if since is not None:
            name, moment = since
            conditions.append(self._column(table, name) >= moment)
        return conditions

    @_wrap_errors
    def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        since: Since = None,
    ) -> List[Row]:
        target = self._table(table)
        selected = [self._column(target, name) for name in columns] if columns else list(target.c)
        query = select(*selected).where(*self._conditions(target, filters, since))
        if order_by:
            column = self._column(target, order_by)
            query = query.order_by((column.desc() if descending else column.asc()).nulls_last())
        if limit is not None:
            query = query.limit(limit)
        return [dict(row) for row in self.connection.execute(query).mappings().all()]

    @_wrap_errors
    def count(self, table: str, filters: Filters = None, *, since: Since = None) -> int:
        target = self._table(table)
        query = select(func.count()).select_from(target).where(*self._conditions(target, filters, since))
        return int(self.connection.execute(query).scalar_one())

    @_wrap_errors
    def insert(self, table: str, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Row]:
        target = self._table(table)
        rows = _as_rows(values)
        if not rows:
            return []
        result = self.connection.execute(insert(target).returning(*target.c), rows)
        return [dict(row) for row in result.mappings().all()]

    @_wrap_errors
    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        target = self._table(table)
        statement = update(target).where(*self._conditions(target, filters, None)).values(**values)
        return self.connection.execute(statement).rowcount

    @_wrap_errors
    def delete(self, table: str, filters: Filters) -> int:
        target = self._table(table)
        statement = delete(target).where(*self._conditions(target, filters, None))
        return self.connection.execute(statement).rowcount

    @contextmanager
    def transaction(self) -> Iterator[DataStore]:
        yield self


class SQLDataStore(DataStore):
    """
    Data store backed by a SQLAlchemy engine (PostgreSQL in production).

    Each call outside ``transaction()`` runs in its own short transaction.
    """

    def __init__(self, engine: Engine, create_schema: bool = False):
        self.engine = engine
        if create_schema:
            metadata.create_all(self.engine, checkfirst=True)

    def _run(self, operation: str, table: str, *args: Any, **kwargs: Any) -> Any:
        try:
            with self.engine.begin() as connection:
                return getattr(_SQLSession(connection), operation)(table, *args, **kwargs)
        except SQLAlchemyError as exc:
            raise DataStoreError(f"{operation} on {table} failed: {exc}") from exc

    def select(self, table: str, filters: Filters = None, **kwargs: Any) -> List[Row]:
        return self._run("select", table, filters, **kwargs)

    def count(self, table: str, filters: Filters = None, *, since: Since = None) -> int:
        return self._run("count", table, filters, since=since)

    def insert(self, table: str, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Row]:
        return self._run("insert", table, values)

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        return self._run("update", table, values, filters)

    def delete(self, table: str, filters: Filters) -> int:
        return self._run("delete", table, filters)

    @contextmanager
    def transaction(self) -> Iterator[DataStore]:
        try:
            with self.engine.begin() as connection:
                yield _SQLSession(connection)
        except SQLAlchemyError as exc:
            raise DataStoreError(f"transaction failed: {exc}") from exc


class InMemoryDataStore(DataStore):
    """
    Process-local store with the same semantics as ``SQLDataStore``.

    Tables and generated values follow ``schema.metadata``: integer primary
    keys come from a per-table sequence, string keys and ``created_at`` from
    the column defaults. Used for local runs and as the test double.
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._tables: Dict[str, List[Row]] = {name: [] for name in metadata.tables}
        self._sequences: Dict[str, int] = defaultdict(int)
        for name, rows in (tables or {}).items():
            self.insert(name, list(rows))

    def _rows(self, table: str) -> List[Row]:
        try:
            return self._tables[table]
        except KeyError:
            raise DataStoreError(f"Unknown table: {table}") from None

    @staticmethod
    def _check_columns(table: str, names: Iterable[str]) -> None:
        known = metadata.tables[table].c
        for name in names:
            if name not in known:
                raise DataStoreError(f"Unknown column {table}.{name}")

    def _matches(self, row: Row, filters: Filters, since: Since) -> bool:
        for name, expected in (filters or {}).items():
            value = row.get(name)
            if isinstance(expected, (list, tuple, set, frozenset)):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        if since is not None:
            name, moment = since
            value = row.get(name)
            if value is None:
                return False
            try:
                if _comparable(value) < _comparable(moment):
                    return False
            except TypeError as exc:
                raise DataStoreError(f"Cannot compare {name}={value!r} with {moment!r}") from exc
        return True

    def _filtered(self, table: str, filters: Filters, since: Since) -> List[Row]:
        rows = self._rows(table)
        self._check_columns(table, filters or {})
        if since is not None:
            self._check_columns(table, [since[0]])
        return [row for row in rows if self._matches(row, filters, since)]

    def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        since: Since = None,
    ) -> List[Row]:
        rows = self._filtered(table, filters, since)
        if order_by:
            self._check_columns(table, [order_by])
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            try:
                rows = sorted(present, key=lambda row: _comparable(row[order_by]), reverse=descending) + missing
            except TypeError as exc:
                raise DataStoreError(f"Cannot order {table} by {order_by}: {exc}") from exc
        if limit is not None:
            rows = rows[:limit]
        if columns:
            self._check_columns(table, columns)
            return [{name: row.get(name) for name in columns} for row in rows]
        return [dict(row) for row in rows]

    def count(self, table: str, filters: Filters = None, *, since: Since = None) -> int:
        return len(self._filtered(table, filters, since))

    def insert(self, table: str, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Row]:
        target = self._rows(table)
        inserted = []
        for values_row in _as_rows(values):
            self._check_columns(table, values_row)
            row = self._with_defaults(table, values_row)
            target.append(row)
            inserted.append(dict(row))
        return inserted

    def _with_defaults(self, table: str, values: Row) -> Row:
        schema_table = metadata.tables[table]
        row: Row = {column.name: None for column in schema_table.c}
        row.update(values)
        for column in schema_table.c:
            if column.primary_key and isinstance(column.type, Integer):
                if row[column.name] is None:
                    self._sequences[table] += 1
                    row[column.name] = self._sequences[table]
                else:
                    self._sequences[table] = max(self._sequences[table], int(row[column.name]))
            elif row[column.name] is None and column.name == "created_at":
                row[column.name] = self.clock()
            elif row[column.name] is None and column.default is not None and column.default.is_callable:
                row[column.name] = column.default.arg(None)
        return row

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        self._check_columns(table, values)
        rows = self._filtered(table, filters, None)
        for row in rows:
            row.update(values)
        return len(rows)

    def delete(self, table: str, filters: Filters) -> int:
        doomed = {id(row) for row in self._filtered(table, filters, None)}
        self._tables[table] = [row for row in self._tables[table] if id(row) not in doomed]
        return len(doomed)

    @contextmanager
    def transaction(self) -> Iterator[DataStore]:
        snapshot = copy.deepcopy(self._tables), dict(self._sequences)
        try:
            yield self
        except Exception:
            tables, sequences = snapshot
            self._tables = tables
            self._sequences = defaultdict(int, sequences)
            raise


def build_data_store_from_env(config: Optional[DatabaseConfig] = None) -> Optional[DataStore]:
    cfg = config or DatabaseConfig.from_env()
    if cfg.url:
        engine = create_engine(cfg.url, echo=cfg.echo, pool_pre_ping=cfg.pool_pre_ping, future=True)
        logger.info("Using SQL data store at %s", engine.url.render_as_string(hide_password=True))
        return SQLDataStore(engine, create_schema=cfg.create_schema)
    return None
