"""Generic entity storage over a DB-API connection using '?' placeholders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from gostore.clauses import ColumnRef, Expression, Limit, Locking, OrderBy, OrderByColumn
from gostore.query_options import SelectOption, apply_options

E = TypeVar("E")
F = TypeVar("F")

Row = dict[str, Any]


class RecordNotFoundError(LookupError):
    """Raised when a query that needs a record finds none."""

    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


class _MissingWhereClauseError(ValueError):
    def __init__(self) -> None:
        super().__init__("WHERE conditions required")


class EntityStorage(ABC, Generic[E, F]):
    """Operations on stored entities of one kind, selected by a filter."""

    @abstractmethod
    def create(self, model: E) -> E:
        """Insert a new entity and return it as stored."""

    @abstractmethod
    def count(self, filter: Optional[F]) -> int:
        """Return how many entities match the filter."""

    @abstractmethod
    def update(self, model: E) -> E:
        """Write the entity and return it as stored."""

    @abstractmethod
    def save(self, model: E) -> E:
        """Insert or update the entity and return it as stored."""

    @abstractmethod
    def first(self, filter: Optional[F], *args: SelectOption) -> E:
        """Return the first matching entity."""

    @abstractmethod
    def first_or_create(self, filter: Optional[F], model: E, *args: SelectOption) -> E:
        """Return the first matching entity, creating ``model`` if none match."""

    @abstractmethod
    def find(self, filter: Optional[F], *args: SelectOption) -> list[E]:
        """Return all matching entities."""

    @abstractmethod
    def delete(self, filter: Optional[F]) -> None:
        """Delete all matching entities."""


def _keep(error: Exception) -> Exception:
    return error


def _rows(cursor: Any) -> list[Row]:
    names = [column[0] for column in cursor.description]
    return [dict(zip(names, row)) for row in cursor.fetchall()]


@dataclass
class SqlEntityStorage(EntityStorage[E, F]):
    """Entity storage for one table.

    Entities are converted to rows (column name to value) and back. Database
    errors, including RecordNotFoundError, pass through ``errors_wrapper``.
    Transactions are left to the owner of the connection. Row locking clauses
    are only emitted when ``supports_locking`` is set.
    """

    connection: Any
    table: str
    convert_to_internal: Callable[[E], Mapping[str, Any]]
    convert_to_external: Callable[[Mapping[str, Any]], E]
    build_filter_expression: Callable[[Optional[F]], Optional[Expression]]
    field_mapping: Mapping[Any, ColumnRef] = field(default_factory=dict)
    errors_wrapper: Callable[[Exception], Exception] = _keep
    primary_key: str = "id"
    supports_locking: bool = False

    def _fail(self, error: Exception) -> Exception:
        wrapped = self.errors_wrapper(error)
        if wrapped is not error:
            wrapped.__cause__ = error
        return wrapped

    def _execute(self, sql: str, params: list[Any]) -> Any:
        try:
            cursor = self.connection.cursor()
            cursor.execute(sql, params)
        except Exception as exc:
            raise self._fail(exc) from exc
        return cursor

    @staticmethod
    def _where(expression: Optional[Expression]) -> tuple[str, list[Any]]:
        if expression is None:
            return "", []
        sql, values = expression.to_sql()
        return (f" WHERE {sql}", list(values)) if sql else ("", [])

    def _insert(self, row: Row) -> None:
        values = {
            column: value
            for column, value in row.items()
            if not (column == self.primary_key and value is None)
        }
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        cursor = self._execute(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})", list(values.values())
        )
        if row.get(self.primary_key) is None:
            row[self.primary_key] = cursor.lastrowid

    def _write(self, model: E) -> E:
        row = dict(self.convert_to_internal(model))
        key = row.get(self.primary_key)
        if key is None:
            self._insert(row)
            return self.convert_to_external(row)

        others = [column for column in row if column != self.primary_key]
        if others:
            assignments = ", ".join(f"{column} = ?" for column in others)
            cursor = self._execute(
                f"UPDATE {self.table} SET {assignments} WHERE {self.primary_key} = ?",
                [row[column] for column in others] + [key],
            )
            exists = cursor.rowcount > 0
        else:
            cursor = self._execute(
                f"SELECT 1 FROM {self.table} WHERE {self.primary_key} = ?", [key]
            )
            exists = cursor.fetchone() is not None
        if not exists:
            self._insert(row)
        return self.convert_to_external(row)

    def _select(self, filter: Optional[F], options: tuple[SelectOption, ...], single: bool) -> list[Row]:
        where_sql, params = self._where(self.build_filter_expression(filter))
        expressions = apply_options(*options).build_expressions(self.field_mapping)

        order_columns = [
            column for expr in expressions if isinstance(expr, OrderBy) for column in expr.columns
        ]
        limits = [expr for expr in expressions if isinstance(expr, Limit)]
        locks = [expr for expr in expressions if isinstance(expr, Locking)]

        if single:
            order_columns.append(OrderByColumn(self.primary_key))
            offset = limits[-1].offset if limits else 0
            limits = [Limit(limit=1, offset=offset)]

        tail: list[Expression] = []
        if order_columns:
            tail.append(OrderBy(order_columns))
        tail.extend(limits[-1:])
        if self.supports_locking:
            tail.extend(locks)

        parts = [f"SELECT * FROM {self.table}{where_sql}"]
        for expr in tail:
            sql, values = expr.to_sql()
            if sql:
                parts.append(sql)
                params.extend(values)
        return _rows(self._execute(" ".join(parts), params))

    def create(self, model: E) -> E:
        row = dict(self.convert_to_internal(model))
        self._insert(row)
        return self.convert_to_external(row)

    def count(self, filter: Optional[F]) -> int:
        where_sql, params = self._where(self.build_filter_expression(filter))
        cursor = self._execute(f"SELECT COUNT(*) FROM {self.table}{where_sql}", params)
        return int(cursor.fetchone()[0])

    def update(self, model: E) -> E:
        return self._write(model)

    def save(self, model: E) -> E:
        return self._write(model)

    def first(self, filter: Optional[F], *args: SelectOption) -> E:
        rows = self._select(filter, args, single=True)
        if not rows:
            raise self._fail(RecordNotFoundError())
        return self.convert_to_external(rows[0])

    def first_or_create(self, filter: Optional[F], model: E, *args: SelectOption) -> E:
        """Return the first match, creating ``model`` first if nothing matches.

        Nothing is raised for a missing record along the way, so this is safe
        inside a transaction.
        """
        if self.count(filter) == 0:
            self.create(model)
        return self.first(filter, *args)

    def find(self, filter: Optional[F], *args: SelectOption) -> list[E]:
        return [self.convert_to_external(row) for row in self._select(filter, args, single=False)]

    def delete(self, filter: Optional[F]) -> None:
        where_sql, params = self._where(self.build_filter_expression(filter))
        if not where_sql:
            raise self._fail(_MissingWhereClauseError())
        self._execute(f"DELETE FROM {self.table}{where_sql}", params)