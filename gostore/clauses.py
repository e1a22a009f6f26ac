"""SQL clause objects that render to text with '?' placeholders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union

Rendered = tuple[str, list[Any]]


class Expression(ABC):
    """A piece of SQL with bound values."""

    @abstractmethod
    def to_sql(self) -> Rendered:
        """Return the SQL text and the values bound to its placeholders."""

    def _negated_sql(self) -> Optional[Rendered]:
        return None


@dataclass(frozen=True)
class Column:
    name: str
    table: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.table}.{self.name}" if self.table else self.name


ColumnRef = Union[str, Column]


def _col(column: ColumnRef) -> str:
    return str(column)


def _freeze(instance: Any, name: str) -> None:
    object.__setattr__(instance, name, tuple(getattr(instance, name)))


@dataclass(frozen=True)
class _Comparison(Expression):
    column: ColumnRef
    value: Any
    _operator: ClassVar[str] = "="

    def to_sql(self) -> Rendered:
        return f"{_col(self.column)} {self._operator} ?", [self.value]

    def _negated_sql(self) -> Optional[Rendered]:
        return _NEGATIONS[type(self)](self.column, self.value).to_sql()


class Eq(_Comparison):
    _operator = "="

    def to_sql(self) -> Rendered:
        if self.value is None:
            return f"{_col(self.column)} IS NULL", []
        if isinstance(self.value, (list, tuple)):
            return In(self.column, self.value).to_sql()
        return super().to_sql()


class Neq(_Comparison):
    _operator = "<>"

    def to_sql(self) -> Rendered:
        if self.value is None:
            return f"{_col(self.column)} IS NOT NULL", []
        if isinstance(self.value, (list, tuple)):
            return In(self.column, self.value)._negated_sql()
        return super().to_sql()


class Gt(_Comparison):
    _operator = ">"


class Gte(_Comparison):
    _operator = ">="


class Lt(_Comparison):
    _operator = "<"


class Lte(_Comparison):
    _operator = "<="


_NEGATIONS: dict[type, type] = {Eq: Neq, Neq: Eq, Gt: Lte, Lte: Gt, Gte: Lt, Lt: Gte}


@dataclass(frozen=True)
class In(Expression):
    column: ColumnRef
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "values")

    def _placeholders(self) -> str:
        return ",".join("?" for _ in self.values)

    def to_sql(self) -> Rendered:
        col = _col(self.column)
        if not self.values:
            return f"{col} IN (NULL)", []
        if len(self.values) == 1:
            return f"{col} = ?", [self.values[0]]
        return f"{col} IN ({self._placeholders()})", list(self.values)

    def _negated_sql(self) -> Optional[Rendered]:
        col = _col(self.column)
        if not self.values:
            return f"{col} IS NOT NULL", []
        if len(self.values) == 1:
            return f"{col} <> ?", [self.values[0]]
        return f"{col} NOT IN ({self._placeholders()})", list(self.values)


def _render_parts(exprs: tuple[Optional[Expression], ...]) -> list[tuple[Expression, Rendered]]:
    parts = []
    for expr in exprs:
        if expr is None:
            continue
        rendered = expr.to_sql()
        if rendered[0]:
            parts.append((expr, rendered))
    return parts


def _join(parts: list[tuple[Expression, Rendered]], separator: str) -> Rendered:
    texts: list[str] = []
    values: list[Any] = []
    for expr, (sql, bound) in parts:
        if len(parts) > 1 and isinstance(expr, _Compound) and len(expr.exprs) > 1:
            sql = f"({sql})"
        texts.append(sql)
        values.extend(bound)
    return separator.join(texts), values


@dataclass(frozen=True)
class _Compound(Expression):
    exprs: tuple[Optional[Expression], ...] = ()
    _separator: ClassVar[str] = " AND "

    def __post_init__(self) -> None:
        _freeze(self, "exprs")

    def to_sql(self) -> Rendered:
        return _join(_render_parts(self.exprs), self._separator)


class And(_Compound):
    _separator = " AND "


class Or(_Compound):
    _separator = " OR "


@dataclass(frozen=True)
class Not(Expression):
    exprs: tuple[Optional[Expression], ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "exprs")

    def to_sql(self) -> Rendered:
        live = [expr for expr in self.exprs if expr is not None]
        if len(live) == 1:
            negated = live[0]._negated_sql()
            if negated is not None:
                return negated
        sql, values = _join(_render_parts(tuple(live)), " AND ")
        if not sql:
            return "", []
        return f"NOT ({sql})", values

    def _negated_sql(self) -> Optional[Rendered]:
        return _join(_render_parts(self.exprs), " AND ")


@dataclass(frozen=True)
class Raw(Expression):
    sql: str
    vars: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "vars")

    def to_sql(self) -> Rendered:
        return self.sql, list(self.vars)


@dataclass(frozen=True)
class Limit(Expression):
    limit: Optional[int] = None
    offset: int = 0

    def to_sql(self) -> Rendered:
        parts = []
        if self.limit is not None and self.limit >= 0:
            parts.append(f"LIMIT {self.limit}")
        if self.offset > 0:
            parts.append(f"OFFSET {self.offset}")
        return " ".join(parts), []


@dataclass(frozen=True)
class OrderByColumn:
    column: ColumnRef
    desc: bool = False

    def __str__(self) -> str:
        return f"{_col(self.column)} DESC" if self.desc else _col(self.column)


@dataclass(frozen=True)
class OrderBy(Expression):
    columns: tuple[OrderByColumn, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "columns")

    def to_sql(self) -> Rendered:
        if not self.columns:
            return "", []
        return "ORDER BY " + ", ".join(str(column) for column in self.columns), []


@dataclass(frozen=True)
class Locking(Expression):
    strength: str
    table: Optional[str] = None
    options: str = ""

    def to_sql(self) -> Rendered:
        sql = f"FOR {self.strength}"
        if self.table:
            sql += f" OF {self.table}"
        if self.options:
            sql += f" {self.options}"
        return sql, []


def and_(*args: Optional[Expression]) -> Optional[Expression]:
    """Combine expressions with AND; nothing gives None, one non-OR gives itself."""
    if not args:
        return None
    if len(args) == 1 and not isinstance(args[0], Or):
        return args[0]
    return And(args)


def or_(*args: Optional[Expression]) -> Or:
    return Or(args)


def not_(*args: Optional[Expression]) -> Not:
    return Not(args)