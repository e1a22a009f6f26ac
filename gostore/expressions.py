"""Turning column filters into SQL clause expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from gostore import clauses
from gostore.clauses import ColumnRef, Expression
from gostore.filters import (
    AndFilter,
    ArrayContainsFilter,
    ArrayFilter,
    EqualsFilter,
    Filter,
    GreaterFilter,
    GreaterOrEqualsFilter,
    InFilter,
    IsNotNullFilter,
    IsNullFilter,
    LessFilter,
    LessOrEqualsFilter,
    NotEqualsFilter,
    NotInFilter,
    OrFilter,
)

Mapper = Callable[[Any], Any]


class UnsupportedFilterError(TypeError):
    """Raised for a filter type that cannot be turned into an expression."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"unsupported Filter type: {type(value).__name__}")
        self.value = value


def _converter(mapper: Optional[Mapper]) -> Mapper:
    return mapper if mapper is not None else (lambda value: value)


def filter_expression(
    value: Filter[Any], column: ColumnRef, mapper: Optional[Mapper] = None
) -> Optional[Expression]:
    """Build the expression for a filter on ``column``, mapping values first."""
    convert = _converter(mapper)
    match value:
        case AndFilter(filters=nested):
            return clauses.and_(*(filter_expression(f, column, mapper) for f in nested))
        case OrFilter(filters=nested):
            return clauses.or_(*(filter_expression(f, column, mapper) for f in nested))
        case EqualsFilter(value=v):
            return clauses.Eq(column, convert(v))
        case NotEqualsFilter(value=v):
            return clauses.Neq(column, convert(v))
        case GreaterFilter(value=v):
            return clauses.Gt(column, convert(v))
        case GreaterOrEqualsFilter(value=v):
            return clauses.Gte(column, convert(v))
        case LessFilter(value=v):
            return clauses.Lt(column, convert(v))
        case LessOrEqualsFilter(value=v):
            return clauses.Lte(column, convert(v))
        case IsNullFilter():
            return clauses.Eq(column, None)
        case IsNotNullFilter():
            return clauses.Neq(column, None)
        case InFilter(values=values):
            return clauses.In(column, [convert(v) for v in values])
        case NotInFilter(values=values):
            return clauses.not_(clauses.In(column, [convert(v) for v in values]))
    raise UnsupportedFilterError(value)


def array_filter_expression(
    value: ArrayFilter[Any], column: ColumnRef, mapper: Optional[Mapper] = None
) -> Expression:
    """Build the expression for a filter on an array column."""
    if isinstance(value, ArrayContainsFilter):
        convert = _converter(mapper)
        return clauses.Raw(f"{column} @> ?", [[convert(v) for v in value.values]])
    raise UnsupportedFilterError(value)


class _ExpressionBuilder(Protocol):
    def build_expression(self) -> Optional[Expression]: ...


@dataclass(frozen=True)
class ColumnFilter:
    column: ColumnRef
    filter: Optional[Filter[Any]] = None

    def build_expression(self) -> Optional[Expression]:
        if self.filter is None:
            return None
        return filter_expression(self.filter, self.column)


@dataclass(frozen=True)
class MappedColumnFilter:
    column: ColumnRef
    filter: Optional[Filter[Any]]
    mapper: Mapper

    def build_expression(self) -> Optional[Expression]:
        if self.filter is None:
            return None
        return filter_expression(self.filter, self.column, self.mapper)


@dataclass(frozen=True)
class ColumnArrayFilter:
    column: ColumnRef
    filter: Optional[ArrayFilter[Any]] = None

    def build_expression(self) -> Optional[Expression]:
        if self.filter is None:
            return None
        return array_filter_expression(self.filter, self.column)


@dataclass(frozen=True)
class MappedColumnArrayFilter:
    column: ColumnRef
    filter: Optional[ArrayFilter[Any]]
    mapper: Mapper

    def build_expression(self) -> Optional[Expression]:
        if self.filter is None:
            return None
        return array_filter_expression(self.filter, self.column, self.mapper)


@dataclass(frozen=True)
class ExpressionBuilderFunc:
    """Adapts a zero-argument callable into an expression builder."""

    func: Callable[[], Optional[Expression]]

    def build_expression(self) -> Optional[Expression]:
        return self.func()


def build_filter_expression(*args: _ExpressionBuilder) -> Optional[Expression]:
    """AND together the expressions of all builders, skipping empty ones."""
    built = (builder.build_expression() for builder in args)
    return clauses.and_(*(expr for expr in built if expr is not None))