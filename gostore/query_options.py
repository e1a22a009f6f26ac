"""Select options: paging, ordering and row locking for storage queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Mapping, Optional, Sequence

from gostore.clauses import ColumnRef, Expression, Limit, Locking, OrderBy, OrderByColumn
from gostore.pagination import Pagination


class InvalidFieldError(ValueError):
    """Raised when an order field has no column in the field mapping."""

    def __init__(self, field_name: Any = None) -> None:
        super().__init__("invalid field")
        self.field = field_name


class OrderDirection(IntEnum):
    ASC = 1
    DESC = 2


@dataclass(frozen=True)
class Order:
    field: Any
    direction: OrderDirection = OrderDirection.ASC


@dataclass
class SelectOptions:
    """Options that shape a select query."""

    pagination: Optional[Pagination] = None
    order: list[Order] = field(default_factory=list)
    for_update: bool = False

    def build_expressions(self, field_mapping: Mapping[Any, ColumnRef]) -> list[Expression]:
        """Return the clauses for paging, ordering and locking, in that order."""
        expressions: list[Expression] = []
        if self.pagination is not None:
            expressions.append(build_pagination_expression(self.pagination))
        if self.order:
            expressions.append(build_order_expression(self.order, field_mapping))
        if self.for_update:
            expressions.append(build_for_update_expression())
        return expressions


SelectOption = Callable[[SelectOptions], None]


def apply_options(*args: SelectOption) -> SelectOptions:
    """Start from default options and apply each option in turn."""
    options = SelectOptions()
    for option in args:
        option(options)
    return options


def with_pagination(pagination: Optional[Pagination]) -> SelectOption:
    def apply(options: SelectOptions) -> None:
        options.pagination = pagination

    return apply


def with_order(field: Any, direction: OrderDirection) -> SelectOption:
    def apply(options: SelectOptions) -> None:
        options.order.append(Order(field=field, direction=direction))

    return apply


def with_for_update() -> SelectOption:
    def apply(options: SelectOptions) -> None:
        options.for_update = True

    return apply


def build_pagination_expression(pagination: Pagination) -> Limit:
    return Limit(
        limit=pagination.per_page,
        offset=(pagination.page - 1) * pagination.per_page,
    )


def build_order_expression(
    orders: Sequence[Order], fields_mapping: Mapping[Any, ColumnRef]
) -> OrderBy:
    """Map each order field to its column; unknown fields raise InvalidFieldError."""
    columns = []
    for order in orders:
        try:
            column = fields_mapping[order.field]
        except (KeyError, TypeError):
            raise InvalidFieldError(order.field) from None
        columns.append(OrderByColumn(column, desc=order.direction == OrderDirection.DESC))
    return OrderBy(columns)


def build_for_update_expression() -> Locking:
    return Locking(strength="UPDATE")