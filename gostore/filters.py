"""Typed filter values describing conditions on a single column."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterable, TypeVar

T = TypeVar("T")


class Filter(Generic[T]):
    """Base class of every filter on a scalar column value."""


class ArrayFilter(Generic[T]):
    """Base class of every filter on an array column value."""


def _freeze(instance: Any, name: str) -> None:
    object.__setattr__(instance, name, tuple(getattr(instance, name)))


@dataclass(frozen=True)
class AndFilter(Filter[T]):
    """Matches when every nested filter matches."""

    filters: tuple[Filter[T], ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "filters")


@dataclass(frozen=True)
class OrFilter(Filter[T]):
    """Matches when any nested filter matches."""

    filters: tuple[Filter[T], ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "filters")


@dataclass(frozen=True)
class EqualsFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class NotEqualsFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class GreaterFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class GreaterOrEqualsFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class LessFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class LessOrEqualsFilter(Filter[T]):
    value: T


@dataclass(frozen=True)
class InFilter(Filter[T]):
    values: tuple[T, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "values")


@dataclass(frozen=True)
class NotInFilter(Filter[T]):
    values: tuple[T, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "values")


@dataclass(frozen=True)
class IsNullFilter(Filter[T]):
    """Matches when the column is NULL."""


@dataclass(frozen=True)
class IsNotNullFilter(Filter[T]):
    """Matches when the column is not NULL."""


@dataclass(frozen=True)
class ArrayContainsFilter(ArrayFilter[T]):
    """Matches when the array column contains all of the values."""

    values: tuple[T, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "values")


def and_(*args: Filter[T]) -> AndFilter[T]:
    return AndFilter(args)


def or_(*args: Filter[T]) -> OrFilter[T]:
    return OrFilter(args)


def equals(value: T) -> EqualsFilter[T]:
    return EqualsFilter(value)


def not_equals(value: T) -> NotEqualsFilter[T]:
    return NotEqualsFilter(value)


def greater(value: T) -> GreaterFilter[T]:
    return GreaterFilter(value)


def greater_or_equals(value: T) -> GreaterOrEqualsFilter[T]:
    return GreaterOrEqualsFilter(value)


def less(value: T) -> LessFilter[T]:
    return LessFilter(value)


def less_or_equals(value: T) -> LessOrEqualsFilter[T]:
    return LessOrEqualsFilter(value)


def in_(*args: T) -> InFilter[T]:
    return InFilter(args)


def not_in(*args: T) -> NotInFilter[T]:
    return NotInFilter(args)


def is_null() -> IsNullFilter[Any]:
    return IsNullFilter()


def is_not_null() -> IsNotNullFilter[Any]:
    return IsNotNullFilter()


def array_contains(values: Iterable[T]) -> ArrayContainsFilter[T]:
    return ArrayContainsFilter(tuple(values))