# gostore

Building blocks for the storage layer of a service backed by a SQL database.
It works with any DB-API connection that uses `?` placeholders, such as
`sqlite3`. There are no runtime dependencies.

## What is in it

- `gostore.filters`: values that describe a condition on one column without
  naming the column. The functions are `equals`, `not_equals`, `greater`,
  `greater_or_equals`, `less`, `less_or_equals`, `in_`, `not_in`, `is_null`,
  `is_not_null`, `and_` and `or_`. For array columns there is
  `array_contains`.
- `gostore.clauses`: small SQL expression objects: `Eq`, `Neq`, `Gt`, `Gte`,
  `Lt`, `Lte`, `In`, `Not`, `And`, `Or`, `Raw`, `Limit`, `OrderBy` /
  `OrderByColumn` and `Locking`. Each has a `to_sql()` method that returns
  `(sql_text, parameters)`. `and_`, `or_` and `not_` combine them.
- `gostore.expressions`: turns filters into clauses.
  - `ColumnFilter` attaches a filter to a column.
  - `MappedColumnFilter` also converts every value with a mapper before it is
    bound.
  - `ColumnArrayFilter` and `MappedColumnArrayFilter` do the same for array
    filters, which render as `column @> ?`.
  - `ExpressionBuilderFunc` wraps any zero-argument callable.
  - `build_filter_expression` joins the results with `AND` and skips builders
    whose filter is `None`. It returns `None` when nothing is left.
  - An unknown filter object raises `UnsupportedFilterError`.
- `gostore.pagination`: `Pagination` (pages numbered from 1), `PaginationData`
  and `PaginatedResult`. `new_pagination_data` and `new_paginated_result`
  work out the page count from a total. With no pagination, or with
  `per_page == 0`, everything counts as one page.
- `gostore.query_options`: `with_pagination`, `with_order` (with
  `OrderDirection.ASC` / `DESC`), `with_for_update` and `apply_options`.
  `SelectOptions.build_expressions` produces the `LIMIT`/`OFFSET`, `ORDER BY`
  and `FOR UPDATE` clauses. An order field that has no entry in the field
  mapping raises `InvalidFieldError`.
- `gostore.entity_storage`: `SqlEntityStorage`, an implementation of the
  `EntityStorage` interface for one table.
- `gostore.idempotency`: `IdempotencyStorage` records that a handler has
  processed an idempotency key.
- `gostore.outbox_storage` and `gostore.messages_sender`: a transactional
  outbox. `OutboxStorage` stores messages. `MessagesSender` delivers them
  through a `MessageSender` you supply.

## Filters and expressions

```python
from gostore import filters
from gostore.expressions import ColumnFilter, build_filter_expression

expr = build_filter_expression(
    ColumnFilter("age", filters.greater_or_equals(18)),
    ColumnFilter("status", filters.in_("active", "pending")),
    ColumnFilter("deleted_at", None),  # skipped
)
expr.to_sql()
# ('age >= ? AND status IN (?,?)', [18, 'active', 'pending'])
```

## Entity storage

`SqlEntityStorage` converts your objects to rows (a mapping of column name to
value) and back. It needs a callable that turns your own filter type into an
expression.

```python
import sqlite3
from dataclasses import dataclass
from typing import Optional

from gostore import filters
from gostore.entity_storage import SqlEntityStorage
from gostore.expressions import ColumnFilter, build_filter_expression
from gostore.pagination import Pagination
from gostore.query_options import OrderDirection, with_order, with_pagination


@dataclass
class User:
    name: str
    age: int
    id: Optional[int] = None


@dataclass
class UserFilter:
    age: Optional[filters.Filter[int]] = None


def user_filter_expression(user_filter):
    if user_filter is None:
        return None
    return build_filter_expression(ColumnFilter("age", user_filter.age))


connection = sqlite3.connect(":memory:")
connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, age INTEGER)")

users = SqlEntityStorage(
    connection=connection,
    table="users",
    convert_to_internal=lambda user: {"id": user.id, "name": user.name, "age": user.age},
    convert_to_external=lambda row: User(**row),
    build_filter_expression=user_filter_expression,
    field_mapping={"age": "age"},
)

alice = users.create(User(name="Alice", age=30))  # id is filled in
adults = users.find(
    UserFilter(age=filters.greater_or_equals(18)),
    with_order("age", OrderDirection.DESC),
    with_pagination(Pagination(page=1, per_page=20)),
)
```

How each operation behaves:

- `create` inserts the row. When the primary key (`primary_key`, `"id"` by
  default) is `None`, it is left out of the insert and then taken from the
  cursor's `lastrowid`.
- `update` and `save` both write by primary key. They insert when the key is
  `None` or no row has that key, and update otherwise.
- `first` returns the first match, ordered by the requested order and then by
  primary key. If nothing matches it raises `RecordNotFoundError`.
- `first_or_create` creates the model only when `count` finds no match, then
  returns `first`.
- `delete` refuses to run without a filter condition and raises `ValueError`
  in that case.
- Every database error, and `RecordNotFoundError`, passes through
  `errors_wrapper`. Use it to map them to your own exceptions.
- The `FOR UPDATE` clause is emitted only when `supports_locking=True`.
- The storage never commits. Transactions belong to whoever owns the
  connection.

## Idempotency keys

```python
from gostore.idempotency import AlreadyProcessedError, IdempotencyStorage

keys = IdempotencyStorage(connection, table="processed_idempotency_keys")
keys.store_processed("order-42", "send_receipt")
try:
    keys.store_processed("order-42", "send_receipt")
except AlreadyProcessedError:
    pass
```

The table needs the columns `idempotency_key`, `handler` and `created_at`, with
the first two as its primary key. The default table name is
`idempotency.processed_idempotency_keys`.

A duplicate is recognised in any of these ways:

- SQLSTATE `23505`;
- a SQLite primary-key or unique constraint error.

You can supply your own check with `is_duplicate`.

## Outbox

```python
from gostore.messages_sender import MessageSender, MessagesSender
from gostore.outbox_storage import Message, OutboxStorage

outbox = OutboxStorage(connection, table="outbox_messages")
outbox.send(Message(topic="users", ordering_key="42", idempotency_key="k-1", data=b"{}"))
connection.commit()


class PrintSender(MessageSender):
    def send_message(self, message):
        print(message.topic, message.data)


job = MessagesSender(connection, PrintSender(), table="outbox_messages")
job.handle()
delay = job.next_delay()
```

The message table has the columns `id`, `topic`, `ordering_key`,
`idempotency_key`, `data` and `created_at`. Its default name is
`tx_outbox.messages`.

- `OutboxStorage.send` fills in `created_at` when it is missing and returns the
  stored message with its id. By default it accepts `Message` objects; pass
  `build_message` to store other objects.
- `MessagesSender.handle` reads up to 100 messages, oldest first. It sends
  each one in its own transaction, committing after the message is deleted and
  rolling back if sending fails. Failures are logged and the message stays in
  the outbox.
- `next_delay()` returns `0.0` when the last batch had 30 or more messages and
  `1.0` otherwise.

## What it does not do

- It provides no command-line tool.
- It creates no tables and runs no migrations. The tables above must already
  exist.
- It has no scheduler. Running `MessagesSender.handle` repeatedly and waiting
  `next_delay()` seconds between runs is up to the caller.