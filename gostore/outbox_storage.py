"""Transactional outbox: messages stored with business data, sent later."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Callable, ClassVar, Generic, Mapping, Optional, TypeVar

from gostore.clauses import Column, Expression
from gostore.entity_storage import SqlEntityStorage
from gostore.expressions import ColumnFilter, build_filter_expression
from gostore.filters import Filter
from gostore.query_options import SelectOption

E = TypeVar("E")


@dataclass
class Message:
    """One outbox message; ``id`` is assigned by the database."""

    TABLE_NAME: ClassVar[str] = "tx_outbox.messages"

    topic: str
    ordering_key: str
    idempotency_key: str
    data: bytes
    created_at: Optional[datetime] = None
    id: Optional[int] = None


class MessageField(IntEnum):
    ID = 1
    TOPIC = 2
    ORDERING_KEY = 3
    IDEMPOTENCY_KEY = 4
    CREATED_AT = 5


MESSAGE_FIELD_COLUMNS: Mapping[Any, Column] = {
    MessageField.ID: Column("id"),
    MessageField.TOPIC: Column("topic"),
    MessageField.ORDERING_KEY: Column("ordering_key"),
    MessageField.IDEMPOTENCY_KEY: Column("idempotency_key"),
    MessageField.CREATED_AT: Column("created_at"),
}


@dataclass(frozen=True)
class MessageFilter:
    id: Optional[Filter[int]] = None
    topic: Optional[Filter[str]] = None

    def build_expression(self) -> Optional[Expression]:
        return build_filter_expression(
            ColumnFilter("id", self.id),
            ColumnFilter("topic", self.topic),
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_message(model: Any) -> Message:
    if isinstance(model, Message):
        return model
    raise TypeError(f"cannot build an outbox message from {type(model).__name__}")


def _message_to_row(message: Message) -> dict[str, Any]:
    created_at = message.created_at.isoformat() if message.created_at is not None else None
    return {
        "id": message.id,
        "topic": message.topic,
        "ordering_key": message.ordering_key,
        "idempotency_key": message.idempotency_key,
        "data": bytes(message.data),
        "created_at": created_at,
    }


def _message_from_row(row: Mapping[str, Any]) -> Message:
    created_at = row.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    data = row.get("data")
    return Message(
        id=row.get("id"),
        topic=row["topic"],
        ordering_key=row["ordering_key"],
        idempotency_key=row["idempotency_key"],
        data=bytes(data) if data is not None else b"",
        created_at=created_at,
    )


def _filter_expression(message_filter: Optional[MessageFilter]) -> Optional[Expression]:
    return message_filter.build_expression() if message_filter is not None else None


@dataclass
class OutboxStorage(Generic[E]):
    """Writes entities to the outbox table as messages and reads them back."""

    connection: Any
    build_message: Callable[[E], Message] = _as_message
    table: str = Message.TABLE_NAME
    supports_locking: bool = False
    clock: Callable[[], datetime] = _now

    def _messages(self) -> SqlEntityStorage[Message, MessageFilter]:
        return SqlEntityStorage(
            connection=self.connection,
            table=self.table,
            convert_to_internal=_message_to_row,
            convert_to_external=_message_from_row,
            build_filter_expression=_filter_expression,
            field_mapping=MESSAGE_FIELD_COLUMNS,
            supports_locking=self.supports_locking,
        )

    def send(self, model: E) -> Message:
        """Store the message built from ``model`` and return it with its id."""
        message = self.build_message(model)
        if message.created_at is None:
            message = replace(message, created_at=self.clock())
        return self._messages().create(message)

    def first(self, filter: Optional[MessageFilter], *args: SelectOption) -> Message:
        return self._messages().first(filter, *args)

    def find(self, filter: Optional[MessageFilter], *args: SelectOption) -> list[Message]:
        return self._messages().find(filter, *args)

    def delete(self, filter: Optional[MessageFilter]) -> None:
        self._messages().delete(filter)