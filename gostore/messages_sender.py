"""Background job that delivers outbox messages and removes the sent ones."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from gostore.entity_storage import RecordNotFoundError
from gostore.filters import equals
from gostore.outbox_storage import Message, MessageField, MessageFilter, OutboxStorage
from gostore.pagination import Pagination
from gostore.query_options import OrderDirection, with_for_update, with_order, with_pagination

BATCH_SIZE = 100
BUSY_THRESHOLD = 30
IDLE_DELAY = 1.0

_log = logging.getLogger(__name__)


class MessageSender(ABC):
    """Delivers one outbox message to its destination."""

    @abstractmethod
    def send_message(self, message: Message) -> None:
        """Send the message; raise to keep it in the outbox."""


@contextmanager
def _transaction(connection: Any) -> Iterator[None]:
    try:
        yield
    except BaseException:
        connection.rollback()
        raise
    else:
        connection.commit()


class MessagesSender:
    """Sends the oldest outbox messages, each in its own transaction."""

    def __init__(
        self,
        connection: Any,
        sender: MessageSender,
        logger: Optional[logging.Logger] = None,
        *,
        table: str = Message.TABLE_NAME,
        supports_locking: bool = False,
    ) -> None:
        self.connection = connection
        self.sender = sender
        self.logger = logger if logger is not None else _log
        self.table = table
        self.supports_locking = supports_locking
        self._last_handled = 0

    def _storage(self) -> OutboxStorage[Message]:
        return OutboxStorage(
            self.connection, table=self.table, supports_locking=self.supports_locking
        )

    def init(self) -> None:
        """Prepare the job; nothing is needed."""
        return None

    def handle(self) -> None:
        """Send up to one batch of messages, oldest first."""
        messages = self._storage().find(
            None,
            with_order(MessageField.CREATED_AT, OrderDirection.ASC),
            with_pagination(Pagination(page=1, per_page=BATCH_SIZE)),
        )
        self._last_handled = len(messages)

        for message in messages:
            try:
                self._deliver(message)
            except Exception:
                self.logger.exception("failed to send message: %r", message)
            else:
                self.logger.info("message sent: %r", message)

    def _deliver(self, message: Message) -> None:
        with _transaction(self.connection):
            storage = self._storage()
            try:
                locked = storage.first(MessageFilter(id=equals(message.id)), with_for_update())
            except RecordNotFoundError:
                return
            self.sender.send_message(locked)
            storage.delete(MessageFilter(id=equals(locked.id)))

    def next_delay(self) -> float:
        """Seconds to wait before the next run: none while the outbox is busy."""
        return 0.0 if self._last_handled >= BUSY_THRESHOLD else IDLE_DELAY