"""Recording which idempotency keys a handler has already processed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar

UNIQUE_VIOLATION_CODE = "23505"

_SQLITE_UNIQUE_ERRORS = ("SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE")


class AlreadyProcessedError(Exception):
    """Raised when an idempotency key was already stored for the handler."""

    def __init__(self, idempotency_key: str = "", handler: str = "") -> None:
        super().__init__("already processed")
        self.idempotency_key = idempotency_key
        self.handler = handler


@dataclass(frozen=True)
class ProcessedIdempotencyKey:
    """A key processed by a handler; the pair is the primary key."""

    TABLE_NAME: ClassVar[str] = "idempotency.processed_idempotency_keys"

    idempotency_key: str
    handler: str
    created_at: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_unique_violation(error: Exception) -> bool:
    code = getattr(error, "pgcode", None) or getattr(error, "sqlstate", None)
    if code == UNIQUE_VIOLATION_CODE:
        return True
    if getattr(error, "sqlite_errorname", None) in _SQLITE_UNIQUE_ERRORS:
        return True
    return "UNIQUE constraint failed" in str(error)


@dataclass
class IdempotencyStorage:
    """Stores processed keys in a table through a DB-API connection.

    Transactions are left to the owner of the connection.
    """

    connection: Any
    table: str = ProcessedIdempotencyKey.TABLE_NAME
    clock: Callable[[], datetime] = _now
    is_duplicate: Callable[[Exception], bool] = _is_unique_violation

    def store_processed(self, idempotency_key: str, handler: str) -> ProcessedIdempotencyKey:
        """Record the key for the handler; raise AlreadyProcessedError if it is there."""
        record = ProcessedIdempotencyKey(
            idempotency_key=idempotency_key, handler=handler, created_at=self.clock()
        )
        try:
            self.connection.cursor().execute(
                f"INSERT INTO {self.table} (idempotency_key, handler, created_at) VALUES (?, ?, ?)",
                [record.idempotency_key, record.handler, record.created_at.isoformat()],
            )
        except Exception as exc:
            if self.is_duplicate(exc):
                raise AlreadyProcessedError(idempotency_key, handler) from exc
            raise
        return record