import sqlite3
from datetime import datetime, timezone

import pytest

from gostore.idempotency import (
    AlreadyProcessedError,
    IdempotencyStorage,
    ProcessedIdempotencyKey,
)


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    conn.execute("ATTACH DATABASE ':memory:' AS idempotency")
    conn.execute(
        "CREATE TABLE idempotency.processed_idempotency_keys ("
        "idempotency_key TEXT NOT NULL, handler TEXT NOT NULL, created_at TEXT, "
        "PRIMARY KEY (idempotency_key, handler))"
    )
    yield conn
    conn.close()


def _rows(conn):
    return conn.execute(
        "SELECT idempotency_key, handler FROM idempotency.processed_idempotency_keys "
        "ORDER BY idempotency_key, handler"
    ).fetchall()


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("database error")
        self.pgcode = pgcode


class _FailingCursor:
    def __init__(self, error):
        self.error = error

    def execute(self, sql, params):
        raise self.error


class _FailingConnection:
    def __init__(self, error):
        self.error = error

    def cursor(self):
        return _FailingCursor(self.error)


def test_store_processed_writes_row(connection):
    storage = IdempotencyStorage(connection)
    record = storage.store_processed("key-1", "handler-a")
    assert record.idempotency_key == "key-1"
    assert record.handler == "handler-a"
    assert _rows(connection) == [("key-1", "handler-a")]


def test_second_store_of_same_pair_raises(connection):
    storage = IdempotencyStorage(connection)
    storage.store_processed("key-1", "handler-a")
    with pytest.raises(AlreadyProcessedError) as info:
        storage.store_processed("key-1", "handler-a")
    assert info.value.idempotency_key == "key-1"
    assert info.value.handler == "handler-a"
    assert str(info.value) == "already processed"
    assert _rows(connection) == [("key-1", "handler-a")]


def test_same_key_for_other_handler_is_allowed(connection):
    storage = IdempotencyStorage(connection)
    storage.store_processed("key-1", "handler-a")
    storage.store_processed("key-1", "handler-b")
    assert _rows(connection) == [("key-1", "handler-a"), ("key-1", "handler-b")]


def test_created_at_comes_from_clock(connection):
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    storage = IdempotencyStorage(connection, clock=lambda: moment)
    record = storage.store_processed("key-2", "handler-a")
    assert record == ProcessedIdempotencyKey("key-2", "handler-a", moment)
    stored = connection.execute(
        "SELECT created_at FROM idempotency.processed_idempotency_keys"
    ).fetchone()[0]
    assert datetime.fromisoformat(stored) == moment


def test_other_database_errors_pass_through(connection):
    storage = IdempotencyStorage(connection, table="idempotency.missing_table")
    with pytest.raises(sqlite3.OperationalError):
        storage.store_processed("key-1", "handler-a")


def test_postgres_unique_violation_code_maps_to_already_processed():
    storage = IdempotencyStorage(_FailingConnection(_PgError("23505")))
    with pytest.raises(AlreadyProcessedError):
        storage.store_processed("key-1", "handler-a")


def test_postgres_other_code_is_reraised():
    error = _PgError("23503")
    storage = IdempotencyStorage(_FailingConnection(error))
    with pytest.raises(_PgError) as info:
        storage.store_processed("key-1", "handler-a")
    assert info.value is error