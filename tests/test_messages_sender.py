import logging
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from gostore.filters import equals
from gostore.messages_sender import MessageSender, MessagesSender
from gostore.outbox_storage import Message, MessageFilter, OutboxStorage

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    conn.execute("ATTACH DATABASE ':memory:' AS tx_outbox")
    conn.execute(
        "CREATE TABLE tx_outbox.messages ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, topic TEXT NOT NULL, "
        "ordering_key TEXT NOT NULL, idempotency_key TEXT NOT NULL, "
        "data BLOB NOT NULL, created_at TEXT)"
    )
    yield conn
    conn.close()


class RecordingSender(MessageSender):
    def __init__(self, fail_topics=()):
        self.sent = []
        self.fail_topics = set(fail_topics)

    def send_message(self, message):
        if message.topic in self.fail_topics:
            raise RuntimeError("broker unavailable")
        self.sent.append(message)


def _add(connection, idem, minutes, topic="users"):
    storage = OutboxStorage(connection)
    message = storage.send(
        Message(
            topic=topic,
            ordering_key="k",
            idempotency_key=idem,
            data=idem.encode(),
            created_at=BASE + timedelta(minutes=minutes),
        )
    )
    connection.commit()
    return message


def _remaining(connection):
    return [m.idempotency_key for m in OutboxStorage(connection).find(None)]


def test_handle_sends_oldest_first_and_deletes(connection):
    _add(connection, "second", 5)
    _add(connection, "first", 1)
    _add(connection, "third", 9)
    sender = RecordingSender()
    MessagesSender(connection, sender).handle()
    assert [m.idempotency_key for m in sender.sent] == ["first", "second", "third"]
    assert [m.data for m in sender.sent] == [b"first", b"second", b"third"]
    assert _remaining(connection) == []


def test_failed_message_stays_in_outbox(connection, caplog):
    _add(connection, "ok-1", 1)
    _add(connection, "bad", 2, topic="broken")
    _add(connection, "ok-2", 3)
    sender = RecordingSender(fail_topics={"broken"})
    with caplog.at_level(logging.INFO, logger="gostore.messages_sender"):
        MessagesSender(connection, sender).handle()
    assert [m.idempotency_key for m in sender.sent] == ["ok-1", "ok-2"]
    assert _remaining(connection) == ["bad"]
    assert "failed to send message" in caplog.text
    assert "message sent" in caplog.text


def test_message_removed_meanwhile_is_skipped(connection):
    _add(connection, "a", 1)
    doomed = _add(connection, "b", 2)
    _add(connection, "c", 3)

    class DeletingSender(RecordingSender):
        def send_message(self, message):
            super().send_message(message)
            if message.idempotency_key == "a":
                OutboxStorage(connection).delete(MessageFilter(id=equals(doomed.id)))

    sender = DeletingSender()
    MessagesSender(connection, sender).handle()
    assert [m.idempotency_key for m in sender.sent] == ["a", "c"]
    assert _remaining(connection) == []


def test_handle_processes_at_most_one_batch(connection):
    for index in range(105):
        _add(connection, f"m{index:03d}", index)
    sender = RecordingSender()
    job = MessagesSender(connection, sender)
    job.handle()
    assert len(sender.sent) == 100
    assert _remaining(connection) == [f"m{index:03d}" for index in range(100, 105)]
    assert job.next_delay() == 0.0
    job.handle()
    assert len(sender.sent) == 105
    assert job.next_delay() == 1.0


@pytest.mark.parametrize(("count", "delay"), [(0, 1.0), (29, 1.0), (30, 0.0), (31, 0.0)])
def test_next_delay_depends_on_last_batch(connection, count, delay):
    for index in range(count):
        _add(connection, f"m{index:03d}", index)
    job = MessagesSender(connection, RecordingSender())
    job.handle()
    assert job.next_delay() == delay


def test_next_delay_before_first_run_is_idle(connection):
    job = MessagesSender(connection, RecordingSender())
    assert job.init() is None
    assert job.next_delay() == 1.0