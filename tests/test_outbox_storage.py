import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from gostore.entity_storage import RecordNotFoundError
from gostore.filters import equals, in_
from gostore.outbox_storage import Message, MessageField, MessageFilter, OutboxStorage
from gostore.pagination import Pagination
from gostore.query_options import (
    InvalidFieldError,
    OrderDirection,
    with_order,
    with_pagination,
)

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


def _event_to_message(event):
    return Message(
        topic=event["topic"],
        ordering_key=event["key"],
        idempotency_key=event["idem"],
        data=event["payload"],
        created_at=event.get("at"),
    )


@pytest.fixture
def storage(connection):
    return OutboxStorage(connection, build_message=_event_to_message)


def _event(topic, idem, minutes=0, payload=b"{}"):
    return {
        "topic": topic,
        "key": "order-key",
        "idem": idem,
        "payload": payload,
        "at": BASE + timedelta(minutes=minutes),
    }


def test_send_assigns_id_and_round_trips(storage):
    sent = storage.send(_event("users", "idem-1", payload=b"\x00\x01data"))
    assert sent.id is not None
    loaded = storage.first(MessageFilter(id=equals(sent.id)))
    assert loaded == sent
    assert loaded.data == b"\x00\x01data"
    assert loaded.created_at == BASE


def test_send_fills_missing_created_at_from_clock(connection):
    moment = BASE + timedelta(days=1)
    storage = OutboxStorage(connection, build_message=_event_to_message, clock=lambda: moment)
    event = _event("users", "idem-1")
    event["at"] = None
    sent = storage.send(event)
    assert sent.created_at == moment
    assert storage.first(None).created_at == moment


def test_default_builder_accepts_messages_only(connection):
    storage = OutboxStorage(connection)
    message = Message("users", "k", "idem", b"x", created_at=BASE)
    assert storage.send(message).topic == "users"
    with pytest.raises(TypeError):
        storage.send({"topic": "users"})


def test_find_filters_by_topic(storage):
    storage.send(_event("users", "idem-1"))
    storage.send(_event("orders", "idem-2"))
    storage.send(_event("users", "idem-3"))
    found = storage.find(MessageFilter(topic=equals("users")))
    assert sorted(m.idempotency_key for m in found) == ["idem-1", "idem-3"]
    assert all(m.topic == "users" for m in found)


def test_find_orders_and_paginates(storage):
    for index in range(5):
        storage.send(_event("users", f"idem-{index}", minutes=index))
    page = storage.find(
        None,
        with_order(MessageField.CREATED_AT, OrderDirection.DESC),
        with_pagination(Pagination(page=2, per_page=2)),
    )
    assert [m.idempotency_key for m in page] == ["idem-2", "idem-1"]


def test_first_uses_order(storage):
    storage.send(_event("users", "early", minutes=0))
    storage.send(_event("users", "late", minutes=10))
    latest = storage.first(None, with_order(MessageField.CREATED_AT, OrderDirection.DESC))
    assert latest.idempotency_key == "late"


def test_first_without_match_raises(storage):
    storage.send(_event("users", "idem-1"))
    with pytest.raises(RecordNotFoundError):
        storage.first(MessageFilter(topic=equals("nothing")))


def test_unknown_order_field_raises(storage):
    with pytest.raises(InvalidFieldError):
        storage.find(None, with_order("bogus", OrderDirection.ASC))


def test_delete_removes_only_matching(storage):
    first = storage.send(_event("users", "idem-1"))
    second = storage.send(_event("users", "idem-2"))
    storage.delete(MessageFilter(id=equals(first.id)))
    assert [m.id for m in storage.find(None)] == [second.id]


def test_delete_with_in_filter(storage):
    ids = [storage.send(_event("users", f"idem-{i}")).id for i in range(3)]
    storage.delete(MessageFilter(id=in_(ids[0], ids[2])))
    assert [m.id for m in storage.find(None)] == [ids[1]]


def test_delete_without_filter_is_refused(storage):
    storage.send(_event("users", "idem-1"))
    with pytest.raises(ValueError):
        storage.delete(None)
    assert len(storage.find(None)) == 1


def test_message_filter_expression():
    assert MessageFilter(id=equals(7)).build_expression().to_sql() == ("id = ?", [7])
    both = MessageFilter(id=equals(7), topic=equals("users")).build_expression()
    assert both.to_sql() == ("id = ? AND topic = ?", [7, "users"])
    assert MessageFilter().build_expression() is None