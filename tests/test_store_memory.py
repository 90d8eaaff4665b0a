import asyncio

import pytest

from supportdesk.db.session import async_database_url
from supportdesk.store.base import ChangeEvent, row_matches
from supportdesk.store.changes import ChangeBus, change_channels, table_channel, ticket_messages_channel
from supportdesk.store.memory import MemoryStore, StoreUnavailable


def test_row_matches_treats_sequences_as_membership() -> None:
    row = {"status": "draft", "category": "faq"}
    assert row_matches(row, {"status": ("draft", "rejected")})
    assert not row_matches(row, {"status": ["approved"]})
    assert row_matches(row, None)
    assert not row_matches(None, {"status": "draft"})


def test_bus_delivers_only_matching_events() -> None:
    bus = ChangeBus()
    seen: list[str] = []
    bus.subscribe("messages", lambda e: seen.append(e.row_id), {"ticket_id": "t1"})

    bus.publish(ChangeEvent("messages", "insert", new={"id": "m1", "ticket_id": "t1"}))
    bus.publish(ChangeEvent("messages", "insert", new={"id": "m2", "ticket_id": "t2"}))
    bus.publish(ChangeEvent("tickets", "insert", new={"id": "t1"}))

    assert seen == ["m1"]


def test_subscription_releases_exactly_once() -> None:
    bus = ChangeBus()
    subscription = bus.subscribe("tickets", lambda e: None)
    assert bus.subscriber_count("tickets") == 1

    assert subscription.unsubscribe() is True
    assert subscription.unsubscribe() is False
    assert not subscription.active
    assert bus.subscriber_count() == 0


def test_subscription_context_manager_releases() -> None:
    bus = ChangeBus()
    with bus.subscribe("tickets", lambda e: None):
        assert bus.subscriber_count("tickets") == 1
    assert bus.subscriber_count("tickets") == 0


def test_failing_listener_does_not_block_others() -> None:
    bus = ChangeBus()
    seen: list[str] = []

    def broken(event: ChangeEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe("tickets", broken)
    bus.subscribe("tickets", lambda e: seen.append(e.row_id))
    assert bus.publish(ChangeEvent("tickets", "update", new={"id": "t1"}, old={"id": "t1"})) == 2
    assert seen == ["t1"]


def test_message_changes_fan_out_per_ticket() -> None:
    event = ChangeEvent("messages", "insert", new={"id": "m1", "ticket_id": "t9"})
    assert change_channels(event) == ["changes:messages", "changes:messages:t9"]
    assert change_channels(event)[1] == ticket_messages_channel("t9")
    assert change_channels(ChangeEvent("tickets", "update", new={"id": "t9"})) == [table_channel("tickets")]


def test_delete_event_carries_old_row() -> None:
    store = MemoryStore()
    store.seed("tickets", [{"id": "t1", "status": "fresh"}])
    events: list[ChangeEvent] = []
    store.subscribe_changes("tickets", events.append)

    assert asyncio.run(store.delete("tickets", {"id": "t1"})) == 1
    assert events[0].event_type == "delete"
    assert events[0].row_id == "t1"
    assert events[0].to_payload()["type"] == "tickets.delete"


def test_fail_next_raises_once_and_leaves_data_untouched() -> None:
    store = MemoryStore()
    store.fail_next("insert", "tickets")

    with pytest.raises(StoreUnavailable):
        asyncio.run(store.insert("tickets", {"id": "t1"}))
    assert store.rows("tickets") == []

    asyncio.run(store.insert("tickets", {"id": "t1"}))
    assert [x["id"] for x in store.rows("tickets")] == ["t1"]


def test_duplicate_insert_is_rejected() -> None:
    store = MemoryStore()
    store.seed("tickets", [{"id": "t1"}])
    with pytest.raises(StoreUnavailable):
        asyncio.run(store.insert("tickets", {"id": "t1"}))


def test_database_url_is_coerced_to_asyncpg() -> None:
    assert async_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert async_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert async_database_url("postgresql+asyncpg://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
