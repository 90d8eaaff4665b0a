import asyncio

import pytest

from supportdesk.core.errors import InvalidInput, StoreError, Unauthenticated
from supportdesk.realtime.feeds import MessageFeed
from supportdesk.services.messages import MessageService
from supportdesk.services.tickets import TicketService
from supportdesk.store.memory import MemoryStore

from tests.conftest import CUSTOMER_ID, TECH_ID, HeldSelectStore, at


def _service(store: MemoryStore, actor_id: str | None, feed: MessageFeed | None = None) -> MessageService:
    return MessageService(
        store,
        actor_id=actor_id,
        tickets=TicketService(store, actor_id=actor_id),
        thread=feed.thread if feed is not None else None,
    )


def test_send_echo_leaves_single_entry(store: MemoryStore, ticket: dict) -> None:
    async def scenario() -> list[dict]:
        feed = MessageFeed(store)
        await feed.focus(ticket["id"])
        saved = await _service(store, CUSTOMER_ID, feed).send(ticket["id"], "  Hello  ")
        rows = feed.thread.items
        feed.close()
        assert saved is not None
        return rows

    rows = asyncio.run(scenario())
    assert len(rows) == 1
    assert rows[0]["message"] == "Hello"
    assert rows[0]["sending"] is False
    assert rows[0]["sender_type"] == "customer"


def test_thread_stays_sorted_with_interleaved_remote_messages(store: MemoryStore, ticket: dict) -> None:
    store.seed("messages", [{"id": "late", "ticket_id": ticket["id"], "message": "x", "created_at": at(50)}])

    async def scenario() -> list[str]:
        feed = MessageFeed(store)
        await feed.focus(ticket["id"])
        await _service(store, CUSTOMER_ID, feed).send(ticket["id"], "mine")
        await store.insert("messages", {"id": "early", "ticket_id": ticket["id"], "message": "y", "created_at": at(5)})
        ids = [x["id"] for x in feed.thread.items]
        feed.close()
        return ids

    ids = asyncio.run(scenario())
    assert ids[:2] == ["early", "late"]
    assert len(ids) == 3


def test_employee_messages_are_tagged(store: MemoryStore, ticket: dict) -> None:
    saved = asyncio.run(_service(store, TECH_ID).send(ticket["id"], "On it"))
    assert saved["sender_type"] == "employee"
    assert saved["is_system_message"] is False


def test_send_touches_ticket(store: MemoryStore, ticket: dict) -> None:
    asyncio.run(_service(store, CUSTOMER_ID).send(ticket["id"], "ping"))
    assert store.rows("tickets")[0]["updated_at"] > ticket["updated_at"]


def test_blank_or_missing_input_is_a_no_op(store: MemoryStore, ticket: dict) -> None:
    service = _service(store, CUSTOMER_ID)
    assert asyncio.run(service.send(ticket["id"], "   ")) is None
    assert asyncio.run(service.send(None, "hello")) is None
    assert store.rows("messages") == []


def test_too_long_and_anonymous_are_refused(store: MemoryStore, ticket: dict) -> None:
    with pytest.raises(InvalidInput):
        asyncio.run(_service(store, CUSTOMER_ID).send(ticket["id"], "x" * 5000))
    with pytest.raises(Unauthenticated):
        asyncio.run(_service(store, None).send(ticket["id"], "hello"))


def test_failed_send_is_removed_from_thread(store: MemoryStore, ticket: dict) -> None:
    async def scenario() -> int:
        feed = MessageFeed(store)
        await feed.focus(ticket["id"])
        store.fail_next("insert", "messages")
        with pytest.raises(StoreError):
            await _service(store, CUSTOMER_ID, feed).send(ticket["id"], "lost")
        return len(feed.thread)

    assert asyncio.run(scenario()) == 0


def test_message_kept_when_ticket_touch_fails(store: MemoryStore, ticket: dict) -> None:
    service = _service(store, CUSTOMER_ID)
    store.fail_next("update", "tickets")

    saved = asyncio.run(service.send(ticket["id"], "still here"))
    assert saved is not None
    assert service.error
    assert len(store.rows("messages")) == 1


def test_switching_ticket_releases_previous_subscription(store: MemoryStore, ticket: dict) -> None:
    async def scenario() -> list[str]:
        feed = MessageFeed(store)
        await feed.focus(ticket["id"])
        await feed.focus("ticket-2")
        assert store.bus.subscriber_count("messages") == 1
        await store.insert("messages", {"id": "stray", "ticket_id": ticket["id"], "message": "x"})
        await store.insert("messages", {"id": "ok", "ticket_id": "ticket-2", "message": "y"})
        ids = [x["id"] for x in feed.thread.items]
        feed.close()
        return ids

    assert asyncio.run(scenario()) == ["ok"]
    assert store.bus.subscriber_count() == 0


def test_focus_on_nothing_clears_thread(store: MemoryStore, ticket: dict) -> None:
    async def scenario() -> MessageFeed:
        feed = MessageFeed(store)
        await feed.focus(ticket["id"])
        await feed.focus(None)
        return feed

    feed = asyncio.run(scenario())
    assert feed.ticket_id is None
    assert store.bus.subscriber_count() == 0


def test_late_fetch_for_previous_ticket_is_dropped() -> None:
    async def scenario() -> tuple[MessageFeed, HeldSelectStore]:
        store = HeldSelectStore("messages", {"ticket_id": "A"})
        store.seed(
            "messages",
            [
                {"id": "a1", "ticket_id": "A", "message": "from A", "created_at": at(1)},
                {"id": "b1", "ticket_id": "B", "message": "from B", "created_at": at(2)},
            ],
        )
        feed = MessageFeed(store)
        first = asyncio.create_task(feed.focus("A"))
        await asyncio.sleep(0)
        await feed.focus("B")
        store.release()
        await first
        return feed, store

    feed, store = asyncio.run(scenario())
    assert feed.ticket_id == "B"
    assert [x["id"] for x in feed.thread.items] == ["b1"]
    assert store.bus.subscriber_count("messages") == 1
    feed.close()
