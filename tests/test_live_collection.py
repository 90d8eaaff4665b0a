from supportdesk.realtime.collection import messages_collection, tickets_collection
from supportdesk.store.base import ChangeEvent

from tests.conftest import at


def _message(message_id: str, minute: int, **extra: object) -> dict:
    return {"id": message_id, "ticket_id": "t1", "message": message_id, "created_at": at(minute), **extra}


def test_items_sorted_ascending_whatever_the_arrival_order() -> None:
    thread = messages_collection()
    thread.apply(ChangeEvent("messages", "insert", new=_message("m3", 3)))
    thread.add_local(_message("m1", 1))
    thread.apply(ChangeEvent("messages", "insert", new=_message("m2", 2)))
    thread.replace_all([_message("m0", 0), _message("m2", 2)])

    assert [x["id"] for x in thread.items] == ["m0", "m1", "m2"]


def test_own_echo_is_suppressed() -> None:
    thread = messages_collection()
    thread.add_local(_message("m1", 1, sending=True))

    assert thread.apply(ChangeEvent("messages", "insert", new=_message("m1", 1))) == "suppressed"
    assert [x["id"] for x in thread.items] == ["m1"]
    assert "m1" not in thread.pending_ids


def test_echo_after_confirm_merges_instead_of_appending() -> None:
    thread = messages_collection()
    thread.add_local(_message("m1", 1, sending=True))
    thread.confirm({**_message("m1", 1), "sending": False})

    assert thread.apply(ChangeEvent("messages", "insert", new=_message("m1", 1))) == "merged"
    assert len(thread) == 1
    assert thread.get("m1")["sending"] is False


def test_update_merges_and_keeps_local_fields() -> None:
    board = tickets_collection()
    board.replace_all([{"id": "t1", "status": "fresh", "updated_at": at(0)}])
    board.patch_local("t1", {"selected": True})

    outcome = board.apply(
        ChangeEvent("tickets", "update", new={"id": "t1", "status": "closed", "updated_at": at(5)}, old={"id": "t1"})
    )

    assert outcome == "merged"
    assert board.get("t1") == {"id": "t1", "status": "closed", "updated_at": at(5), "selected": True}


def test_tickets_sorted_newest_first() -> None:
    board = tickets_collection()
    board.replace_all([{"id": "a", "updated_at": at(1)}, {"id": "b", "updated_at": at(3)}])
    board.apply(ChangeEvent("tickets", "insert", new={"id": "c", "updated_at": at(2)}))
    assert [x["id"] for x in board.items] == ["b", "c", "a"]


def test_revert_restores_snapshot_or_drops_new_row() -> None:
    board = tickets_collection()
    board.replace_all([{"id": "t1", "priority": "low", "updated_at": at(0)}])
    snapshot = board.patch_local("t1", {"priority": "high"})
    board.add_local({"id": "t2", "updated_at": at(1)})

    board.revert("t1", snapshot)
    board.revert("t2", None)

    assert board.items == [{"id": "t1", "priority": "low", "updated_at": at(0)}]
    assert board.pending_ids == frozenset()


def test_replace_all_keeps_rows_still_in_flight() -> None:
    thread = messages_collection()
    thread.add_local(_message("local", 5, sending=True))
    thread.replace_all([_message("m1", 1)])
    assert [x["id"] for x in thread.items] == ["m1", "local"]


def test_accept_filters_foreign_inserts() -> None:
    board = tickets_collection(accept=lambda row: row.get("created_by") == "me")
    assert board.apply(ChangeEvent("tickets", "insert", new={"id": "x", "created_by": "other"})) == "ignored"
    assert board.apply(ChangeEvent("tickets", "insert", new={"id": "y", "created_by": "me"})) == "appended"
    assert [x["id"] for x in board.items] == ["y"]


def test_delete_and_unknown_update() -> None:
    board = tickets_collection()
    board.replace_all([{"id": "t1", "updated_at": at(0)}])
    assert board.apply(ChangeEvent("tickets", "update", new={"id": "zz"}, old={"id": "zz"})) == "ignored"
    assert board.apply(ChangeEvent("tickets", "delete", old={"id": "t1"})) == "removed"
    assert len(board) == 0
