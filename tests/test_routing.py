import asyncio

import pytest

from supportdesk.core.errors import StoreError
from supportdesk.services.employees import EmployeeRoster
from supportdesk.services.messages import MessageService
from supportdesk.services.routing import AssignmentService, assignment_note, recommend
from supportdesk.services.tickets import TicketService
from supportdesk.store.memory import MemoryStore

from tests.conftest import BILLING_ID, CUSTOMER_ID, MANAGER_ID, TECH_ID, at


def test_recommend_prefers_department_over_lower_load() -> None:
    employees = [
        {"id": "a", "department": "technical", "unresolved_tickets": 3},
        {"id": "b", "department": "technical", "unresolved_tickets": 1},
        {"id": "c", "department": "billing", "unresolved_tickets": 0},
    ]
    assert recommend("technical", employees)["id"] == "b"


def test_recommend_falls_back_to_least_loaded_overall() -> None:
    employees = [
        {"id": "a", "department": "technical", "unresolved_tickets": 2},
        {"id": "b", "department": "billing", "unresolved_tickets": 0},
    ]
    assert recommend("feedback", employees)["id"] == "b"


def test_recommend_ties_go_to_first_and_case_is_ignored() -> None:
    employees = [
        {"id": "a", "department": "Billing", "unresolved_tickets": 1},
        {"id": "b", "department": "billing", "unresolved_tickets": 1},
    ]
    assert recommend("BILLING", employees)["id"] == "a"
    assert recommend("billing", []) is None


def test_assignment_note_text() -> None:
    note = assignment_note({"full_name": "Theo Tech", "department": "technical"})
    assert note == "Ticket has been assigned to Theo Tech from technical department."


def test_roster_counts_unresolved_load(store: MemoryStore) -> None:
    base = {"status": "in_progress", "priority": "low", "category": "technical", "created_by": CUSTOMER_ID}
    store.seed(
        "tickets",
        [
            {**base, "id": "t1", "assigned_to": TECH_ID, "resolved": False, "created_at": at(0), "updated_at": at(0)},
            {**base, "id": "t2", "assigned_to": TECH_ID, "resolved": False, "created_at": at(1), "updated_at": at(1)},
            {**base, "id": "t3", "assigned_to": TECH_ID, "resolved": True, "created_at": at(2), "updated_at": at(2)},
            {**base, "id": "t4", "assigned_to": BILLING_ID, "resolved": False, "created_at": at(3), "updated_at": at(3)},
        ],
    )
    roster = EmployeeRoster(store)
    rows = asyncio.run(roster.fetch())

    loads = {x["id"]: x["unresolved_tickets"] for x in rows}
    assert loads == {MANAGER_ID: 0, TECH_ID: 2, BILLING_ID: 1}
    assert [x["unresolved_tickets"] for x in rows] == [0, 1, 2]
    assert roster.find(TECH_ID)["full_name"] == "Theo Tech"
    assert [x["id"] for x in asyncio.run(roster.fetch(department="billing"))] == [BILLING_ID]


def _assignments(store: MemoryStore) -> AssignmentService:
    tickets = TicketService(store, actor_id=MANAGER_ID)
    return AssignmentService(tickets, MessageService(store, actor_id=MANAGER_ID, tickets=tickets))


def test_confirm_assignment_sets_assignee_status_and_narrates(store: MemoryStore, ticket: dict) -> None:
    employee = {"id": TECH_ID, "full_name": "Theo Tech", "department": "technical"}
    row = asyncio.run(_assignments(store).confirm_assignment(ticket["id"], employee))

    assert row["assigned_to"] == TECH_ID
    assert row["status"] == "in_progress"
    messages = store.rows("messages")
    assert len(messages) == 1
    assert messages[0]["is_system_message"] is True
    assert messages[0]["sender_type"] == "employee"
    assert messages[0]["message"] == "Ticket has been assigned to Theo Tech from technical department."


def test_assignment_keeps_closed_status(store: MemoryStore, ticket: dict) -> None:
    asyncio.run(store.update("tickets", {"id": ticket["id"]}, {"status": "closed", "resolved": True}))
    row = asyncio.run(_assignments(store).confirm_assignment(ticket["id"], {"id": TECH_ID, "full_name": "T"}))
    assert row["status"] == "closed"
    assert row["assigned_to"] == TECH_ID


def test_assignment_rolls_back_when_note_fails(store: MemoryStore, ticket: dict) -> None:
    service = _assignments(store)
    store.fail_next("insert", "messages")

    with pytest.raises(StoreError):
        asyncio.run(service.confirm_assignment(ticket["id"], {"id": TECH_ID, "full_name": "T"}))

    current = store.rows("tickets")[0]
    assert current["assigned_to"] is None
    assert current["status"] == "fresh"
    assert store.rows("messages") == []
    assert service.error
