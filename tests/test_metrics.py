import asyncio

import pytest

from supportdesk.core.errors import NotFound, StoreError
from supportdesk.services.metrics import EmployeeMetrics, month_start
from supportdesk.store.memory import MemoryStore

from tests.conftest import BILLING_ID, CUSTOMER_ID, TECH_ID, at

DAY = 60 * 24


def _seed(store: MemoryStore) -> None:
    base = {"created_by": CUSTOMER_ID, "status": "in_progress"}
    store.seed(
        "tickets",
        [
            {**base, "id": "t1", "assigned_to": TECH_ID, "priority": "high", "category": "technical",
             "resolved": True, "created_at": at(0), "updated_at": at(120)},
            {**base, "id": "t2", "assigned_to": TECH_ID, "priority": "low", "category": "technical",
             "resolved": False, "created_at": at(10), "updated_at": at(10)},
            {**base, "id": "t3", "assigned_to": TECH_ID, "priority": "high", "category": "billing",
             "resolved": True, "created_at": at(-40 * DAY), "updated_at": at(-35 * DAY)},
            {**base, "id": "t4", "assigned_to": BILLING_ID, "priority": "low", "category": "billing",
             "resolved": False, "created_at": at(0), "updated_at": at(0)},
        ],
    )
    store.seed(
        "messages",
        [
            {"id": "m0", "ticket_id": "t1", "created_by": TECH_ID, "is_system_message": True, "created_at": at(5)},
            {"id": "m1", "ticket_id": "t1", "created_by": TECH_ID, "is_system_message": False, "created_at": at(30)},
            {"id": "m2", "ticket_id": "t1", "created_by": TECH_ID, "is_system_message": False, "created_at": at(60)},
            {"id": "m3", "ticket_id": "t2", "created_by": TECH_ID, "is_system_message": False, "created_at": at(40)},
            {"id": "m4", "ticket_id": "t2", "created_by": CUSTOMER_ID, "is_system_message": False, "created_at": at(45)},
        ],
    )
    store.seed(
        "articles",
        [
            {"id": "a1", "created_by": TECH_ID, "status": "approved", "category": "how_to", "view_count": 10,
             "published_at": at(90)},
            {"id": "a2", "created_by": TECH_ID, "status": "draft", "category": None, "view_count": 0,
             "published_at": None},
        ],
    )
    store.seed(
        "approval_requests",
        [{"article_id": "a1", "submitted_by": TECH_ID, "status": x} for x in ("approved", "rejected", "rejected", "pending")],
    )


def test_employee_metrics_cover_tickets_messages_and_articles(store: MemoryStore) -> None:
    _seed(store)
    metrics = asyncio.run(EmployeeMetrics(store).for_employee(TECH_ID, now=at(5 * DAY)))

    assert metrics["full_name"] == "Theo Tech"
    assert metrics["total_tickets_assigned"] == 3
    assert metrics["total_tickets_resolved"] == 2
    assert metrics["current_open_tickets"] == 1
    assert metrics["tickets_by_priority"] == {"high": 2, "low": 1}
    assert metrics["tickets_by_category"] == {"technical": 2, "billing": 1}
    assert metrics["avg_resolution_seconds"] == (2 * 3600 + 5 * 86400) / 2
    assert metrics["avg_first_response_seconds"] == 1800.0
    assert metrics["total_messages_sent"] == 3
    assert metrics["avg_messages_per_ticket"] == 1.5
    assert metrics["total_articles_created"] == 2
    assert metrics["total_articles_published"] == 1
    assert metrics["article_approval_rate"] == 33.3
    assert metrics["total_article_views"] == 10
    assert metrics["articles_by_category"] == {"how_to": 1, "uncategorized": 1}
    assert metrics["monthly_tickets_resolved"] == 1
    assert metrics["monthly_response_rate"] == 100.0


def test_idle_employee_has_zeroed_metrics(store: MemoryStore) -> None:
    metrics = asyncio.run(EmployeeMetrics(store).for_employee(BILLING_ID, now=at(0)))
    assert metrics["total_tickets_assigned"] == 0
    assert metrics["avg_resolution_seconds"] is None
    assert metrics["avg_first_response_seconds"] is None
    assert metrics["avg_messages_per_ticket"] == 0.0
    assert metrics["article_approval_rate"] == 0.0
    assert metrics["monthly_response_rate"] == 0.0


def test_metrics_for_all_employees_sorted_by_name(store: MemoryStore) -> None:
    _seed(store)
    rows = asyncio.run(EmployeeMetrics(store).for_all(now=at(0)))
    assert [x["full_name"] for x in rows] == ["Bea Billing", "Maya Manager", "Theo Tech"]
    assert rows[0]["current_open_tickets"] == 1


def test_unknown_employee_and_store_failure(store: MemoryStore) -> None:
    service = EmployeeMetrics(store)
    with pytest.raises(NotFound):
        asyncio.run(service.for_employee("nobody"))

    store.fail_next("select", "messages")
    with pytest.raises(StoreError):
        asyncio.run(service.for_employee(TECH_ID))
    assert service.error


def test_month_starts_at_midnight_on_the_first() -> None:
    assert month_start(at(20 * DAY)) == at(-9 * 60)
