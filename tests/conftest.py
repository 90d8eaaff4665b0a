import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from supportdesk.store.memory import MemoryStore

MANAGER_ID = "emp-manager"
TECH_ID = "emp-tech"
BILLING_ID = "emp-billing"
CUSTOMER_ID = "cust-1"
OTHER_CUSTOMER_ID = "cust-2"

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


class HeldSelectStore(MemoryStore):
    """Selects on one table (optionally filtered) wait until `release()`."""

    def __init__(self, table: str, filters: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.held_table = table
        self.held_filters = dict(filters or {})
        self.gate = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def select(self, table: str, filters: Any = None, **kwargs: Any) -> list[dict]:
        if table == self.held_table and all((filters or {}).get(k) == v for k, v in self.held_filters.items()):
            await self.gate.wait()
        return await super().select(table, filters, **kwargs)


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore()
    store.seed(
        "employees",
        [
            {"id": MANAGER_ID, "full_name": "Maya Manager", "department": "general", "permissions": "manager"},
            {"id": TECH_ID, "full_name": "Theo Tech", "department": "technical", "permissions": "agent"},
            {"id": BILLING_ID, "full_name": "Bea Billing", "department": "billing", "permissions": "agent"},
        ],
    )
    store.seed("customers", [{"id": CUSTOMER_ID}, {"id": OTHER_CUSTOMER_ID}])
    return store


@pytest.fixture
def ticket(store: MemoryStore) -> dict:
    row = {
        "id": "ticket-1",
        "status": "fresh",
        "priority": "medium",
        "category": "technical",
        "created_by": CUSTOMER_ID,
        "assigned_to": None,
        "name": None,
        "resolved": False,
        "created_at": at(0),
        "updated_at": at(0),
    }
    store.seed("tickets", [row])
    return row
