import asyncio

import pytest

from supportdesk.core.errors import AccessDenied, StoreError
from supportdesk.services.access import (
    CustomerRole,
    EmployeeRole,
    Unresolved,
    is_reviewer,
    require_employee,
    require_known,
    require_reviewer,
    resolve_role,
)
from supportdesk.store.memory import MemoryStore

from tests.conftest import CUSTOMER_ID, MANAGER_ID, TECH_ID


def test_employee_found_first(store: MemoryStore) -> None:
    store.seed("customers", [{"id": TECH_ID}])
    role = asyncio.run(resolve_role(store, TECH_ID))
    assert role == EmployeeRole(user_id=TECH_ID, department="technical", permissions="agent", full_name="Theo Tech")
    assert role.role == "agent"


def test_customer_and_unknown(store: MemoryStore) -> None:
    assert asyncio.run(resolve_role(store, CUSTOMER_ID)) == CustomerRole(user_id=CUSTOMER_ID)
    assert asyncio.run(resolve_role(store, "stranger")) == Unresolved(user_id="stranger")
    assert asyncio.run(resolve_role(store, None)) == Unresolved(user_id=None)


def test_lookup_failure_is_a_store_error(store: MemoryStore) -> None:
    store.fail_next("select", "employees")
    with pytest.raises(StoreError):
        asyncio.run(resolve_role(store, TECH_ID))


def test_guards(store: MemoryStore) -> None:
    manager = asyncio.run(resolve_role(store, MANAGER_ID))
    agent = asyncio.run(resolve_role(store, TECH_ID))
    customer = asyncio.run(resolve_role(store, CUSTOMER_ID))

    assert is_reviewer(manager)
    assert not is_reviewer(agent)
    assert require_reviewer(manager) is manager
    assert require_employee(agent) is agent
    assert require_known(customer) is customer
    with pytest.raises(AccessDenied):
        require_reviewer(agent)
    with pytest.raises(AccessDenied):
        require_employee(customer)
    with pytest.raises(AccessDenied):
        require_known(Unresolved(user_id="x"))
