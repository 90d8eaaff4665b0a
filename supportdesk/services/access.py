from __future__ import annotations

import logging
from dataclasses import dataclass

from supportdesk.core.errors import AccessDenied, StoreError
from supportdesk.store.base import Store

logger = logging.getLogger(__name__)

REVIEWER_PERMISSIONS = frozenset({"manager", "admin", "super_admin"})


@dataclass(slots=True, frozen=True)
class EmployeeRole:
    user_id: str
    department: str
    permissions: str
    full_name: str = ""

    @property
    def role(self) -> str:
        return self.permissions


@dataclass(slots=True, frozen=True)
class CustomerRole:
    user_id: str

    @property
    def role(self) -> str:
        return "customer"


@dataclass(slots=True, frozen=True)
class Unresolved:
    user_id: str | None

    @property
    def role(self) -> None:
        return None


ResolvedRole = EmployeeRole | CustomerRole | Unresolved


async def resolve_role(store: Store, user_id: str | None) -> ResolvedRole:
    """Employee roster first, then customers; anything else has no access.

    Callers resolve again for every guarded action: roles change between
    sessions and are never cached here.
    """
    if not user_id:
        return Unresolved(user_id=None)
    try:
        employees = await store.select("employees", {"id": user_id}, limit=1)
        if employees:
            row = employees[0]
            return EmployeeRole(
                user_id=user_id,
                department=str(row.get("department") or "other"),
                permissions=str(row.get("permissions") or "employee"),
                full_name=str(row.get("full_name") or ""),
            )
        customers = await store.select("customers", {"id": user_id}, limit=1)
    except Exception as exc:
        logger.exception("Role lookup failed for user id=%s", user_id)
        raise StoreError("Role lookup failed") from exc
    if customers:
        return CustomerRole(user_id=user_id)
    return Unresolved(user_id=user_id)


def is_employee(role: ResolvedRole) -> bool:
    return isinstance(role, EmployeeRole)


def is_reviewer(role: ResolvedRole) -> bool:
    return isinstance(role, EmployeeRole) and role.permissions in REVIEWER_PERMISSIONS


def require_employee(role: ResolvedRole) -> EmployeeRole:
    if not isinstance(role, EmployeeRole):
        raise AccessDenied("Employee access required")
    return role


def require_reviewer(role: ResolvedRole) -> EmployeeRole:
    if not is_reviewer(role):
        raise AccessDenied("Manager privileges required")
    return role  # type: ignore[return-value]


def require_known(role: ResolvedRole) -> EmployeeRole | CustomerRole:
    if isinstance(role, Unresolved):
        raise AccessDenied("No access")
    return role
