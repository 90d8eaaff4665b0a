from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from supportdesk.api.v1.deps import get_current_role, get_store
from supportdesk.schemas.ticket import EmployeeMetricsOut, EmployeeOut, RoleOut
from supportdesk.services.access import EmployeeRole, ResolvedRole, require_employee, require_reviewer
from supportdesk.services.employees import EmployeeRoster
from supportdesk.services.metrics import EmployeeMetrics
from supportdesk.store.base import Store

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeOut])
async def list_employees(
    department: str | None = Query(default=None, max_length=64),
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[EmployeeOut]:
    require_employee(role)
    rows = await EmployeeRoster(store).fetch(department=(department or "").strip() or None)
    return [EmployeeOut.model_validate(x) for x in rows]


@router.get("/me", response_model=RoleOut)
async def whoami(role: ResolvedRole = Depends(get_current_role)) -> RoleOut:
    return RoleOut(
        user_id=role.user_id,
        role=role.role,
        department=role.department if isinstance(role, EmployeeRole) else None,
    )


@router.get("/metrics", response_model=list[EmployeeMetricsOut])
async def list_employee_metrics(
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[EmployeeMetricsOut]:
    require_reviewer(role)
    rows = await EmployeeMetrics(store).for_all()
    return [EmployeeMetricsOut.model_validate(x) for x in rows]


@router.get("/{employee_id}/metrics", response_model=EmployeeMetricsOut)
async def employee_metrics(
    employee_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> EmployeeMetricsOut:
    require_reviewer(role)
    return EmployeeMetricsOut.model_validate(await EmployeeMetrics(store).for_employee(employee_id))
