from __future__ import annotations

import logging

from supportdesk.core.errors import StoreError
from supportdesk.store.base import Row, Store

logger = logging.getLogger(__name__)


class EmployeeRoster:
    """Employees with their current unresolved-ticket load."""

    def __init__(self, store: Store) -> None:
        self.store = store
        self.employees: list[Row] = []
        self.error: str | None = None

    async def _load(self, employee_id: str) -> int:
        rows = await self.store.select("tickets", {"assigned_to": employee_id, "resolved": False})
        return len(rows)

    async def fetch(self, department: str | None = None) -> list[Row]:
        filters = {"department": department} if department else None
        try:
            rows = await self.store.select("employees", filters, order_by="full_name")
            out = [{**row, "unresolved_tickets": await self._load(str(row["id"]))} for row in rows]
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Employee roster fetch failed (department=%s)", department)
            raise StoreError("Failed to fetch employees") from exc
        out.sort(key=lambda x: x["unresolved_tickets"])
        self.employees = out
        self.error = None
        return out

    def find(self, employee_id: str | None) -> Row | None:
        for row in self.employees:
            if row["id"] == employee_id:
                return row
        return None
