from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from statistics import fmean

from supportdesk.core.errors import NotFound, StoreError
from supportdesk.models.common import utcnow
from supportdesk.store.base import Row, Store

logger = logging.getLogger(__name__)


def _seconds(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None:
        return None
    return (end - start).total_seconds()


def _mean(values: Iterable[float | None]) -> float | None:
    clean = [x for x in values if x is not None]
    return round(fmean(clean), 1) if clean else None


def _rate(part: int, whole: int) -> float:
    return round(100.0 * part / whole, 1) if whole else 0.0


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class EmployeeMetrics:
    """Ticket, messaging and article figures per employee for the manager dashboard.

    Durations are in seconds. Resolution time runs from ticket creation to its
    last update once resolved; first response runs from ticket creation to the
    employee's first non-system message on it. Rates are percentages.
    """

    def __init__(self, store: Store) -> None:
        self.store = store
        self.error: str | None = None

    async def for_employee(self, employee_id: str, now: datetime | None = None) -> Row:
        try:
            employees = await self.store.select("employees", {"id": employee_id}, limit=1)
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Employee lookup failed for id=%s", employee_id)
            raise StoreError("Failed to load employee") from exc
        if not employees:
            raise NotFound("Employee not found")
        return await self._compute(employees[0], now or utcnow())

    async def for_all(self, now: datetime | None = None) -> list[Row]:
        try:
            employees = await self.store.select("employees", order_by="full_name")
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Employee listing failed")
            raise StoreError("Failed to fetch employees") from exc
        moment = now or utcnow()
        return [await self._compute(x, moment) for x in employees]

    async def _compute(self, employee: Row, now: datetime) -> Row:
        employee_id = str(employee["id"])
        try:
            tickets = await self.store.select("tickets", {"assigned_to": employee_id})
            sent = await self.store.select("messages", {"created_by": employee_id, "is_system_message": False})
            articles = await self.store.select("articles", {"created_by": employee_id})
            requests = await self.store.select("approval_requests", {"submitted_by": employee_id})
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Metrics query failed for employee id=%s", employee_id)
            raise StoreError("Failed to compute employee metrics") from exc

        first_reply: dict[str, datetime] = {}
        for msg in sorted(sent, key=lambda x: x["created_at"]):
            first_reply.setdefault(str(msg["ticket_id"]), msg["created_at"])

        resolved = [x for x in tickets if x.get("resolved")]
        since = month_start(now)
        this_month = [x for x in tickets if x["created_at"] >= since]
        reviewed = Counter(str(x["status"]) for x in requests if x.get("status") in ("approved", "rejected"))

        self.error = None
        return {
            "employee_id": employee_id,
            "full_name": employee.get("full_name"),
            "department": employee.get("department"),
            "total_tickets_assigned": len(tickets),
            "total_tickets_resolved": len(resolved),
            "current_open_tickets": len(tickets) - len(resolved),
            "avg_resolution_seconds": _mean(_seconds(x["created_at"], x.get("updated_at")) for x in resolved),
            "tickets_by_priority": dict(Counter(str(x["priority"]) for x in tickets)),
            "tickets_by_category": dict(Counter(str(x["category"]) for x in tickets)),
            "avg_first_response_seconds": _mean(
                _seconds(x["created_at"], first_reply.get(str(x["id"]))) for x in tickets
            ),
            "total_messages_sent": len(sent),
            "avg_messages_per_ticket": round(len(sent) / len(first_reply), 1) if first_reply else 0.0,
            "total_articles_created": len(articles),
            "total_articles_published": sum(1 for x in articles if x.get("published_at") is not None),
            "article_approval_rate": _rate(reviewed["approved"], sum(reviewed.values())),
            "total_article_views": sum(int(x.get("view_count") or 0) for x in articles),
            "articles_by_category": dict(Counter(str(x.get("category") or "uncategorized") for x in articles)),
            "monthly_tickets_resolved": sum(1 for x in resolved if (x.get("updated_at") or x["created_at"]) >= since),
            "monthly_response_rate": _rate(sum(1 for x in this_month if str(x["id"]) in first_reply), len(this_month)),
        }
