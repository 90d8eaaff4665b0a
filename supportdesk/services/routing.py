from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from supportdesk.core.errors import StoreError, SupportDeskError
from supportdesk.services.messages import MessageService
from supportdesk.services.tickets import TicketService
from supportdesk.store.base import Row

logger = logging.getLogger(__name__)

Employee = Mapping[str, Any]


def _least_loaded(employees: Sequence[Employee]) -> Employee:
    best = employees[0]
    for candidate in employees[1:]:
        if int(candidate.get("unresolved_tickets") or 0) < int(best.get("unresolved_tickets") or 0):
            best = candidate
    return best


def recommend(ticket_category: str | None, employees: Sequence[Employee]) -> Employee | None:
    """Advisory assignee: same department as the category, least loaded first.

    Ties go to the first employee in input order. Without a department match
    the least loaded employee overall is suggested.
    """
    if not employees:
        return None
    category = str(ticket_category or "").strip().lower()
    matches = [e for e in employees if str(e.get("department") or "").strip().lower() == category]
    return _least_loaded(matches or list(employees))


def assignment_note(employee: Employee) -> str:
    return (
        f"Ticket has been assigned to {employee.get('full_name') or 'an agent'} "
        f"from {employee.get('department') or 'support'} department."
    )


class AssignmentService:
    """Assignment, status change and narration as one unit.

    The assignee and the in_progress status land in a single row write. If
    the narration message cannot be stored the ticket is put back the way it
    was, so a caller can simply retry the whole assignment.
    """

    def __init__(self, tickets: TicketService, messages: MessageService) -> None:
        self.tickets = tickets
        self.messages = messages
        self.error: str | None = None

    async def confirm_assignment(
        self, ticket_id: str, employee: Employee, fields: Mapping[str, Any] | None = None
    ) -> Row:
        """Assign, move to in_progress and narrate it; ``fields`` ride along in the same write."""
        ticket = self.tickets.board.get(ticket_id) if self.tickets.board is not None else None
        if ticket is None:
            ticket = await self.tickets.get_ticket(ticket_id)

        changes: dict[str, Any] = dict(fields or {})
        changes["assigned_to"] = str(employee["id"])
        if ticket.get("status") != "closed":
            changes["status"] = "in_progress"
        previous = {key: ticket.get(key) for key in changes}

        try:
            updated = await self.tickets.apply_changes(ticket_id, changes)
        except SupportDeskError as exc:
            self.error = str(exc)
            raise

        try:
            await self.messages.send_system_message(ticket_id, assignment_note(employee))
        except SupportDeskError as exc:
            self.error = str(exc)
            logger.error("Assignment note failed for ticket id=%s, restoring previous assignee", ticket_id)
            try:
                await self.tickets.apply_changes(ticket_id, previous)
            except SupportDeskError:
                logger.exception("Could not restore ticket id=%s after failed assignment", ticket_id)
            raise StoreError("Assignment failed; previous assignment restored") from exc

        self.error = None
        logger.info("Assigned ticket id=%s to employee id=%s", ticket_id, employee["id"])
        if self.tickets.board is not None and ticket_id in self.tickets.board:
            return self.tickets.board.get(ticket_id) or updated
        return await self.tickets.get_ticket(ticket_id)
