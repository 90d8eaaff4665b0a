from __future__ import annotations

import logging

from supportdesk.core.errors import InvalidInput, NotFound
from supportdesk.realtime.feeds import MessageFeed
from supportdesk.services.access import require_reviewer, resolve_role
from supportdesk.services.employees import EmployeeRoster
from supportdesk.services.messages import MessageService
from supportdesk.services.routing import AssignmentService, recommend
from supportdesk.services.tickets import TicketService, normalize_category, normalize_priority
from supportdesk.store.base import Row

logger = logging.getLogger(__name__)


class CustomerDesk:
    """Customer chat entry point.

    ``start_chat`` reopens the customer's most recently updated ticket, or
    asks for a category when there is none. The first message of a new chat
    creates the ticket and is then sent on it.
    """

    def __init__(self, tickets: TicketService, messages: MessageService, feed: MessageFeed | None = None) -> None:
        self.tickets = tickets
        self.messages = messages
        self.feed = feed
        self.active_ticket_id: str | None = None
        self.awaiting_category = False
        self.category: str | None = None

    async def _activate(self, ticket_id: str) -> None:
        self.active_ticket_id = ticket_id
        if self.feed is not None:
            await self.feed.focus(ticket_id)

    async def start_chat(self) -> str | None:
        if not self.tickets.actor_id:
            raise InvalidInput("Sign in to start a chat")
        mine = await self.tickets.fetch_tickets(created_by=self.tickets.actor_id)
        if mine:
            latest = max(mine, key=lambda x: x["updated_at"])
            await self._activate(str(latest["id"]))
            self.awaiting_category = False
            return self.active_ticket_id
        self.awaiting_category = True
        return None

    def choose_category(self, category: str) -> str:
        self.category = normalize_category(category)
        self.awaiting_category = False
        return self.category

    async def send(self, text: str) -> Row | None:
        if not (text or "").strip():
            return None
        if self.active_ticket_id is None:
            if not self.category:
                raise InvalidInput("Choose a category first")
            ticket = await self.tickets.create_ticket(self.category)
            await self._activate(str(ticket["id"]))
        return await self.messages.send(self.active_ticket_id, text)


class ManagerConsole:
    """Manager view: edit ticket fields and assign from the roster."""

    def __init__(self, assignments: AssignmentService, roster: EmployeeRoster) -> None:
        self.assignments = assignments
        self.tickets = assignments.tickets
        self.roster = roster
        self.error: str | None = None

    async def _require_manager(self) -> None:
        require_reviewer(await resolve_role(self.tickets.store, self.tickets.actor_id))

    async def recommended_assignee(self, ticket_id: str) -> Row | None:
        await self._require_manager()
        ticket = await self.tickets.get_ticket(ticket_id)
        employees = self.roster.employees or await self.roster.fetch()
        choice = recommend(ticket.get("category"), employees)
        return dict(choice) if choice is not None else None

    async def save_changes(
        self,
        ticket_id: str,
        *,
        name: str | None = None,
        category: str | None = None,
        priority: str | None = None,
        assignee_id: str | None = None,
    ) -> Row:
        """Apply only the fields that differ from the stored ticket."""
        await self._require_manager()
        ticket = await self.tickets.get_ticket(ticket_id)

        changes: dict[str, object] = {}
        if name is not None and (name.strip() or None) != ticket.get("name"):
            changes["name"] = name.strip()[:255] or None
        if category is not None and normalize_category(category) != ticket.get("category"):
            changes["category"] = normalize_category(category)
        if priority is not None and normalize_priority(priority) != ticket.get("priority"):
            changes["priority"] = normalize_priority(priority)

        assignee: Row | None = None
        if assignee_id and assignee_id != ticket.get("assigned_to"):
            if not self.roster.employees:
                await self.roster.fetch()
            assignee = self.roster.find(assignee_id)
            if assignee is None:
                raise NotFound("Employee not found")

        # One ticket write either way; saving advances updated_at even with nothing changed.
        if assignee is not None:
            result = await self.assignments.confirm_assignment(ticket_id, assignee, changes)
        else:
            result = await self.tickets.apply_changes(ticket_id, changes)
        self.error = None
        return result
