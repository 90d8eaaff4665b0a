from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from supportdesk.api.v1.deps import get_current_role, get_store
from supportdesk.core.errors import NotFound
from supportdesk.schemas.common import MessageResponse
from supportdesk.schemas.ticket import (
    EmployeeOut,
    MessageCreateIn,
    MessageOut,
    TicketAssignIn,
    TicketCreateIn,
    TicketOut,
    TicketUpdateIn,
)
from supportdesk.services.access import CustomerRole, EmployeeRole, ResolvedRole, require_reviewer
from supportdesk.services.employees import EmployeeRoster
from supportdesk.services.messages import MessageService
from supportdesk.services.routing import AssignmentService, recommend
from supportdesk.services.tickets import TicketService
from supportdesk.store.base import Row, Store

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _ticket_service(store: Store, role: ResolvedRole) -> TicketService:
    return TicketService(store, actor_id=role.user_id)


def _message_service(store: Store, role: ResolvedRole) -> MessageService:
    return MessageService(store, actor_id=role.user_id, tickets=_ticket_service(store, role))


async def _visible_ticket(store: Store, role: ResolvedRole, ticket_id: str) -> Row:
    ticket = await _ticket_service(store, role).get_ticket(ticket_id)
    if isinstance(role, EmployeeRole):
        return ticket
    if isinstance(role, CustomerRole) and ticket.get("created_by") == role.user_id:
        return ticket
    # Other customers' tickets are indistinguishable from missing ones.
    raise NotFound("Ticket not found")


@router.get("", response_model=list[TicketOut])
async def list_tickets(
    unassigned: bool = Query(default=False),
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[TicketOut]:
    service = _ticket_service(store, role)
    if not isinstance(role, EmployeeRole):
        rows = await service.fetch_tickets(created_by=role.user_id)
    else:
        rows = await service.fetch_tickets()
        if unassigned:
            rows = sorted((x for x in rows if not x.get("assigned_to")), key=lambda x: x["created_at"])
    return [TicketOut.model_validate(x) for x in rows]


@router.post("", response_model=TicketOut, status_code=201)
async def create_ticket(
    payload: TicketCreateIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> TicketOut:
    tickets = _ticket_service(store, role)
    row = await tickets.create_ticket(payload.category)
    if payload.message and payload.message.strip():
        messages = MessageService(store, actor_id=role.user_id, tickets=tickets)
        await messages.send(row["id"], payload.message)
        row = await tickets.get_ticket(row["id"])
    return TicketOut.model_validate(row)


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(
    ticket_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> TicketOut:
    return TicketOut.model_validate(await _visible_ticket(store, role, ticket_id))


@router.patch("/{ticket_id}", response_model=TicketOut)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> TicketOut:
    require_reviewer(role)
    service = _ticket_service(store, role)
    ticket = await service.get_ticket(ticket_id)

    changes: dict[str, object] = {}
    fields = payload.model_dump(exclude_unset=True)
    for key in ("category", "priority", "status"):
        value = fields.get(key)
        if value is not None and value != ticket.get(key):
            changes[key] = value
    if "name" in fields and ((fields["name"] or "").strip() or None) != ticket.get("name"):
        changes["name"] = (fields["name"] or "").strip() or None
    if "status" in changes:
        changes["resolved"] = changes["status"] == "closed"

    row = await service.apply_changes(ticket_id, changes)
    return TicketOut.model_validate(row)


@router.post("/{ticket_id}/assign", response_model=TicketOut)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> TicketOut:
    require_reviewer(role)
    roster = EmployeeRoster(store)
    await roster.fetch()
    employee = roster.find(payload.employee_id)
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")

    messages = _message_service(store, role)
    row = await AssignmentService(messages.tickets, messages).confirm_assignment(ticket_id, employee)
    return TicketOut.model_validate(row)


@router.get("/{ticket_id}/recommended-assignee", response_model=EmployeeOut | None)
async def recommended_assignee(
    ticket_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> EmployeeOut | None:
    require_reviewer(role)
    ticket = await _ticket_service(store, role).get_ticket(ticket_id)
    choice = recommend(ticket.get("category"), await EmployeeRoster(store).fetch())
    return EmployeeOut.model_validate(dict(choice)) if choice is not None else None


@router.delete("/{ticket_id}", response_model=MessageResponse)
async def delete_ticket(
    ticket_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> MessageResponse:
    require_reviewer(role)
    service = _ticket_service(store, role)
    await service.get_ticket(ticket_id)
    await service.delete_ticket(ticket_id)
    return MessageResponse(message="Ticket deleted")


@router.get("/{ticket_id}/messages", response_model=list[MessageOut])
async def list_messages(
    ticket_id: str,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> list[MessageOut]:
    await _visible_ticket(store, role, ticket_id)
    rows = await _message_service(store, role).fetch_messages(ticket_id)
    return [MessageOut.model_validate(x) for x in rows]


@router.post("/{ticket_id}/messages", response_model=MessageOut, status_code=201)
async def create_message(
    ticket_id: str,
    payload: MessageCreateIn,
    store: Store = Depends(get_store),
    role: ResolvedRole = Depends(get_current_role),
) -> MessageOut:
    await _visible_ticket(store, role, ticket_id)
    row = await _message_service(store, role).send(ticket_id, payload.message)
    if row is None:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    return MessageOut.model_validate(row)
