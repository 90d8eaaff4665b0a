from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TicketStatus = Literal["fresh", "in_progress", "closed"]
TicketPriority = Literal["low", "medium", "high", "critical"]
TicketCategory = Literal["general", "billing", "technical", "feedback", "account", "feature_request", "other"]


class TicketCreateIn(BaseModel):
    category: TicketCategory
    message: str | None = Field(default=None, max_length=4000)


class TicketUpdateIn(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    category: TicketCategory | None = None
    priority: TicketPriority | None = None
    status: TicketStatus | None = None


class TicketAssignIn(BaseModel):
    employee_id: str = Field(min_length=1, max_length=36)


class TicketOut(BaseModel):
    id: str
    status: str
    priority: str
    category: str
    created_by: str
    assigned_to: str | None = None
    name: str | None = None
    resolved: bool = False
    created_at: datetime
    updated_at: datetime


class MessageCreateIn(BaseModel):
    message: str = Field(min_length=1, max_length=4000)


class MessageOut(BaseModel):
    id: str
    ticket_id: str
    message: str
    created_by: str
    sender_type: Literal["employee", "customer"]
    is_system_message: bool = False
    created_at: datetime


class EmployeeOut(BaseModel):
    id: str
    full_name: str
    department: str
    permissions: str
    unresolved_tickets: int = 0


class RoleOut(BaseModel):
    user_id: str | None = None
    role: str | None = None
    department: str | None = None


class EmployeeMetricsOut(BaseModel):
    employee_id: str
    full_name: str | None = None
    department: str | None = None
    total_tickets_assigned: int = 0
    total_tickets_resolved: int = 0
    current_open_tickets: int = 0
    avg_resolution_seconds: float | None = None
    tickets_by_priority: dict[str, int] = Field(default_factory=dict)
    tickets_by_category: dict[str, int] = Field(default_factory=dict)
    avg_first_response_seconds: float | None = None
    total_messages_sent: int = 0
    avg_messages_per_ticket: float = 0.0
    total_articles_created: int = 0
    total_articles_published: int = 0
    article_approval_rate: float = 0.0
    total_article_views: int = 0
    articles_by_category: dict[str, int] = Field(default_factory=dict)
    monthly_tickets_resolved: int = 0
    monthly_response_rate: float = 0.0
