from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from supportdesk.db.base import Base
from supportdesk.models.common import TimestampMixin, in_clause, new_id, utcnow

TICKET_STATUSES = ("fresh", "in_progress", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "critical")
TICKET_CATEGORIES = ("general", "billing", "technical", "feedback", "account", "feature_request", "other")
SENDER_TYPES = ("employee", "customer")


class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_assigned_resolved", "assigned_to", "resolved"),
        Index("ix_tickets_created_by_updated", "created_by", "updated_at"),
        CheckConstraint(f"status in ({in_clause(TICKET_STATUSES)})", name="ck_tickets_status"),
        CheckConstraint(f"priority in ({in_clause(TICKET_PRIORITIES)})", name="ck_tickets_priority"),
        CheckConstraint(f"category in ({in_clause(TICKET_CATEGORIES)})", name="ck_tickets_category"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    status: Mapped[str] = mapped_column(String(24), default="fresh", nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    category: Mapped[str] = mapped_column(String(32), default="general", nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    assigned_to: Mapped[str | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_ticket_created", "ticket_id", "created_at"),
        CheckConstraint(f"sender_type in ({in_clause(SENDER_TYPES)})", name="ck_messages_sender_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    sender_type: Mapped[str] = mapped_column(String(16), nullable=False)
    is_system_message: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
