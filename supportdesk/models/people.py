from __future__ import annotations

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from supportdesk.db.base import Base
from supportdesk.models.common import TimestampMixin, in_clause

EMPLOYEE_PERMISSIONS = ("super_admin", "admin", "manager", "agent", "employee")


class Employee(TimestampMixin, Base):
    __tablename__ = "employees"
    __table_args__ = (
        CheckConstraint(f"permissions in ({in_clause(EMPLOYEE_PERMISSIONS)})", name="ck_employees_permissions"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(64), default="other", nullable=False)
    permissions: Mapped[str] = mapped_column(String(20), default="employee", nullable=False)


class Customer(TimestampMixin, Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
