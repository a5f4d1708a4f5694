"""Core HR ORM models: Organization, Employee.

Only the columns the leave ledger needs to resolve organization scope and
to display who a request belongs to. Employee CRUD lives elsewhere.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_leave.database import Base

if TYPE_CHECKING:
    from hr_leave.leave.models import LeaveAccount, LeaveRequest


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Organization
# ═════════════════════════════════════════════════════════════════════


class Organization(Base):
    """Tenant boundary — every employee belongs to exactly one."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="organization")


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record as seen by the leave subsystem."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[Optional[str]] = mapped_column(
        sa.String(20), unique=True,
    )

    # ── Name ────────────────────────────────────────────────────────
    first_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    last_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    preferred_name: Mapped[Optional[str]] = mapped_column(sa.String(200))

    # ── Contact ─────────────────────────────────────────────────────
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    phone: Mapped[Optional[str]] = mapped_column(sa.String(20))

    # ── Job ─────────────────────────────────────────────────────────
    designation: Mapped[Optional[str]] = mapped_column(sa.String(200))

    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=sa.func.now(),
    )

    __table_args__ = (
        sa.Index("ix_employees_organization_id", "organization_id"),
    )

    # Relationships
    organization: Mapped[Organization] = relationship(back_populates="employees")
    leave_account: Mapped[Optional[LeaveAccount]] = relationship(
        back_populates="employee", uselist=False,
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee", foreign_keys="LeaveRequest.employee_id",
    )

    @property
    def display_name(self) -> str:
        """Preferred name, else first + last, else the email address."""
        if self.preferred_name:
            return self.preferred_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        if parts:
            return " ".join(parts)
        return self.email

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code or self.email}>"
