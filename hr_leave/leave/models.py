"""Leave ORM models: LeaveAccount, LeaveRequest, LeaveLedgerEntry."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_leave.common.constants import LeaveCategory, LeaveStatus, LedgerEntryType
from hr_leave.database import Base

if TYPE_CHECKING:
    from hr_leave.core_hr.models import Employee


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Every balance column name, keyed by the category it holds.
BALANCE_FIELD_BY_CATEGORY: dict[LeaveCategory, str] = {
    LeaveCategory.casual: "casual_balance",
    LeaveCategory.sick: "sick_balance",
    LeaveCategory.annual: "annual_balance",
    LeaveCategory.parental: "parental_balance",
}


class LeaveAccount(Base):
    """Per-employee leave balances, one column per category."""

    __tablename__ = "leave_accounts"
    __table_args__ = (
        sa.CheckConstraint("casual_balance >= 0", name="ck_leave_accounts_casual_non_negative"),
        sa.CheckConstraint("sick_balance >= 0", name="ck_leave_accounts_sick_non_negative"),
        sa.CheckConstraint("annual_balance >= 0", name="ck_leave_accounts_annual_non_negative"),
        sa.CheckConstraint(
            "parental_balance >= 0", name="ck_leave_accounts_parental_non_negative",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), unique=True, nullable=False
    )
    casual_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"), server_default=sa.text("0")
    )
    sick_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"), server_default=sa.text("0")
    )
    annual_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"), server_default=sa.text("0")
    )
    parental_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"), server_default=sa.text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=sa.func.now(),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(back_populates="leave_account")
    ledger_entries: Mapped[list[LeaveLedgerEntry]] = relationship(
        back_populates="account", order_by="LeaveLedgerEntry.created_at"
    )

    def balance_for(self, category: LeaveCategory) -> Decimal:
        return getattr(self, BALANCE_FIELD_BY_CATEGORY[category])

    def set_balance(self, category: LeaveCategory, value: Decimal) -> None:
        setattr(self, BALANCE_FIELD_BY_CATEGORY[category], value)

    def balances(self) -> dict[LeaveCategory, Decimal]:
        return {category: self.balance_for(category) for category in LeaveCategory}


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_date_order"),
        sa.CheckConstraint("total_days > 0", name="ck_leave_requests_total_days_positive"),
        sa.UniqueConstraint(
            "employee_id", "idempotency_key", name="uq_leave_requests_idempotency"
        ),
        sa.Index("ix_leave_requests_employee_id", "employee_id"),
        sa.Index("ix_leave_requests_status", "status"),
        sa.Index("ix_leave_requests_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category", native_enum=False, length=20),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # Frozen at submission; every ledger movement for this request uses it.
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(7, 2), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, length=20),
        nullable=False,
        default=LeaveStatus.pending,
        server_default=LeaveStatus.pending.value,
    )
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    attachments: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default=sa.text("'[]'")
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column(sa.String(100))
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=sa.func.now(),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    reviewer: Mapped[Optional["Employee"]] = relationship(
        foreign_keys=[reviewed_by]
    )
    ledger_entries: Mapped[list[LeaveLedgerEntry]] = relationship(
        back_populates="leave_request", order_by="LeaveLedgerEntry.created_at"
    )


class LeaveLedgerEntry(Base):
    """Append-only record of one balance movement and the transition behind it."""

    __tablename__ = "leave_ledger_entries"
    __table_args__ = (
        sa.Index("ix_leave_ledger_entries_account", "account_id", "category"),
        sa.Index("ix_leave_ledger_entries_request", "leave_request_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_accounts.id"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category", native_enum=False, length=20),
        nullable=False,
    )
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        sa.Enum(LedgerEntryType, name="ledger_entry_type", native_enum=False, length=20),
        nullable=False,
    )
    delta: Mapped[Decimal] = mapped_column(sa.Numeric(7, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(sa.Numeric(7, 2), nullable=False)
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id")
    )
    status_from: Mapped[Optional[LeaveStatus]] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, length=20)
    )
    status_to: Mapped[Optional[LeaveStatus]] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, length=20)
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    memo: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    account: Mapped[LeaveAccount] = relationship(back_populates="ledger_entries")
    leave_request: Mapped[Optional[LeaveRequest]] = relationship(
        back_populates="ledger_entries"
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveLedgerEntry {self.entry_type.value} {self.category.value} "
            f"{self.delta:+} → {self.balance_after}>"
        )
