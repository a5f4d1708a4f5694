"""Read-only leave projections — lists, filters, summaries.

Nothing here writes: every function only issues SELECTs on the session it
is handed, and the sessions handed to it are rolled back afterwards.
Balances shown are the account's current state, not a snapshot taken when
the request was made.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_leave.common.constants import (
    LEAVE_CATEGORY_LABELS,
    LeaveSortField,
    SortOrder,
)
from hr_leave.common.exceptions import (
    AccountNotFoundException,
    RequestNotFoundException,
    ValidationException,
)
from hr_leave.common.filters import apply_filters, apply_search, apply_sorting
from hr_leave.config import settings
from hr_leave.core_hr.models import Employee
from hr_leave.leave.ledger import quantize_days
from hr_leave.leave.models import LeaveAccount, LeaveRequest
from hr_leave.leave.schemas import (
    EmployeeBrief,
    LeaveAttachmentOut,
    LeaveBalanceOut,
    LeaveRequestFilters,
    LeaveRequestListOut,
    LeaveRequestOut,
    LeaveSummaryOut,
)

_SORT_COLUMNS: dict[str, Any] = {
    LeaveSortField.submitted_at.value: LeaveRequest.created_at,
    LeaveSortField.start_date.value: LeaveRequest.start_date,
    LeaveSortField.category.value: LeaveRequest.category,
    LeaveSortField.status.value: LeaveRequest.status,
}

_SEARCH_COLUMNS = (
    Employee.preferred_name,
    Employee.first_name,
    Employee.last_name,
    Employee.email,
    Employee.employee_code,
)


# ─────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────


def build_balances(account: LeaveAccount) -> list[LeaveBalanceOut]:
    """One entry per category, in declaration order."""
    return [
        LeaveBalanceOut(
            category=category,
            label=LEAVE_CATEGORY_LABELS[category],
            remaining=quantize_days(remaining),
        )
        for category, remaining in account.balances().items()
    ]


def build_employee_brief(emp: Employee) -> EmployeeBrief:
    return EmployeeBrief(
        id=emp.id,
        name=emp.display_name,
        email=emp.email,
        phone=emp.phone,
        employee_code=emp.employee_code,
        designation=emp.designation,
    )


def parse_attachments(value: Any) -> list[LeaveAttachmentOut]:
    """Stored attachment metadata → response items; malformed entries are skipped."""
    if not isinstance(value, list):
        return []
    parsed: list[LeaveAttachmentOut] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(LeaveAttachmentOut.model_validate(item))
        except ValidationError:
            continue
    return parsed


def build_request_response(
    req: LeaveRequest,
    account: LeaveAccount,
    *,
    employee: Optional[Employee] = None,
) -> LeaveRequestOut:
    """LeaveRequest ORM + owning account → projection."""
    balances = build_balances(account)
    remaining = next(b for b in balances if b.category == req.category)
    owner = employee if employee is not None else req.employee
    return LeaveRequestOut(
        id=req.id,
        employee_id=req.employee_id,
        category=req.category,
        category_label=LEAVE_CATEGORY_LABELS[req.category],
        start_date=req.start_date,
        end_date=req.end_date,
        total_days=quantize_days(req.total_days),
        status=req.status,
        reason=req.reason,
        note=req.note,
        attachments=parse_attachments(req.attachments),
        reviewed_by=req.reviewed_by,
        reviewed_at=req.reviewed_at,
        submitted_at=req.created_at,
        updated_at=req.updated_at,
        employee=build_employee_brief(owner) if owner is not None else None,
        balances=balances,
        remaining_balance=remaining,
    )


def _account_of(req: LeaveRequest) -> LeaveAccount:
    account = req.employee.leave_account
    if account is None:
        raise AccountNotFoundException(req.employee_id)
    return account


def _submission_window(
    month: Optional[int],
    year: Optional[int],
) -> tuple[Optional[datetime], Optional[datetime]]:
    """[start, end) of the submission month (or whole year when month is absent)."""
    if year is None:
        return None, None
    if month is None:
        return (
            datetime(year, 1, 1, tzinfo=timezone.utc),
            datetime(year + 1, 1, 1, tzinfo=timezone.utc),
        )
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _request_query():
    return select(LeaveRequest).options(
        selectinload(LeaveRequest.employee).selectinload(Employee.leave_account),
    )


# ═════════════════════════════════════════════════════════════════════
# LeaveQueryService
# ═════════════════════════════════════════════════════════════════════


class LeaveQueryService:
    """Async read-only leave views."""

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        organization_id: uuid.UUID,
        filters: LeaveRequestFilters,
    ) -> LeaveRequestListOut:
        """List the organization's leave requests with filters, search and sort.

        The result is capped at ``filters.limit`` (default
        ``LEAVE_LIST_DEFAULT_LIMIT``, never above ``LEAVE_LIST_MAX_LIMIT``).
        """
        if filters.month is not None and filters.year is None:
            raise ValidationException(
                errors={"month": ["A submission month needs a year."]},
            )
        limit = min(
            filters.limit or settings.LEAVE_LIST_DEFAULT_LIMIT,
            settings.LEAVE_LIST_MAX_LIMIT,
        )
        window_start, window_end = _submission_window(filters.month, filters.year)

        query = (
            _request_query()
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .where(Employee.organization_id == organization_id)
        )
        query = apply_filters(
            query,
            LeaveRequest,
            {
                "status": filters.status,
                "category": filters.category,
                "employee_id": filters.employee_id,
                "end_date__from": filters.from_date,
                "start_date__to": filters.to_date,
                "created_at__from": window_start,
                "created_at__before": window_end,
            },
        )
        query = apply_search(query, filters.search, _SEARCH_COLUMNS)

        prefix = "-" if filters.sort_order == SortOrder.desc else ""
        query = apply_sorting(
            query,
            _SORT_COLUMNS,
            f"{prefix}{filters.sort_field.value}",
            default=f"-{LeaveSortField.submitted_at.value}",
            tiebreaker=LeaveRequest.id,
        )

        result = await db.execute(query.limit(limit))
        requests = result.scalars().unique().all()

        data = [build_request_response(r, _account_of(r)) for r in requests]
        return LeaveRequestListOut(data=data, count=len(data), limit=limit)

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        organization_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Single request projection; other organizations' requests do not exist."""
        result = await db.execute(_request_query().where(LeaveRequest.id == request_id))
        req = result.scalars().first()
        if req is None or req.employee.organization_id != organization_id:
            raise RequestNotFoundException(request_id)
        return build_request_response(req, _account_of(req))

    @staticmethod
    async def summary(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        limit: Optional[int] = None,
    ) -> LeaveSummaryOut:
        """The employee's balances and most recent requests, newest first."""
        limit = min(
            limit or settings.LEAVE_SUMMARY_DEFAULT_LIMIT,
            settings.LEAVE_SUMMARY_MAX_LIMIT,
        )

        acc_result = await db.execute(
            select(LeaveAccount)
            .where(LeaveAccount.employee_id == employee_id)
            .options(selectinload(LeaveAccount.employee))
        )
        account = acc_result.scalars().first()
        if account is None:
            raise AccountNotFoundException(employee_id)

        req_result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .limit(limit)
        )
        requests = req_result.scalars().all()

        return LeaveSummaryOut(
            balances=build_balances(account),
            requests=[
                build_request_response(r, account, employee=account.employee)
                for r in requests
            ],
        )

    @staticmethod
    async def balances_for(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveBalanceOut]:
        result = await db.execute(
            select(LeaveAccount).where(LeaveAccount.employee_id == employee_id)
        )
        account = result.scalars().first()
        if account is None:
            raise AccountNotFoundException(employee_id)
        return build_balances(account)
