"""Leave router — apply, review, balances, allotment adjustments.

All endpoints require authentication. Review and account endpoints are
restricted to HR admins and scoped to the caller's organization.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.auth.dependencies import Identity, require_permission, require_role
from hr_leave.common.constants import LeaveCategory, LeaveSortField, LeaveStatus, SortOrder, UserRole
from hr_leave.common.rate_limit import limiter
from hr_leave.database import get_db
from hr_leave.leave.queries import LeaveQueryService
from hr_leave.leave.schemas import (
    BalanceAdjustRequest,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestListOut,
    LeaveRequestOut,
    LeaveStatusUpdate,
    LeaveSummaryOut,
)
from hr_leave.leave.service import LeaveLedgerService, get_leave_service

router = APIRouter(prefix="", tags=["leave"])


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=LeaveSummaryOut)
async def my_summary(
    limit: Optional[int] = Query(None, ge=1),
    identity: Identity = Depends(require_permission("leave:read_own")),
    db: AsyncSession = Depends(get_db),
):
    """The caller's balances and most recent requests."""
    return await LeaveQueryService.summary(db, identity.employee_id, limit=limit)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    identity: Identity = Depends(require_permission("leave:read_own")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveQueryService.balances_for(db, identity.employee_id)


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit("30/minute")
async def submit_request(
    request: Request,
    body: LeaveRequestCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=100),
    identity: Identity = Depends(require_permission("leave:request")),
    service: LeaveLedgerService = Depends(get_leave_service),
):
    """Apply for leave. Debits the category balance immediately."""
    return await service.submit(
        identity.employee_id,
        body.category,
        body.start_date,
        body.end_date,
        body.reason,
        note=body.note,
        attachments=body.attachments,
        idempotency_key=idempotency_key,
        organization_id=identity.organization_id,
    )


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=LeaveRequestListOut)
async def list_requests(
    status: Optional[LeaveStatus] = Query(None),
    category: Optional[LeaveCategory] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9998),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    sort_field: LeaveSortField = Query(LeaveSortField.submitted_at),
    sort_order: SortOrder = Query(SortOrder.desc),
    limit: Optional[int] = Query(None, ge=1),
    identity: Identity = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    """All leave requests in the caller's organization."""
    filters = LeaveRequestFilters(
        status=status,
        category=category,
        employee_id=employee_id,
        search=search,
        month=month,
        year=year,
        from_date=from_date,
        to_date=to_date,
        sort_field=sort_field,
        sort_order=sort_order,
        limit=limit,
    )
    return await LeaveQueryService.list_requests(db, identity.organization_id, filters)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    identity: Identity = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveQueryService.get_request(db, request_id, identity.organization_id)


# ── PUT /requests/{id}/status ───────────────────────────────────────

@router.put("/requests/{request_id}/status", response_model=LeaveRequestOut)
async def change_status(
    request_id: uuid.UUID,
    body: LeaveStatusUpdate,
    identity: Identity = Depends(require_role(UserRole.hr_admin)),
    service: LeaveLedgerService = Depends(get_leave_service),
):
    """Move a request to any status. Denying refunds; leaving denied re-debits."""
    return await service.change_status(
        request_id,
        identity.employee_id,
        body.status,
        note=body.note,
        organization_id=identity.organization_id,
    )


# ── GET /accounts/{employee_id}/balances ────────────────────────────

@router.get("/accounts/{employee_id}/balances", response_model=list[LeaveBalanceOut])
async def employee_balances(
    employee_id: uuid.UUID,
    identity: Identity = Depends(require_role(UserRole.hr_admin)),
    service: LeaveLedgerService = Depends(get_leave_service),
):
    return await service.get_balances(employee_id, organization_id=identity.organization_id)


# ── POST /accounts/{employee_id}/adjustments ────────────────────────

@router.post("/accounts/{employee_id}/adjustments", response_model=LeaveBalanceOut)
async def adjust_allotment(
    employee_id: uuid.UUID,
    body: BalanceAdjustRequest,
    identity: Identity = Depends(require_role(UserRole.hr_admin)),
    service: LeaveLedgerService = Depends(get_leave_service),
):
    """HR correction of an allotment. Recorded in the ledger with the reason."""
    return await service.adjust_allotment(
        employee_id,
        body.category,
        body.adjustment,
        body.reason,
        actor_id=identity.employee_id,
        organization_id=identity.organization_id,
    )
