"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.common.constants import (
    LeaveCategory,
    LeaveSortField,
    LeaveStatus,
    SortOrder,
)


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    employee_code: Optional[str] = None
    designation: Optional[str] = None


class LeaveBalanceOut(BaseModel):
    """Remaining balance of a single leave category."""

    category: LeaveCategory
    label: str
    remaining: Decimal


# ═════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════


class LeaveAttachmentIn(BaseModel):
    """Metadata of a file already stored elsewhere."""

    name: str = Field(..., min_length=1, max_length=120)
    mime_type: Optional[str] = Field(None, max_length=120)
    size_bytes: Optional[int] = Field(None, ge=0)
    storage_key: Optional[str] = Field(
        None, max_length=500, description="Reference to the stored blob",
    )


class LeaveAttachmentOut(BaseModel):
    id: uuid.UUID
    name: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    storage_key: Optional[str] = None
    uploaded_at: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create / Review
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request.

    Date order, reason length and attachment limits are business rules
    and are enforced by ``LeaveLedgerService.submit``.
    """

    category: LeaveCategory
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., description="Reason for leave")
    note: Optional[str] = None
    attachments: list[LeaveAttachmentIn] = Field(default_factory=list)


class LeaveStatusUpdate(BaseModel):
    """Payload for a reviewer moving a request to a new status."""

    status: LeaveStatus
    note: Optional[str] = Field(None, max_length=2000)


class BalanceAdjustRequest(BaseModel):
    """HR admin allotment correction."""

    category: LeaveCategory
    adjustment: Decimal = Field(
        ...,
        description="Positive to credit, negative to debit",
        max_digits=7,
        decimal_places=2,
    )
    reason: str = Field(..., min_length=5, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Leave request projection with the owner's current balances."""

    id: uuid.UUID
    employee_id: uuid.UUID
    category: LeaveCategory
    category_label: str
    start_date: date
    end_date: date
    total_days: Decimal
    status: LeaveStatus
    reason: str
    note: Optional[str] = None
    attachments: list[LeaveAttachmentOut] = Field(default_factory=list)
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    submitted_at: datetime
    updated_at: datetime

    # Enriched by service — current state, not a snapshot
    employee: Optional[EmployeeBrief] = None
    balances: list[LeaveBalanceOut] = Field(default_factory=list)
    remaining_balance: Optional[LeaveBalanceOut] = None


class LeaveRequestListOut(BaseModel):
    data: list[LeaveRequestOut]
    count: int
    limit: int


class LeaveSummaryOut(BaseModel):
    """An employee's own balances and most recent requests."""

    balances: list[LeaveBalanceOut]
    requests: list[LeaveRequestOut]


# ═════════════════════════════════════════════════════════════════════
# Leave Request Filters
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestFilters(BaseModel):
    """Query filters for listing leave requests."""

    status: Optional[LeaveStatus] = None
    category: Optional[LeaveCategory] = None
    employee_id: Optional[uuid.UUID] = None
    search: Optional[str] = Field(None, max_length=200)
    month: Optional[int] = Field(
        None, ge=1, le=12, description="Submission month; requires year",
    )
    year: Optional[int] = Field(None, ge=1970, le=9998, description="Submission year")
    from_date: Optional[date] = Field(None, description="Leave ends on or after")
    to_date: Optional[date] = Field(None, description="Leave starts on or before")
    sort_field: LeaveSortField = LeaveSortField.submitted_at
    sort_order: SortOrder = SortOrder.desc
    limit: Optional[int] = Field(None, ge=1)
