"""Enums and constants for the leave ledger — stored as plain strings."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveCategory(str, enum.Enum):
    casual = "casual"
    sick = "sick"
    annual = "annual"
    parental = "parental"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    approved = "approved"
    denied = "denied"


class LedgerEntryType(str, enum.Enum):
    opening = "opening"
    submission = "submission"
    refund = "refund"
    reinstatement = "reinstatement"
    adjustment = "adjustment"


class LeaveSortField(str, enum.Enum):
    submitted_at = "submitted_at"
    start_date = "start_date"
    category = "category"
    status = "status"


class SortOrder(str, enum.Enum):
    asc = "asc"
    desc = "desc"


LEAVE_CATEGORY_LABELS: dict[LeaveCategory, str] = {
    LeaveCategory.casual: "Casual Leave",
    LeaveCategory.sick: "Sick Leave",
    LeaveCategory.annual: "Annual Leave",
    LeaveCategory.parental: "Parental Leave",
}


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.manager: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.hr_admin: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.system_admin: [
        "leave:request",
        "leave:read_own",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

BALANCE_QUANTUM = "0.01"          # two fractional digits on every balance
BALANCE_CEILING = "99999.99"      # largest value NUMERIC(7,2) holds
