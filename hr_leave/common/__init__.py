"""Common module — shared utilities for HR Leave."""

from hr_leave.common.constants import (
    BALANCE_CEILING,
    BALANCE_QUANTUM,
    LEAVE_CATEGORY_LABELS,
    PERMISSIONS,
    LeaveCategory,
    LeaveSortField,
    LeaveStatus,
    LedgerEntryType,
    SortOrder,
    UserRole,
)
from hr_leave.common.exceptions import (
    AccountNotFoundException,
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidRangeException,
    NotFoundException,
    RequestNotFoundException,
    StoreUnavailableException,
    ValidationException,
    register_exception_handlers,
)
from hr_leave.common.filters import apply_filters, apply_search, apply_sorting

__all__ = [
    # Constants / Enums
    "LeaveCategory",
    "LeaveSortField",
    "LeaveStatus",
    "LedgerEntryType",
    "SortOrder",
    "UserRole",
    "PERMISSIONS",
    "LEAVE_CATEGORY_LABELS",
    "BALANCE_CEILING",
    "BALANCE_QUANTUM",
    # Exceptions
    "AppException",
    "AccountNotFoundException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidRangeException",
    "NotFoundException",
    "RequestNotFoundException",
    "StoreUnavailableException",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_search",
    "apply_sorting",
]
