"""Leave request status transitions and their effect on the balance.

Any status may move to any other status (re-review is allowed), so the
ledger effect is derived from one predicate instead of a transition table:
a request either holds its days against the balance or it does not.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from hr_leave.common.constants import LedgerEntryType, LeaveStatus

# Statuses whose days are returned to the employee.
REFUNDED_STATUSES: frozenset[LeaveStatus] = frozenset({LeaveStatus.denied})


def is_refunded(status: Optional[LeaveStatus]) -> bool:
    """True when a request in *status* holds no days.

    ``None`` stands for "no request yet" and counts as refunded, which makes
    submission an ordinary ``None → pending`` transition.
    """
    return status is None or status in REFUNDED_STATUSES


def balance_delta(
    old_status: Optional[LeaveStatus],
    new_status: LeaveStatus,
    total_days: Decimal,
) -> Decimal:
    """Signed change to the category balance for ``old_status → new_status``.

    Positive credits the balance (days returned), negative debits it.
    Depends only on whether each side is refunded, never on the path taken.
    """
    before = is_refunded(old_status)
    after = is_refunded(new_status)
    if before == after:
        return Decimal("0")
    if after:
        return total_days
    return -total_days


def entry_type_for(old_status: Optional[LeaveStatus], delta: Decimal) -> LedgerEntryType:
    """Ledger entry type recorded for a non-zero transition delta."""
    if old_status is None:
        return LedgerEntryType.submission
    if delta > 0:
        return LedgerEntryType.refund
    return LedgerEntryType.reinstatement
