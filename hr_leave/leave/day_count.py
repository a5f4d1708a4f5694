"""Day counting for leave requests.

The count is taken once, at submission, and frozen into
``LeaveRequest.total_days``. Anything that needs a different rule
(weekends, holidays) supplies its own ``DayCounter`` to the service.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable

from hr_leave.common.exceptions import InvalidRangeException

DayCounter = Callable[[date, date], Decimal]


def count_inclusive_days(start_date: date, end_date: date) -> Decimal:
    """Inclusive calendar days between two dates, e.g. Mon→Wed is 3.

    Raises:
        InvalidRangeException: ``end_date`` precedes ``start_date``.
    """
    if end_date < start_date:
        raise InvalidRangeException(start_date, end_date)
    return Decimal((end_date - start_date).days + 1)
