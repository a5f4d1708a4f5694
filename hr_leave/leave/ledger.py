"""Balance ledger — reads and mutates ``LeaveAccount`` balances.

``adjust`` must run inside the same transaction as the status write that
caused it; ``LeaveLedgerService`` is its only caller.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.constants import (
    BALANCE_CEILING,
    BALANCE_QUANTUM,
    LEAVE_CATEGORY_LABELS,
    LeaveCategory,
    LeaveStatus,
    LedgerEntryType,
)
from hr_leave.common.exceptions import (
    AccountNotFoundException,
    InsufficientBalanceException,
    ValidationException,
)
from hr_leave.leave.models import LeaveAccount, LeaveLedgerEntry

_QUANTUM = Decimal(BALANCE_QUANTUM)
_CEILING = Decimal(BALANCE_CEILING)


def quantize_days(value: Decimal) -> Decimal:
    """Round to the two fractional digits every balance column holds."""
    return Decimal(value).quantize(_QUANTUM)


class BalanceLedger:
    """Stateless access to leave balances on a caller-provided session."""

    @staticmethod
    async def get_account(
        session: AsyncSession,
        employee_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveAccount:
        query = select(LeaveAccount).where(LeaveAccount.employee_id == employee_id)
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        account = result.scalars().first()
        if account is None:
            raise AccountNotFoundException(employee_id)
        return account

    @staticmethod
    async def lock_account(session: AsyncSession, employee_id: uuid.UUID) -> LeaveAccount:
        """Load the account with a row lock held until the transaction ends."""
        return await BalanceLedger.get_account(session, employee_id, for_update=True)

    @staticmethod
    async def get_balance(
        session: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
    ) -> Decimal:
        account = await BalanceLedger.get_account(session, employee_id)
        return quantize_days(account.balance_for(category))

    @staticmethod
    async def adjust(
        session: AsyncSession,
        account: LeaveAccount,
        category: LeaveCategory,
        delta: Decimal,
        *,
        entry_type: LedgerEntryType,
        actor_id: Optional[uuid.UUID] = None,
        leave_request_id: Optional[uuid.UUID] = None,
        status_from: Optional[LeaveStatus] = None,
        status_to: Optional[LeaveStatus] = None,
        memo: Optional[str] = None,
    ) -> Decimal:
        """Apply *delta* to one category balance and record the movement.

        Returns the new balance.

        Raises:
            InsufficientBalanceException: the balance would go negative.
            ValidationException: the balance would exceed ``BALANCE_CEILING``.
            RuntimeError: called outside an open transaction.
        """
        if not session.in_transaction():
            raise RuntimeError("Ledger adjustments require an open transaction.")

        delta = quantize_days(delta)
        current = quantize_days(account.balance_for(category))
        new_balance = current + delta
        if new_balance < 0:
            raise InsufficientBalanceException(
                LEAVE_CATEGORY_LABELS[category], current, -delta,
            )
        if new_balance > _CEILING:
            raise ValidationException(
                errors={
                    "balance": [
                        f"{LEAVE_CATEGORY_LABELS[category]} balance cannot exceed {_CEILING}."
                    ]
                },
                detail="Balance would exceed the largest storable value.",
            )

        account.set_balance(category, new_balance)
        account.updated_at = datetime.now(timezone.utc)
        session.add(
            LeaveLedgerEntry(
                account_id=account.id,
                employee_id=account.employee_id,
                category=category,
                entry_type=entry_type,
                delta=delta,
                balance_after=new_balance,
                leave_request_id=leave_request_id,
                status_from=status_from,
                status_to=status_to,
                actor_id=actor_id,
                memo=memo,
            )
        )
        await session.flush()
        return new_balance
