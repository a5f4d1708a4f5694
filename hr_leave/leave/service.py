"""Leave service layer — the only writer of leave balances.

Business logic:
  - Submission: day count, validation, balance check and debit, request row
  - Review: any status → any status, refunding or re-debiting the frozen
    ``total_days`` whenever the request crosses in or out of ``denied``
  - Account opening and HR allotment corrections

Every mutation runs in one ``LeaveUnitOfWork`` unit holding the
``(employee, category)`` lock, so a status change and its balance change
commit together or not at all.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from hr_leave.common.constants import (
    LEAVE_CATEGORY_LABELS,
    LeaveCategory,
    LeaveStatus,
    LedgerEntryType,
)
from hr_leave.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    RequestNotFoundException,
    ValidationException,
)
from hr_leave.config import settings
from hr_leave.core_hr.models import Employee
from hr_leave.database import async_session_factory
from hr_leave.leave.day_count import DayCounter, count_inclusive_days
from hr_leave.leave.ledger import BalanceLedger, quantize_days
from hr_leave.leave.models import LeaveAccount, LeaveRequest
from hr_leave.leave.queries import build_balances, build_request_response
from hr_leave.leave.schemas import (
    LeaveAttachmentIn,
    LeaveBalanceOut,
    LeaveRequestOut,
)
from hr_leave.leave.state_machine import balance_delta, entry_type_for
from hr_leave.leave.unit_of_work import AccountLocks, LeaveUnitOfWork

logger = logging.getLogger(__name__)

AttachmentInput = Union[LeaveAttachmentIn, dict[str, Any]]


# ═════════════════════════════════════════════════════════════════════
# LeaveLedgerService
# ═════════════════════════════════════════════════════════════════════


class LeaveLedgerService:
    """Async leave mutations: submit, change status, open and adjust accounts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        locks: Optional[AccountLocks] = None,
        day_counter: DayCounter = count_inclusive_days,
    ) -> None:
        self.uow = LeaveUnitOfWork(session_factory, locks)
        self.day_counter = day_counter

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _coerce_category(value: Union[LeaveCategory, str]) -> LeaveCategory:
        try:
            return LeaveCategory(value)
        except ValueError:
            raise ValidationException(
                {"category": [
                    f"Unknown leave category '{value}'. Expected one of: "
                    f"{', '.join(c.value for c in LeaveCategory)}."
                ]}
            )

    @staticmethod
    def _coerce_status(value: Union[LeaveStatus, str]) -> LeaveStatus:
        try:
            return LeaveStatus(value)
        except ValueError:
            raise ValidationException(
                {"status": [
                    f"Unknown leave status '{value}'. Expected one of: "
                    f"{', '.join(s.value for s in LeaveStatus)}."
                ]}
            )

    @staticmethod
    def _validate_reason(reason: Optional[str]) -> str:
        reason = (reason or "").strip()
        if len(reason) < settings.LEAVE_REASON_MIN_LENGTH:
            raise ValidationException(
                {"reason": [
                    f"Reason must be at least {settings.LEAVE_REASON_MIN_LENGTH} characters."
                ]}
            )
        if len(reason) > settings.LEAVE_REASON_MAX_LENGTH:
            raise ValidationException(
                {"reason": [
                    f"Reason must be at most {settings.LEAVE_REASON_MAX_LENGTH} characters."
                ]}
            )
        return reason

    @staticmethod
    def _validate_note(note: Optional[str]) -> Optional[str]:
        if note is not None and len(note) > settings.LEAVE_NOTE_MAX_LENGTH:
            raise ValidationException(
                {"note": [
                    f"Note must be at most {settings.LEAVE_NOTE_MAX_LENGTH} characters."
                ]}
            )
        return note

    @staticmethod
    def _store_attachments(
        attachments: Optional[Sequence[AttachmentInput]],
    ) -> list[dict[str, Any]]:
        """Validate attachment metadata and shape it for the JSON column."""
        if not attachments:
            return []
        if len(attachments) > settings.LEAVE_MAX_ATTACHMENTS:
            raise ValidationException(
                {"attachments": [
                    f"At most {settings.LEAVE_MAX_ATTACHMENTS} attachments are allowed."
                ]}
            )

        uploaded_at = datetime.now(timezone.utc).isoformat()
        stored: list[dict[str, Any]] = []
        for index, raw in enumerate(attachments):
            try:
                item = (
                    raw if isinstance(raw, LeaveAttachmentIn)
                    else LeaveAttachmentIn.model_validate(raw)
                )
            except ValidationError as exc:
                raise ValidationException(
                    {f"attachments.{index}": [e["msg"] for e in exc.errors()]}
                )
            if not item.storage_key:
                raise ValidationException(
                    {f"attachments.{index}": ["Attachment reference missing."]}
                )
            if (
                item.size_bytes is not None
                and item.size_bytes > settings.LEAVE_MAX_ATTACHMENT_BYTES
            ):
                limit_mb = settings.LEAVE_MAX_ATTACHMENT_BYTES // (1024 * 1024)
                raise ValidationException(
                    {f"attachments.{index}": [
                        f"Attachments must be smaller than {limit_mb} MB."
                    ]}
                )
            stored.append({
                "id": str(uuid.uuid4()),
                "name": item.name,
                "mime_type": item.mime_type,
                "size_bytes": item.size_bytes,
                "storage_key": item.storage_key,
                "uploaded_at": uploaded_at,
            })
        return stored

    @staticmethod
    def _ensure_in_scope(
        employee: Optional[Employee],
        organization_id: Optional[uuid.UUID],
    ) -> None:
        """Defense in depth: the caller may only touch its own organization."""
        if organization_id is None:
            return
        if employee is None or employee.organization_id != organization_id:
            raise ForbiddenException(
                "This employee is outside your organization."
            )

    @staticmethod
    async def _find_by_idempotency_key(
        session: AsyncSession,
        employee_id: uuid.UUID,
        idempotency_key: str,
    ) -> Optional[LeaveRequest]:
        result = await session.execute(
            select(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.idempotency_key == idempotency_key,
            )
        )
        return result.scalars().first()

    @staticmethod
    def _ensure_same_submission(
        existing: LeaveRequest,
        category: LeaveCategory,
        start_date: date,
        end_date: date,
    ) -> None:
        if (
            existing.category != category
            or existing.start_date != start_date
            or existing.end_date != end_date
        ):
            raise ConflictError(
                "idempotency_key",
                existing.idempotency_key,
                detail="This idempotency key was already used for a different leave request.",
            )

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    async def get_balance(
        self,
        employee_id: uuid.UUID,
        category: Union[LeaveCategory, str],
        *,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Decimal:
        """Current balance of one category."""
        category = self._coerce_category(category)
        async with self.uow.read() as session:
            if organization_id is not None:
                self._ensure_in_scope(
                    await session.get(Employee, employee_id), organization_id,
                )
            return await BalanceLedger.get_balance(session, employee_id, category)

    async def get_balances(
        self,
        employee_id: uuid.UUID,
        *,
        organization_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        """Current balances of every category."""
        async with self.uow.read() as session:
            if organization_id is not None:
                self._ensure_in_scope(
                    await session.get(Employee, employee_id), organization_id,
                )
            account = await BalanceLedger.get_account(session, employee_id)
            return build_balances(account)

    # ─────────────────────────────────────────────────────────────────
    # Accounts
    # ─────────────────────────────────────────────────────────────────

    async def open_account(
        self,
        employee_id: uuid.UUID,
        *,
        casual: Decimal = Decimal("0"),
        sick: Decimal = Decimal("0"),
        annual: Decimal = Decimal("0"),
        parental: Decimal = Decimal("0"),
        actor_id: Optional[uuid.UUID] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        """Create the employee's leave account with its opening allotments."""
        openings = {
            LeaveCategory.casual: quantize_days(casual),
            LeaveCategory.sick: quantize_days(sick),
            LeaveCategory.annual: quantize_days(annual),
            LeaveCategory.parental: quantize_days(parental),
        }
        negative = [c.value for c, amount in openings.items() if amount < 0]
        if negative:
            raise ValidationException(
                {c: ["Opening balance cannot be negative."] for c in negative}
            )

        keys = [(employee_id, category) for category in LeaveCategory]
        async with self.uow.begin(*keys) as session:
            employee = await session.get(Employee, employee_id)
            if employee is None:
                raise NotFoundException("Employee", str(employee_id))
            self._ensure_in_scope(employee, organization_id)

            existing = await session.execute(
                select(LeaveAccount.id).where(LeaveAccount.employee_id == employee_id)
            )
            if existing.scalar() is not None:
                raise ConflictError("employee_id", employee_id)

            zero = Decimal("0.00")
            account = LeaveAccount(
                employee_id=employee_id,
                casual_balance=zero,
                sick_balance=zero,
                annual_balance=zero,
                parental_balance=zero,
            )
            session.add(account)
            await session.flush()

            for category, amount in openings.items():
                if amount > 0:
                    await BalanceLedger.adjust(
                        session,
                        account,
                        category,
                        amount,
                        entry_type=LedgerEntryType.opening,
                        actor_id=actor_id,
                        memo="Opening balance",
                    )
            balances = build_balances(account)

        logger.info(
            "Leave account opened: employee=%s balances=%s",
            employee_id,
            {c.value: str(a) for c, a in openings.items()},
        )
        return balances

    async def adjust_allotment(
        self,
        employee_id: uuid.UUID,
        category: Union[LeaveCategory, str],
        delta: Decimal,
        memo: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        """HR correction of an allotment, not tied to any request.

        A negative delta may not take the balance below zero.
        """
        category = self._coerce_category(category)
        delta = quantize_days(delta)
        if delta == 0:
            raise ValidationException({"adjustment": ["Adjustment must be non-zero."]})

        async with self.uow.begin((employee_id, category)) as session:
            account = await BalanceLedger.lock_account(session, employee_id)
            self._ensure_in_scope(await session.get(Employee, employee_id), organization_id)
            try:
                new_balance = await BalanceLedger.adjust(
                    session,
                    account,
                    category,
                    delta,
                    entry_type=LedgerEntryType.adjustment,
                    actor_id=actor_id,
                    memo=memo,
                )
            except InsufficientBalanceException:
                logger.warning(
                    "Allotment adjustment refused: employee=%s category=%s delta=%s",
                    employee_id, category.value, delta,
                )
                raise

        logger.info(
            "Allotment adjusted: employee=%s category=%s delta=%s balance_after=%s",
            employee_id, category.value, delta, new_balance,
        )
        return LeaveBalanceOut(
            category=category,
            label=LEAVE_CATEGORY_LABELS[category],
            remaining=new_balance,
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    async def submit(
        self,
        employee_id: uuid.UUID,
        category: Union[LeaveCategory, str],
        start_date: date,
        end_date: date,
        reason: str,
        *,
        note: Optional[str] = None,
        attachments: Optional[Sequence[AttachmentInput]] = None,
        idempotency_key: Optional[str] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> LeaveRequestOut:
        """Apply for leave: debit the balance and create a pending request.

        Validation and the day count happen before any store access. A retry
        carrying the same ``idempotency_key`` returns the original request
        without debiting again.
        """
        category = self._coerce_category(category)
        reason = self._validate_reason(reason)
        note = self._validate_note(note)
        stored_attachments = self._store_attachments(attachments)
        total_days = quantize_days(self.day_counter(start_date, end_date))
        if total_days <= 0:
            raise ValidationException({"dates": ["Invalid leave duration."]})

        try:
            return await self._submit(
                employee_id,
                category,
                start_date,
                end_date,
                total_days,
                reason=reason,
                note=note,
                attachments=stored_attachments,
                idempotency_key=idempotency_key,
                organization_id=organization_id,
            )
        except IntegrityError:
            # A concurrent submission with the same key committed first.
            if idempotency_key is None:
                raise
            return await self._replay_submission(
                employee_id, category, start_date, end_date, idempotency_key,
            )

    async def _submit(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        start_date: date,
        end_date: date,
        total_days: Decimal,
        *,
        reason: str,
        note: Optional[str],
        attachments: list[dict[str, Any]],
        idempotency_key: Optional[str],
        organization_id: Optional[uuid.UUID],
    ) -> LeaveRequestOut:
        async with self.uow.begin((employee_id, category)) as session:
            account = await BalanceLedger.lock_account(session, employee_id)
            employee = await session.get(Employee, employee_id)
            self._ensure_in_scope(employee, organization_id)

            if idempotency_key is not None:
                existing = await self._find_by_idempotency_key(
                    session, employee_id, idempotency_key,
                )
                if existing is not None:
                    self._ensure_same_submission(existing, category, start_date, end_date)
                    logger.info(
                        "Leave submission replayed: request=%s key=%s",
                        existing.id, idempotency_key,
                    )
                    return build_request_response(existing, account, employee=employee)

            available = quantize_days(account.balance_for(category))
            if available < total_days:
                logger.warning(
                    "Leave submission refused: employee=%s category=%s "
                    "requested=%s available=%s",
                    employee_id, category.value, total_days, available,
                )
                raise InsufficientBalanceException(
                    LEAVE_CATEGORY_LABELS[category], available, total_days,
                )

            now = datetime.now(timezone.utc)
            leave_request = LeaveRequest(
                id=uuid.uuid4(),
                employee_id=employee_id,
                category=category,
                start_date=start_date,
                end_date=end_date,
                total_days=total_days,
                status=LeaveStatus.pending,
                reason=reason,
                note=note,
                attachments=attachments,
                idempotency_key=idempotency_key,
                created_at=now,
                updated_at=now,
            )
            session.add(leave_request)

            delta = balance_delta(None, LeaveStatus.pending, total_days)
            new_balance = await BalanceLedger.adjust(
                session,
                account,
                category,
                delta,
                entry_type=entry_type_for(None, delta),
                actor_id=employee_id,
                leave_request_id=leave_request.id,
                status_to=LeaveStatus.pending,
                memo=reason,
            )
            response = build_request_response(leave_request, account, employee=employee)

        logger.info(
            "Leave request %s submitted: employee=%s category=%s days=%s balance_after=%s",
            leave_request.id, employee_id, category.value, total_days, new_balance,
        )
        return response

    async def _replay_submission(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        start_date: date,
        end_date: date,
        idempotency_key: str,
    ) -> LeaveRequestOut:
        async with self.uow.read() as session:
            existing = await self._find_by_idempotency_key(
                session, employee_id, idempotency_key,
            )
            if existing is None:
                raise ConflictError("idempotency_key", idempotency_key)
            self._ensure_same_submission(existing, category, start_date, end_date)
            account = await BalanceLedger.get_account(session, employee_id)
            employee = await session.get(Employee, employee_id)
            return build_request_response(existing, account, employee=employee)

    # ─────────────────────────────────────────────────────────────────
    # Change status
    # ─────────────────────────────────────────────────────────────────

    async def _lock_key_for(
        self,
        request_id: uuid.UUID,
        organization_id: Optional[uuid.UUID],
    ) -> tuple[uuid.UUID, LeaveCategory]:
        """(employee, category) of a request; both are fixed at creation."""
        async with self.uow.read() as session:
            result = await session.execute(
                select(LeaveRequest.employee_id, LeaveRequest.category, Employee.organization_id)
                .join(Employee, LeaveRequest.employee_id == Employee.id)
                .where(LeaveRequest.id == request_id)
            )
            row = result.first()
        if row is None or (organization_id is not None and row.organization_id != organization_id):
            raise RequestNotFoundException(request_id)
        return row.employee_id, row.category

    async def change_status(
        self,
        request_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        new_status: Union[LeaveStatus, str],
        *,
        note: Optional[str] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> LeaveRequestOut:
        """Move a request to *new_status*, refunding or re-debiting as needed.

        Crossing into ``denied`` credits ``total_days``; leaving ``denied``
        debits it again and fails with ``InsufficientBalanceException`` when
        the balance can no longer cover it, leaving the request untouched.
        """
        new_status = self._coerce_status(new_status)
        note = self._validate_note(note)
        lock_key = await self._lock_key_for(request_id, organization_id)

        async with self.uow.begin(lock_key) as session:
            result = await session.execute(
                select(LeaveRequest)
                .where(LeaveRequest.id == request_id)
                .options(selectinload(LeaveRequest.employee))
                .with_for_update()
            )
            leave_req = result.scalars().first()
            if leave_req is None:
                raise RequestNotFoundException(request_id)

            account = await BalanceLedger.lock_account(session, leave_req.employee_id)
            old_status = leave_req.status
            delta = balance_delta(old_status, new_status, leave_req.total_days)

            new_balance: Optional[Decimal] = None
            if delta != 0:
                try:
                    new_balance = await BalanceLedger.adjust(
                        session,
                        account,
                        leave_req.category,
                        delta,
                        entry_type=entry_type_for(old_status, delta),
                        actor_id=reviewer_id,
                        leave_request_id=leave_req.id,
                        status_from=old_status,
                        status_to=new_status,
                        memo=note,
                    )
                except InsufficientBalanceException:
                    logger.warning(
                        "Status change refused: request=%s %s → %s needs %s %s",
                        request_id, old_status.value, new_status.value,
                        leave_req.total_days, leave_req.category.value,
                    )
                    raise

            now = datetime.now(timezone.utc)
            leave_req.status = new_status
            leave_req.reviewed_by = reviewer_id
            leave_req.reviewed_at = now
            leave_req.updated_at = now
            if note is not None:
                leave_req.note = note
            await session.flush()

            response = build_request_response(leave_req, account)

        logger.info(
            "Leave request %s reviewed by %s: %s → %s delta=%s balance_after=%s",
            request_id, reviewer_id, old_status.value, new_status.value, delta,
            new_balance if new_balance is not None else "unchanged",
        )
        return response


# ── FastAPI dependency ──────────────────────────────────────────────

@lru_cache
def get_leave_service() -> LeaveLedgerService:
    """Process-wide service bound to the application session factory."""
    return LeaveLedgerService(async_session_factory)
