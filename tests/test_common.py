"""Tests for common utilities — filters, sorting, search, problem documents.

Exercises apply_filters, apply_sorting, apply_search and the RFC 7807
exception handlers on hr_leave/common/*.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.exceptions import (
    AccountNotFoundException,
    ConflictError,
    InsufficientBalanceException,
    register_exception_handlers,
)
from hr_leave.common.filters import _get_column, apply_filters, apply_search, apply_sorting
from hr_leave.core_hr.models import Employee, Organization
from hr_leave.leave.models import LeaveAccount
from tests.conftest import _make_employee, _make_organization


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed_org(db: AsyncSession) -> Organization:
    org = Organization(**_make_organization())
    db.add(org)
    await db.flush()
    return org


async def _seed_employee(db: AsyncSession, org_id, **kwargs) -> Employee:
    emp = Employee(**_make_employee(organization_id=org_id, **kwargs))
    db.add(emp)
    await db.flush()
    return emp


_EMPLOYEE_SORTS = {
    "first_name": Employee.first_name,
    "email": Employee.email,
}


# ═════════════════════════════════════════════════════════════════════
# FILTER TESTS
# ═════════════════════════════════════════════════════════════════════


class TestApplyFilters:
    """Tests for apply_filters utility."""

    async def test_filter_by_equality(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id, first_name="Alpha")
        await _seed_employee(db, org.id, first_name="Beta")

        query = apply_filters(select(Employee), Employee, {"first_name": "Alpha"})
        result = (await db.execute(query)).scalars().all()
        assert [e.first_name for e in result] == ["Alpha"]

    async def test_filter_none_values_skipped(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id)
        await _seed_employee(db, org.id)

        query = apply_filters(select(Employee), Employee, {"first_name": None})
        result = (await db.execute(query)).scalars().all()
        assert len(result) == 2

    async def test_filter_by_ilike(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id, first_name="Priyanka")
        await _seed_employee(db, org.id, first_name="Rahul")

        query = apply_filters(select(Employee), Employee, {"first_name__ilike": "PRIY"})
        result = (await db.execute(query)).scalars().all()
        assert [e.first_name for e in result] == ["Priyanka"]

    async def test_filter_by_range_and_before(self, db: AsyncSession):
        org = await _seed_org(db)
        for amount in ("1", "5", "9"):
            emp = await _seed_employee(db, org.id)
            db.add(LeaveAccount(employee_id=emp.id, casual_balance=Decimal(amount)))
        await db.flush()

        inclusive = apply_filters(
            select(LeaveAccount), LeaveAccount,
            {"casual_balance__from": Decimal("1"), "casual_balance__to": Decimal("5")},
        )
        exclusive = apply_filters(
            select(LeaveAccount), LeaveAccount, {"casual_balance__before": Decimal("5")},
        )
        assert len((await db.execute(inclusive)).scalars().all()) == 2
        assert len((await db.execute(exclusive)).scalars().all()) == 1

    async def test_filter_by_in(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id, first_name="A")
        await _seed_employee(db, org.id, first_name="B")
        await _seed_employee(db, org.id, first_name="C")

        query = apply_filters(select(Employee), Employee, {"first_name__in": ["A", "C"]})
        result = (await db.execute(query)).scalars().all()
        assert sorted(e.first_name for e in result) == ["A", "C"]

    async def test_filter_nonexistent_column_ignored(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id)

        query = apply_filters(select(Employee), Employee, {"no_such_column": "x"})
        result = (await db.execute(query)).scalars().all()
        assert len(result) == 1


# ═════════════════════════════════════════════════════════════════════
# SORTING TESTS
# ═════════════════════════════════════════════════════════════════════


class TestApplySorting:
    """Tests for apply_sorting utility."""

    async def _seed_names(self, db: AsyncSession) -> None:
        org = await _seed_org(db)
        for name in ("Charlie", "Alpha", "Bravo"):
            await _seed_employee(db, org.id, first_name=name)

    async def test_sort_ascending(self, db: AsyncSession):
        await self._seed_names(db)
        query = apply_sorting(select(Employee), _EMPLOYEE_SORTS, "first_name")
        result = (await db.execute(query)).scalars().all()
        assert [e.first_name for e in result] == ["Alpha", "Bravo", "Charlie"]

    async def test_sort_descending(self, db: AsyncSession):
        await self._seed_names(db)
        query = apply_sorting(
            select(Employee), _EMPLOYEE_SORTS, "-first_name", tiebreaker=Employee.id,
        )
        result = (await db.execute(query)).scalars().all()
        assert [e.first_name for e in result] == ["Charlie", "Bravo", "Alpha"]

    def test_sort_none_no_op(self):
        query = select(Employee)
        assert apply_sorting(query, _EMPLOYEE_SORTS, None) is query

    async def test_sort_unknown_column_falls_back_to_default(self, db: AsyncSession):
        await self._seed_names(db)
        query = apply_sorting(
            select(Employee), _EMPLOYEE_SORTS, "salary; DROP TABLE employees", default="-first_name",
        )
        result = (await db.execute(query)).scalars().all()
        assert [e.first_name for e in result] == ["Charlie", "Bravo", "Alpha"]

    def test_sort_unknown_column_without_default_no_op(self):
        query = select(Employee)
        assert apply_sorting(query, _EMPLOYEE_SORTS, "salary") is query


# ═════════════════════════════════════════════════════════════════════
# SEARCH TESTS
# ═════════════════════════════════════════════════════════════════════


class TestApplySearch:

    async def test_search_across_columns(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_employee(db, org.id, first_name="Meera", last_name="Iyer")
        await _seed_employee(db, org.id, first_name="Kabir", last_name="Meeran")
        await _seed_employee(db, org.id, first_name="Arjun", last_name="Das")

        query = apply_search(select(Employee), "meer", [Employee.first_name, Employee.last_name])
        result = (await db.execute(query)).scalars().all()
        assert sorted(e.first_name for e in result) == ["Kabir", "Meera"]

    def test_blank_search_no_op(self):
        query = select(Employee)
        assert apply_search(query, "   ", [Employee.first_name]) is query
        assert apply_search(query, None, [Employee.first_name]) is query


class TestGetColumn:

    def test_get_existing_column(self):
        assert _get_column(Employee, "email") is Employee.email

    def test_get_nonexistent_column(self):
        assert _get_column(Employee, "nope") is None


# ═════════════════════════════════════════════════════════════════════
# PROBLEM DOCUMENTS
# ═════════════════════════════════════════════════════════════════════


def _error_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def _conflict():
        raise ConflictError("employee_id", "abc")

    @app.get("/missing")
    async def _missing():
        raise AccountNotFoundException(uuid.UUID(int=7))

    @app.get("/insufficient")
    async def _insufficient():
        raise InsufficientBalanceException("Casual Leave", Decimal("1.00"), Decimal("3.00"))

    @app.get("/store-down")
    async def _store_down():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    return app


class TestProblemDocuments:

    @pytest.fixture
    async def error_client(self):
        async with AsyncClient(
            transport=ASGITransport(app=_error_app()), base_url="http://test",
        ) as ac:
            yield ac

    async def test_conflict(self, error_client):
        resp = await error_client.get("/conflict")
        body = resp.json()
        assert resp.status_code == 409
        assert body["status"] == 409
        assert body["instance"] == "/conflict"

    async def test_account_not_found(self, error_client):
        resp = await error_client.get("/missing")
        assert resp.status_code == 404
        assert resp.json()["type"] == "https://hr.example.com/errors/account-not-found"

    async def test_insufficient_balance_errors(self, error_client):
        resp = await error_client.get("/insufficient")
        body = resp.json()
        assert resp.status_code == 422
        assert body["errors"]["balance"] == [
            "Insufficient Casual Leave balance. Available: 1.00, Requested: 3.00."
        ]

    async def test_store_unavailable_is_503(self, error_client):
        resp = await error_client.get("/store-down")
        assert resp.status_code == 503
        assert resp.headers["content-type"].startswith("application/problem+json")
