"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Seed helpers commit through their own sessions: the ledger service opens
its own units of work and only sees committed rows.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_leave.common.constants import UserRole
from hr_leave.config import settings
from hr_leave.database import Base, get_db
from hr_leave.leave.service import LeaveLedgerService, get_leave_service
from hr_leave.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hr_leave.core_hr.models  # noqa: F401
import hr_leave.leave.models  # noqa: F401

from hr_leave.core_hr.models import Employee, Organization

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hr_leave.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ── Ledger service ──────────────────────────────────────────────────

@pytest.fixture
def service() -> LeaveLedgerService:
    """A ledger service with its own lock registry, bound to the test DB."""
    return LeaveLedgerService(TestSessionFactory)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(service):
    """Create a fresh app instance with DB and service dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_leave_service] = lambda: service
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_organization(*, name: str = "Creativefuel", domain: Optional[str] = None) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        domain=domain or f"{uuid.uuid4().hex[:8]}.example.com",
        created_at=datetime.now(timezone.utc),
    )


def _make_employee(
    *,
    organization_id: uuid.UUID,
    email: Optional[str] = None,
    first_name: Optional[str] = "Test",
    last_name: Optional[str] = "User",
    preferred_name: Optional[str] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        organization_id=organization_id,
        employee_code=f"CF-{uuid.uuid4().hex[:6].upper()}",
        first_name=first_name,
        last_name=last_name,
        preferred_name=preferred_name,
        email=email or f"user.{uuid.uuid4().hex[:8]}@creativefuel.io",
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_organization(**kwargs) -> Organization:
    """Insert and commit an organization."""
    org = Organization(**_make_organization(**kwargs))
    async with TestSessionFactory() as session:
        session.add(org)
        await session.commit()
    return org


async def seed_employee(organization_id: uuid.UUID, **kwargs) -> Employee:
    """Insert and commit an employee in *organization_id*."""
    emp = Employee(**_make_employee(organization_id=organization_id, **kwargs))
    async with TestSessionFactory() as session:
        session.add(emp)
        await session.commit()
    return emp


async def seed_employee_with_account(
    service: LeaveLedgerService,
    organization_id: uuid.UUID,
    *,
    casual: str = "0",
    sick: str = "0",
    annual: str = "0",
    parental: str = "0",
    **kwargs,
) -> Employee:
    """Employee plus an opened leave account with the given balances."""
    emp = await seed_employee(organization_id, **kwargs)
    await service.open_account(
        emp.id,
        casual=Decimal(casual),
        sick=Decimal(sick),
        annual=Decimal(annual),
        parental=Decimal(parental),
    )
    return emp


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    organization_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "org": str(organization_id),
        "role": role.value,
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(
    employee: Employee,
    role: UserRole = UserRole.employee,
) -> dict[str, str]:
    """Bearer auth headers for *employee*."""
    token = create_access_token(employee.id, employee.organization_id, role)
    return {"Authorization": f"Bearer {token}"}
