"""001 – Initial schema: organizations, employees, leave accounts, requests, ledger.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm"')

    # ── 1. organizations ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE organizations (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(200) NOT NULL,
            domain      VARCHAR(255) UNIQUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            organization_id  UUID NOT NULL REFERENCES organizations(id),
            employee_code    VARCHAR(20) UNIQUE,
            first_name       VARCHAR(100),
            last_name        VARCHAR(100),
            preferred_name   VARCHAR(200),
            email            VARCHAR(255) NOT NULL UNIQUE,
            phone            VARCHAR(20),
            designation      VARCHAR(200),
            is_active        BOOLEAN DEFAULT TRUE,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_organization_id ON employees(organization_id)")
    op.execute("""
        CREATE INDEX ix_employees_name_trgm ON employees
            USING gin ((coalesce(preferred_name, '') || ' ' ||
                        coalesce(first_name, '') || ' ' ||
                        coalesce(last_name, '')) gin_trgm_ops)
    """)

    # ── 3. leave_accounts ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_accounts (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL UNIQUE REFERENCES employees(id),
            casual_balance    NUMERIC(7,2) NOT NULL DEFAULT 0,
            sick_balance      NUMERIC(7,2) NOT NULL DEFAULT 0,
            annual_balance    NUMERIC(7,2) NOT NULL DEFAULT 0,
            parental_balance  NUMERIC(7,2) NOT NULL DEFAULT 0,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_accounts_casual_non_negative   CHECK (casual_balance >= 0),
            CONSTRAINT ck_leave_accounts_sick_non_negative     CHECK (sick_balance >= 0),
            CONSTRAINT ck_leave_accounts_annual_non_negative   CHECK (annual_balance >= 0),
            CONSTRAINT ck_leave_accounts_parental_non_negative CHECK (parental_balance >= 0)
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            category         VARCHAR(20) NOT NULL,
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            total_days       NUMERIC(7,2) NOT NULL,
            status           VARCHAR(20) NOT NULL DEFAULT 'pending',
            reason           TEXT NOT NULL,
            note             TEXT,
            attachments      JSONB NOT NULL DEFAULT '[]',
            idempotency_key  VARCHAR(100),
            reviewed_by      UUID REFERENCES employees(id),
            reviewed_at      TIMESTAMPTZ,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_requests_date_order CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_requests_total_days_positive CHECK (total_days > 0),
            CONSTRAINT ck_leave_requests_category
                CHECK (category IN ('casual', 'sick', 'annual', 'parental')),
            CONSTRAINT ck_leave_requests_status
                CHECK (status IN ('pending', 'processing', 'approved', 'denied')),
            CONSTRAINT uq_leave_requests_idempotency UNIQUE (employee_id, idempotency_key)
        )
    """)
    op.execute("CREATE INDEX ix_leave_requests_employee_id ON leave_requests(employee_id)")
    op.execute("CREATE INDEX ix_leave_requests_status      ON leave_requests(status)")
    op.execute("CREATE INDEX ix_leave_requests_created_at  ON leave_requests(created_at)")

    # ── 5. leave_ledger_entries ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_ledger_entries (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            account_id        UUID NOT NULL REFERENCES leave_accounts(id),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            category          VARCHAR(20) NOT NULL,
            entry_type        VARCHAR(20) NOT NULL,
            delta             NUMERIC(7,2) NOT NULL,
            balance_after     NUMERIC(7,2) NOT NULL,
            leave_request_id  UUID REFERENCES leave_requests(id),
            status_from       VARCHAR(20),
            status_to         VARCHAR(20),
            actor_id          UUID REFERENCES employees(id),
            memo              TEXT,
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_ledger_entries_account
            ON leave_ledger_entries(account_id, category)
    """)
    op.execute("""
        CREATE INDEX ix_leave_ledger_entries_request
            ON leave_ledger_entries(leave_request_id)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "leave_ledger_entries",
        "leave_requests",
        "leave_accounts",
        "employees",
        "organizations",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
