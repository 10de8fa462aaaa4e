"""001 – Initial schema: workflow tables, enums, overlap exclusion, audit immutability.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+05:30
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "finance", "admin"]),
    (
        "leave_type",
        ["annual", "sick", "casual", "unpaid", "earned", "maternity", "paternity"],
    ),
    ("leave_status", ["pending", "pending_hr", "approved", "rejected"]),
    (
        "reimbursement_status",
        ["draft", "pending_manager", "pending_finance", "approved", "rejected"],
    ),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm"')
    # uuid equality inside a gist exclusion constraint
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            code        VARCHAR(20) UNIQUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code    VARCHAR(20)  NOT NULL UNIQUE,
            first_name       VARCHAR(100) NOT NULL,
            last_name        VARCHAR(100) NOT NULL,
            email            VARCHAR(255) NOT NULL UNIQUE,
            role             user_role NOT NULL DEFAULT 'employee',
            department_id    UUID REFERENCES departments(id),
            date_of_joining  DATE NOT NULL,
            is_active        BOOLEAN DEFAULT TRUE,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_employees_department ON employees(department_id)")

    # ── 3. employee_balances ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employee_balances (
            id                       UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id              UUID NOT NULL UNIQUE
                                         REFERENCES employees(id) ON DELETE CASCADE,
            sl                       NUMERIC(5,1) NOT NULL DEFAULT 12,
            cl                       NUMERIC(5,1) NOT NULL DEFAULT 12,
            el                       NUMERIC(5,1) NOT NULL DEFAULT 15,
            ml                       NUMERIC(5,1) NOT NULL DEFAULT 0,
            pl                       NUMERIC(5,1) NOT NULL DEFAULT 0,
            last_leave_date          DATE,
            last_accrual_period      VARCHAR(7),
            last_carry_forward_year  INTEGER,
            updated_at               TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 4. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name         VARCHAR(150) NOT NULL,
            date         DATE NOT NULL UNIQUE,
            description  TEXT,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL REFERENCES employees(id),
            leave_type      leave_type NOT NULL,
            start_date      DATE NOT NULL,
            end_date        DATE NOT NULL,
            total_days      INTEGER NOT NULL,
            reason          VARCHAR(500) NOT NULL,
            status          leave_status NOT NULL DEFAULT 'pending',
            reviewed_by     UUID REFERENCES employees(id),
            reviewed_at     TIMESTAMPTZ,
            review_comment  TEXT DEFAULT '',
            attachment_ref  VARCHAR(500),
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_date_order CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_range
            ON leave_requests(employee_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")
    # No two non-rejected requests of one employee may share a day
    op.execute("""
        ALTER TABLE leave_requests
            ADD CONSTRAINT ex_leave_requests_employee_active_range
            EXCLUDE USING gist (
                employee_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (status <> 'rejected')
    """)

    # ── 6. reimbursement_claims ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE reimbursement_claims (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            title             VARCHAR(500) NOT NULL,
            items             JSONB NOT NULL DEFAULT '[]',
            total_amount      NUMERIC(12,2) NOT NULL DEFAULT 0,
            status            reimbursement_status NOT NULL DEFAULT 'draft',
            manager_approval  JSONB,
            finance_approval  JSONB,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_reimbursement_claims_status ON reimbursement_claims(status)")
    op.execute("CREATE INDEX ix_reimbursement_claims_employee ON reimbursement_claims(employee_id)")

    # ── 7. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            entity_type   VARCHAR(50),
            entity_id     UUID,
            status        VARCHAR(30),
            is_read       BOOLEAN DEFAULT FALSE,
            read_at       TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX idx_notifications_recipient_unread
            ON notifications(recipient_id) WHERE is_read = FALSE
    """)

    # ── 8. audit_entries ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_entries (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES employees(id),
            action       VARCHAR(100) NOT NULL,
            target_type  VARCHAR(50) NOT NULL,
            target_id    UUID,
            details      TEXT NOT NULL DEFAULT '',
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_entries_actor_id ON audit_entries(actor_id)")
    op.execute("CREATE INDEX ix_audit_entries_target ON audit_entries(target_type, target_id)")
    op.execute("CREATE INDEX ix_audit_entries_created_at ON audit_entries(created_at)")
    op.execute("""
        CREATE INDEX idx_audit_entries_details_trgm
            ON audit_entries USING gin (details gin_trgm_ops)
    """)

    # Append-only: reject UPDATE and DELETE at the database as well
    op.execute("""
        CREATE OR REPLACE FUNCTION audit_entries_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_entries is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_audit_entries_immutable
            BEFORE UPDATE OR DELETE ON audit_entries
            FOR EACH ROW EXECUTE FUNCTION audit_entries_immutable()
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_audit_entries_immutable ON audit_entries")
    op.execute("DROP FUNCTION IF EXISTS audit_entries_immutable()")

    # Drop tables in reverse dependency order
    tables = [
        "audit_entries",
        "notifications",
        "reimbursement_claims",
        "leave_requests",
        "holidays",
        "employee_balances",
        "employees",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    # Drop extensions
    op.execute('DROP EXTENSION IF EXISTS "btree_gist"')
    op.execute('DROP EXTENSION IF EXISTS "pg_trgm"')
    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
