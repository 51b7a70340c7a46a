"""001 – Initial schema: users, leave catalog, balances, requests, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 09:30:00.000000+00:00
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
    ("user_role", ["employee", "admin"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
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

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            username    VARCHAR(100) NOT NULL UNIQUE,
            email       VARCHAR(255),
            role        user_role NOT NULL DEFAULT 'employee',
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name              VARCHAR(100) NOT NULL UNIQUE,
            description       TEXT,
            default_days      INTEGER NOT NULL DEFAULT 0,
            requires_approval BOOLEAN NOT NULL DEFAULT TRUE,
            color             VARCHAR(20) NOT NULL DEFAULT '#4f46e5',
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_type_default_days CHECK (default_days >= 0)
        )
    """)

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id        UUID NOT NULL REFERENCES users(id),
            leave_type_id  UUID NOT NULL REFERENCES leave_types(id),
            year           INTEGER NOT NULL,
            total_days     INTEGER NOT NULL DEFAULT 0,
            used_days      INTEGER NOT NULL DEFAULT 0,
            pending_days   INTEGER NOT NULL DEFAULT 0,
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (user_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_used CHECK (used_days >= 0),
            CONSTRAINT ck_leave_balance_pending CHECK (pending_days >= 0),
            CONSTRAINT ck_leave_balance_within_total
                CHECK (used_days + pending_days <= total_days)
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           UUID NOT NULL REFERENCES users(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            total_days        INTEGER NOT NULL,
            reason            TEXT,
            status            leave_status NOT NULL DEFAULT 'pending',
            approved_by       UUID REFERENCES users(id),
            approved_at       TIMESTAMPTZ,
            rejection_reason  TEXT,
            cancelled_at      TIMESTAMPTZ,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (start_date <= end_date),
            CONSTRAINT ck_leave_request_days CHECK (total_days >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX idx_leave_req_user_dates
            ON leave_requests(user_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX idx_leave_req_status ON leave_requests(status)")

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES users(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index("ix_audit_trail_actor_id", "audit_trail", ["actor_id"])
    op.create_index("ix_audit_trail_entity", "audit_trail", ["entity_type", "entity_id"])
    op.create_index("ix_audit_trail_created_at", "audit_trail", [sa.text("created_at")])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
