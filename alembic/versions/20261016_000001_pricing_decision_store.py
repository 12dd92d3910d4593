"""Pricing decision store.

Creates pc_decisions, pc_scenarios and pc_outcomes. Version histories live
as JSONB arrays on the decision row; nothing is hard-deleted.

Revision ID: pc_decision_store_001
Revises:
Create Date: 2026-10-16
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "pc_decision_store_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ──────────────────────────────────────────────────────────────────────
    # Decisions
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS pc_decisions (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        owner_id            VARCHAR(64) NOT NULL,
        company_name        VARCHAR(255) NOT NULL DEFAULT '',
        website_url         VARCHAR(500) NOT NULL DEFAULT '',
        status              VARCHAR(20) NOT NULL DEFAULT 'pending',
        context_version     INTEGER NOT NULL CHECK (context_version >= 1),
        context_versions    JSONB NOT NULL,
        current_context     JSONB NOT NULL,
        verdict_version     INTEGER NOT NULL CHECK (verdict_version >= 1),
        verdict_versions    JSONB NOT NULL,
        current_verdict     JSONB NOT NULL,
        status_events       JSONB NOT NULL DEFAULT '[]',
        expected_impact     JSONB NOT NULL DEFAULT '{}',
        model_meta          JSONB NOT NULL DEFAULT '{}',
        pricing_input       JSONB,
        simulation          JSONB,
        revision            INTEGER NOT NULL DEFAULT 1,
        is_deleted          BOOLEAN NOT NULL DEFAULT FALSE,
        deleted_at          TIMESTAMPTZ,
        created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_pc_decisions_owner_created ON pc_decisions (owner_id, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_pc_decisions_status ON pc_decisions (status)")

    # ──────────────────────────────────────────────────────────────────────
    # Scenarios
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS pc_scenarios (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        decision_id         UUID NOT NULL REFERENCES pc_decisions(id),
        generation_id       UUID NOT NULL,
        name                VARCHAR(100) NOT NULL,
        level               VARCHAR(20) NOT NULL,
        description         TEXT NOT NULL DEFAULT '',
        narrative           JSONB NOT NULL DEFAULT '{}',
        projection          JSONB NOT NULL,
        risk_level          VARCHAR(10) NOT NULL,
        chosen              BOOLEAN NOT NULL DEFAULT FALSE,
        is_deleted          BOOLEAN NOT NULL DEFAULT FALSE,
        deleted_at          TIMESTAMPTZ,
        created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_pc_scenarios_decision ON pc_scenarios (decision_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_pc_scenarios_generation ON pc_scenarios (generation_id)")
    op.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS uq_pc_scenarios_one_chosen
        ON pc_scenarios (decision_id)
        WHERE chosen AND NOT is_deleted
    """)

    # ──────────────────────────────────────────────────────────────────────
    # Outcomes
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS pc_outcomes (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        decision_id         UUID NOT NULL REFERENCES pc_decisions(id),
        scenario_id         UUID REFERENCES pc_scenarios(id),
        decision_taken      BOOLEAN,
        date_implemented    DATE,
        status              VARCHAR(20) NOT NULL DEFAULT 'pending',
        horizon_days        INTEGER NOT NULL DEFAULT 90,
        kpis                JSONB NOT NULL DEFAULT '{}',
        summary             TEXT,
        notes               TEXT,
        history             JSONB NOT NULL DEFAULT '[]',
        revision            INTEGER NOT NULL DEFAULT 1,
        is_deleted          BOOLEAN NOT NULL DEFAULT FALSE,
        deleted_at          TIMESTAMPTZ,
        created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT uq_pc_outcomes_decision UNIQUE (decision_id)
    )
    """)


def downgrade() -> None:
    for tbl in ("pc_outcomes", "pc_scenarios", "pc_decisions"):
        op.execute(f"DROP TABLE IF EXISTS {tbl}")
