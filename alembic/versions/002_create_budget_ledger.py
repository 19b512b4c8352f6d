"""002: create user_budgets and budget_logs

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE user_budgets (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            available_balance   NUMERIC(18, 2)  NOT NULL DEFAULT 0,
            locked_balance      NUMERIC(18, 2)  NOT NULL DEFAULT 0,
            currency            VARCHAR(8)      NOT NULL DEFAULT 'VUSD',
            status              VARCHAR(16)     NOT NULL DEFAULT 'active',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_budgets_user_id          UNIQUE (user_id),
            CONSTRAINT ck_user_budgets_available_gte_0  CHECK (available_balance >= 0),
            CONSTRAINT ck_user_budgets_locked_gte_0     CHECK (locked_balance >= 0),
            CONSTRAINT ck_user_budgets_status
                CHECK (status IN ('active', 'frozen', 'closed'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_user_budgets_updated_at
            BEFORE UPDATE ON user_budgets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE user_budgets IS 'Virtual budget per user, amounts in VUSD';")

    op.execute("""
        CREATE TABLE budget_logs (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            direction           VARCHAR(8)      NOT NULL,
            operation_type      VARCHAR(48)     NOT NULL,
            amount              NUMERIC(18, 2)  NOT NULL,
            balance_before      NUMERIC(18, 2)  NOT NULL,
            balance_after       NUMERIC(18, 2)  NOT NULL,
            currency            VARCHAR(8)      NOT NULL DEFAULT 'VUSD',
            idempotency_key     VARCHAR(255)    NOT NULL,
            correlation_id      VARCHAR(128),
            bull_pen_id         BIGINT,
            season_id           BIGINT,
            moved_from          VARCHAR(16),
            moved_to            VARCHAR(16),
            meta                JSONB,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_budget_logs_idempotency_key   UNIQUE (idempotency_key),
            CONSTRAINT ck_budget_logs_amount_gt_0       CHECK (amount > 0),
            CONSTRAINT ck_budget_logs_direction
                CHECK (direction IN ('IN', 'OUT', 'LOCK', 'UNLOCK'))
        );
    """)
    op.execute("CREATE INDEX idx_budget_logs_user_id ON budget_logs (user_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_budget_logs_correlation_id ON budget_logs (correlation_id)
            WHERE correlation_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE budget_logs IS 'Append-only budget ledger, one row per movement';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS budget_logs CASCADE;")
    op.execute("DROP TABLE IF EXISTS user_budgets CASCADE;")
