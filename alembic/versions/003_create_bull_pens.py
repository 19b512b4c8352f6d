"""003: create bull_pens and bull_pen_memberships

Revision ID: 003
Revises: 002
Create Date: 2026-10-06
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE bull_pens (
            id                  BIGSERIAL       PRIMARY KEY,
            name                VARCHAR(128)    NOT NULL,
            description         TEXT,
            host_user_id        VARCHAR(64)     NOT NULL,
            state               VARCHAR(16)     NOT NULL DEFAULT 'draft',
            starting_cash       NUMERIC(18, 2)  NOT NULL,
            duration_sec        INTEGER         NOT NULL,
            start_time          TIMESTAMPTZ,
            max_players         INTEGER         NOT NULL DEFAULT 10,
            allow_fractional    BOOLEAN         NOT NULL DEFAULT FALSE,
            approval_required   BOOLEAN         NOT NULL DEFAULT FALSE,
            season_id           BIGINT,
            cancelled_at        TIMESTAMPTZ,
            settled_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_bull_pens_starting_cash_gt_0  CHECK (starting_cash > 0),
            CONSTRAINT ck_bull_pens_duration_gt_0       CHECK (duration_sec > 0),
            CONSTRAINT ck_bull_pens_max_players_gt_0    CHECK (max_players > 0),
            CONSTRAINT ck_bull_pens_state
                CHECK (state IN ('draft', 'scheduled', 'active', 'completed', 'archived'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_bull_pens_updated_at
            BEFORE UPDATE ON bull_pens
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_bull_pens_host ON bull_pens (host_user_id);")
    op.execute("CREATE INDEX idx_bull_pens_season ON bull_pens (season_id) WHERE season_id IS NOT NULL;")
    op.execute("COMMENT ON TABLE bull_pens IS 'Trading rooms; starting_cash is the buy-in per player';")

    op.execute("""
        CREATE TABLE bull_pen_memberships (
            id                  BIGSERIAL       PRIMARY KEY,
            bull_pen_id         BIGINT          NOT NULL REFERENCES bull_pens(id) ON DELETE CASCADE,
            user_id             VARCHAR(64)     NOT NULL,
            role                VARCHAR(16)     NOT NULL DEFAULT 'player',
            status              VARCHAR(16)     NOT NULL DEFAULT 'active',
            cash                NUMERIC(18, 2)  NOT NULL DEFAULT 0,
            joined_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_bull_pen_memberships_room_user UNIQUE (bull_pen_id, user_id),
            CONSTRAINT ck_bull_pen_memberships_cash_gte_0 CHECK (cash >= 0),
            CONSTRAINT ck_bull_pen_memberships_role CHECK (role IN ('host', 'player')),
            CONSTRAINT ck_bull_pen_memberships_status
                CHECK (status IN ('pending', 'active', 'kicked', 'left'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_bull_pen_memberships_updated_at
            BEFORE UPDATE ON bull_pen_memberships
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_bull_pen_memberships_user ON bull_pen_memberships (user_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bull_pen_memberships CASCADE;")
    op.execute("DROP TABLE IF EXISTS bull_pens CASCADE;")
