"""005: create leaderboard_snapshots and star_events

Revision ID: 005
Revises: 004
Create Date: 2026-10-08
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE leaderboard_snapshots (
            id                  BIGSERIAL       PRIMARY KEY,
            bull_pen_id         BIGINT          NOT NULL REFERENCES bull_pens(id) ON DELETE CASCADE,
            user_id             VARCHAR(64)     NOT NULL,
            rank                INTEGER         NOT NULL,
            stars               INTEGER         NOT NULL DEFAULT 0,
            score               DOUBLE PRECISION NOT NULL,
            portfolio_value     NUMERIC(18, 2)  NOT NULL,
            pnl_abs             NUMERIC(18, 2)  NOT NULL,
            pnl_pct             NUMERIC(12, 4)  NOT NULL,
            snapshot_at         TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leaderboard_snapshots_rank_gt_0 CHECK (rank > 0),
            CONSTRAINT uq_leaderboard_snapshots_room_user_at
                UNIQUE (bull_pen_id, user_id, snapshot_at)
        );
    """)
    op.execute("""
        CREATE INDEX idx_leaderboard_snapshots_room_at
            ON leaderboard_snapshots (bull_pen_id, snapshot_at DESC);
    """)
    op.execute("CREATE INDEX idx_leaderboard_snapshots_user ON leaderboard_snapshots (user_id);")

    op.execute("""
        CREATE TABLE star_events (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            reason_code         VARCHAR(64)     NOT NULL,
            stars               INTEGER         NOT NULL,
            bull_pen_id         BIGINT          REFERENCES bull_pens(id) ON DELETE SET NULL,
            season_id           BIGINT,
            source              VARCHAR(32)     NOT NULL DEFAULT 'achievement',
            meta                JSONB,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_star_events_stars_gt_0 CHECK (stars > 0)
        );
    """)
    # One award per (user, reason, room, season); NULL scopes compare as 0
    op.execute("""
        CREATE UNIQUE INDEX uq_star_events_award
            ON star_events (user_id, reason_code, (COALESCE(bull_pen_id, 0)), (COALESCE(season_id, 0)));
    """)
    op.execute("CREATE INDEX idx_star_events_room ON star_events (bull_pen_id);")
    op.execute("COMMENT ON TABLE star_events IS 'Append-only achievement awards';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS star_events CASCADE;")
    op.execute("DROP TABLE IF EXISTS leaderboard_snapshots CASCADE;")
