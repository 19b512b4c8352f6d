"""004: create bull_pen_orders and bull_pen_positions

Revision ID: 004
Revises: 003
Create Date: 2026-10-07
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE bull_pen_positions (
            id                  BIGSERIAL       PRIMARY KEY,
            bull_pen_id         BIGINT          NOT NULL REFERENCES bull_pens(id) ON DELETE CASCADE,
            user_id             VARCHAR(64)     NOT NULL,
            symbol              VARCHAR(16)     NOT NULL,
            qty                 NUMERIC(18, 6)  NOT NULL,
            avg_cost            NUMERIC(18, 6)  NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_bull_pen_positions_room_user_symbol
                UNIQUE (bull_pen_id, user_id, symbol),
            CONSTRAINT ck_bull_pen_positions_qty_gte_0      CHECK (qty >= 0),
            CONSTRAINT ck_bull_pen_positions_avg_cost_gte_0 CHECK (avg_cost >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_bull_pen_positions_updated_at
            BEFORE UPDATE ON bull_pen_positions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE bull_pen_orders (
            id                  BIGSERIAL       PRIMARY KEY,
            bull_pen_id         BIGINT          NOT NULL REFERENCES bull_pens(id) ON DELETE CASCADE,
            user_id             VARCHAR(64)     NOT NULL,
            symbol              VARCHAR(16)     NOT NULL,
            side                VARCHAR(8)      NOT NULL,
            type                VARCHAR(8)      NOT NULL,
            qty                 NUMERIC(18, 6)  NOT NULL,
            limit_price         NUMERIC(18, 6),
            status              VARCHAR(16)     NOT NULL DEFAULT 'new',
            rejection_reason    VARCHAR(32),
            filled_qty          NUMERIC(18, 6)  NOT NULL DEFAULT 0,
            avg_fill_price      NUMERIC(18, 6),
            placed_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            filled_at           TIMESTAMPTZ,
            CONSTRAINT ck_bull_pen_orders_qty_gt_0  CHECK (qty > 0),
            CONSTRAINT ck_bull_pen_orders_side      CHECK (side IN ('buy', 'sell')),
            CONSTRAINT ck_bull_pen_orders_type      CHECK (type IN ('market', 'limit')),
            CONSTRAINT ck_bull_pen_orders_status
                CHECK (status IN ('new', 'filled', 'rejected')),
            CONSTRAINT ck_bull_pen_orders_limit_price
                CHECK (type <> 'limit' OR limit_price > 0)
        );
    """)
    op.execute("""
        CREATE INDEX idx_bull_pen_orders_room_placed
            ON bull_pen_orders (bull_pen_id, placed_at DESC, id DESC);
    """)
    op.execute("CREATE INDEX idx_bull_pen_orders_user ON bull_pen_orders (user_id, placed_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bull_pen_orders CASCADE;")
    op.execute("DROP TABLE IF EXISTS bull_pen_positions CASCADE;")
