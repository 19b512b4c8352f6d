"""006: create rake_configs and rake_collections

Revision ID: 006
Revises: 005
Create Date: 2026-10-08
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE rake_configs (
            id                  BIGSERIAL       PRIMARY KEY,
            fee_type            VARCHAR(16)     NOT NULL,
            fee_value           NUMERIC(18, 2)  NOT NULL,
            min_pool            NUMERIC(18, 2),
            max_pool            NUMERIC(18, 2),
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_rake_configs_fee_value_gte_0 CHECK (fee_value >= 0),
            CONSTRAINT ck_rake_configs_fee_type
                CHECK (fee_type IN ('percentage', 'fixed', 'tiered'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_rake_configs_updated_at
            BEFORE UPDATE ON rake_configs
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE rake_collections (
            id                  BIGSERIAL       PRIMARY KEY,
            bull_pen_id         BIGINT          NOT NULL REFERENCES bull_pens(id) ON DELETE CASCADE,
            rake_config_id      BIGINT          NOT NULL REFERENCES rake_configs(id),
            amount              NUMERIC(18, 2)  NOT NULL,
            pool_size           NUMERIC(18, 2)  NOT NULL,
            collected_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_rake_collections_room       UNIQUE (bull_pen_id),
            CONSTRAINT ck_rake_collections_amount_gte_0 CHECK (amount >= 0)
        );
    """)
    op.execute("COMMENT ON TABLE rake_collections IS 'Platform fee taken from each settled prize pool';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS rake_collections CASCADE;")
    op.execute("DROP TABLE IF EXISTS rake_configs CASCADE;")
