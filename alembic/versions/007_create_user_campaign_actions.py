"""007: create user_campaign_actions

Revision ID: 007
Revises: 006
Create Date: 2026-10-09
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE user_campaign_actions (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            campaign_code       VARCHAR(64)     NOT NULL,
            action              VARCHAR(64)     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE INDEX idx_user_campaign_actions_user_campaign
            ON user_campaign_actions (user_id, campaign_code);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_campaign_actions CASCADE;")
