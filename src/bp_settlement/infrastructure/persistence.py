"""SettlementRepository: rake configuration/collection and the settled_at stamp."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_settlement.domain.models import RakeConfig

_GET_ACTIVE_RAKE_CONFIG_SQL = text("""
    SELECT id, fee_type, fee_value, min_pool, max_pool, is_active
    FROM rake_configs
    WHERE is_active = TRUE
    ORDER BY id DESC
    LIMIT 1
""")

_INSERT_RAKE_COLLECTION_SQL = text("""
    INSERT INTO rake_collections (bull_pen_id, rake_config_id, amount, pool_size)
    VALUES (:bull_pen_id, :rake_config_id, :amount, :pool_size)
""")

_MARK_SETTLED_SQL = text("""
    UPDATE bull_pens SET settled_at = :settled_at, updated_at = NOW() WHERE id = :id
""")


def _optional_decimal(value: object) -> Decimal | None:
    return Decimal(value) if value is not None else None  # type: ignore[arg-type]


def _row_to_rake_config(row: object) -> RakeConfig:
    return RakeConfig(
        id=row.id,  # type: ignore[attr-defined]
        fee_type=row.fee_type,  # type: ignore[attr-defined]
        fee_value=Decimal(row.fee_value),  # type: ignore[attr-defined]
        min_pool=_optional_decimal(row.min_pool),  # type: ignore[attr-defined]
        max_pool=_optional_decimal(row.max_pool),  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
    )


class SettlementRepository:
    async def get_active_rake_config(self, db: AsyncSession) -> RakeConfig | None:
        row = (await db.execute(_GET_ACTIVE_RAKE_CONFIG_SQL)).fetchone()
        return _row_to_rake_config(row) if row else None

    async def insert_rake_collection(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        rake_config_id: int,
        amount: Decimal,
        pool_size: Decimal,
    ) -> None:
        await db.execute(
            _INSERT_RAKE_COLLECTION_SQL,
            {
                "bull_pen_id": bull_pen_id,
                "rake_config_id": rake_config_id,
                "amount": amount,
                "pool_size": pool_size,
            },
        )

    async def mark_settled(self, db: AsyncSession, bull_pen_id: int, settled_at: datetime) -> None:
        await db.execute(_MARK_SETTLED_SQL, {"id": bull_pen_id, "settled_at": settled_at})
