"""SnapshotRepository: append-only leaderboard_snapshots.

A snapshot "set" is every row of one room sharing one snapshot_at.
"""

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_settlement.domain.models import LeaderboardSnapshot

_SNAPSHOT_COLUMNS = """
    id, bull_pen_id, user_id, rank, stars, score, portfolio_value, pnl_abs, pnl_pct,
    snapshot_at
"""

_INSERT_SNAPSHOT_SQL = text("""
    INSERT INTO leaderboard_snapshots
        (bull_pen_id, user_id, rank, stars, score, portfolio_value, pnl_abs, pnl_pct,
         snapshot_at)
    VALUES
        (:bull_pen_id, :user_id, :rank, :stars, :score, :portfolio_value, :pnl_abs, :pnl_pct,
         :snapshot_at)
""")

_GET_LATEST_SQL = text(f"""
    SELECT {_SNAPSHOT_COLUMNS}
    FROM leaderboard_snapshots
    WHERE bull_pen_id = :bull_pen_id
      AND snapshot_at = (
          SELECT MAX(snapshot_at) FROM leaderboard_snapshots WHERE bull_pen_id = :bull_pen_id
      )
    ORDER BY rank ASC
""")

_GET_HISTORY_SQL = text(f"""
    SELECT {_SNAPSHOT_COLUMNS}
    FROM leaderboard_snapshots
    WHERE bull_pen_id = :bull_pen_id
      AND snapshot_at IN (
          SELECT DISTINCT snapshot_at FROM leaderboard_snapshots
          WHERE bull_pen_id = :bull_pen_id
          ORDER BY snapshot_at DESC
          LIMIT :limit
      )
    ORDER BY snapshot_at DESC, rank ASC
""")

_COUNT_LATEST_SQL = text("""
    SELECT COUNT(*)
    FROM leaderboard_snapshots
    WHERE bull_pen_id = :bull_pen_id
      AND snapshot_at = (
          SELECT MAX(snapshot_at) FROM leaderboard_snapshots WHERE bull_pen_id = :bull_pen_id
      )
""")


def _row_to_snapshot(row: object) -> LeaderboardSnapshot:
    return LeaderboardSnapshot(
        id=row.id,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        rank=row.rank,  # type: ignore[attr-defined]
        stars=row.stars,  # type: ignore[attr-defined]
        score=float(row.score),  # type: ignore[attr-defined]
        portfolio_value=Decimal(row.portfolio_value),  # type: ignore[attr-defined]
        pnl_abs=Decimal(row.pnl_abs),  # type: ignore[attr-defined]
        pnl_pct=Decimal(row.pnl_pct),  # type: ignore[attr-defined]
        snapshot_at=row.snapshot_at,  # type: ignore[attr-defined]
    )


class SnapshotRepository:
    async def insert_snapshots(self, db: AsyncSession, rows: Sequence[dict[str, Any]]) -> None:
        if rows:
            await db.execute(_INSERT_SNAPSHOT_SQL, list(rows))

    async def get_latest(self, db: AsyncSession, bull_pen_id: int) -> list[LeaderboardSnapshot]:
        result = await db.execute(_GET_LATEST_SQL, {"bull_pen_id": bull_pen_id})
        return [_row_to_snapshot(r) for r in result.fetchall()]

    async def get_history(
        self, db: AsyncSession, bull_pen_id: int, limit: int
    ) -> list[LeaderboardSnapshot]:
        result = await db.execute(_GET_HISTORY_SQL, {"bull_pen_id": bull_pen_id, "limit": limit})
        return [_row_to_snapshot(r) for r in result.fetchall()]

    async def count_latest(self, db: AsyncSession, bull_pen_id: int) -> int:
        result = await db.execute(_COUNT_LATEST_SQL, {"bull_pen_id": bull_pen_id})
        return int(result.scalar_one())
