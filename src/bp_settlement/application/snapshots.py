"""Leaderboard snapshots: append-only ranked sets per room."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.datetime_utils import utc_now
from src.bp_common.errors import RoomNotFoundError
from src.bp_ranking.application.service import RankingService
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.infrastructure.persistence import RoomRepository
from src.bp_settlement.application.schemas import (
    SnapshotCreatedResponse,
    SnapshotHistoryResponse,
    SnapshotRow,
    SnapshotSet,
)
from src.bp_settlement.domain.repository import SnapshotRepositoryProtocol
from src.bp_settlement.infrastructure.snapshot_repository import SnapshotRepository

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


def snapshot_rows(
    bull_pen_id: int,
    entries: Sequence[RankingEntry],
    snapshot_at: datetime,
    extra_stars: Mapping[str, int] | None = None,
) -> list[dict[str, Any]]:
    """One insert row per ranked entry, all sharing snapshot_at."""
    extra = extra_stars or {}
    return [
        {
            "bull_pen_id": bull_pen_id,
            "user_id": e.user_id,
            "rank": e.rank,
            "stars": e.room_stars + extra.get(e.user_id, 0),
            "score": e.score,
            "portfolio_value": e.portfolio_value,
            "pnl_abs": e.pnl_abs,
            "pnl_pct": e.pnl_pct,
            "snapshot_at": snapshot_at,
        }
        for e in entries
    ]


class SnapshotService:
    def __init__(
        self,
        repo: SnapshotRepositoryProtocol | None = None,
        room_repo: RoomRepositoryProtocol | None = None,
        ranking: RankingService | None = None,
    ) -> None:
        self._repo: SnapshotRepositoryProtocol = repo or SnapshotRepository()
        self._rooms: RoomRepositoryProtocol = room_repo or RoomRepository()
        self._ranking = ranking or RankingService(room_repo=self._rooms)

    async def create_snapshot(self, db: AsyncSession, bull_pen_id: int) -> SnapshotCreatedResponse:
        """Rank the room as it stands now and append one snapshot set."""
        room = await self._rooms.get_room(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        entries = self._ranking.rank(await self._ranking.collect_metrics(db, room))
        snapshot_at = utc_now()
        try:
            await self._repo.insert_snapshots(db, snapshot_rows(bull_pen_id, entries, snapshot_at))
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Snapshot of room %d: %d rows", bull_pen_id, len(entries))
        return SnapshotCreatedResponse(
            bull_pen_id=bull_pen_id, snapshot_count=len(entries), snapshot_at=snapshot_at
        )

    async def get_latest_snapshot(self, db: AsyncSession, bull_pen_id: int) -> SnapshotSet:
        rows = await self._repo.get_latest(db, bull_pen_id)
        return SnapshotSet(
            snapshot_at=rows[0].snapshot_at if rows else None,
            entries=[SnapshotRow.from_domain(r) for r in rows],
        )

    async def get_snapshot_history(
        self, db: AsyncSession, bull_pen_id: int, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> SnapshotHistoryResponse:
        """Newest set first; rows come back ordered by (snapshot_at desc, rank asc)."""
        rows = await self._repo.get_history(db, bull_pen_id, limit)
        sets: list[SnapshotSet] = []
        for row in rows:
            if not sets or sets[-1].snapshot_at != row.snapshot_at:
                sets.append(SnapshotSet(snapshot_at=row.snapshot_at, entries=[]))
            sets[-1].entries.append(SnapshotRow.from_domain(row))
        return SnapshotHistoryResponse(bull_pen_id=bull_pen_id, snapshots=sets)
