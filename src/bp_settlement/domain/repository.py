"""Repository Protocols for bp_settlement."""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_settlement.domain.models import LeaderboardSnapshot, RakeConfig, StarEvent


class StarRepositoryProtocol(Protocol):
    async def insert_star_event(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        reason_code: str,
        stars: int,
        bull_pen_id: int | None,
        season_id: int | None,
        source: str,
        meta: dict[str, Any] | None,
    ) -> StarEvent | None: ...

    async def sum_stars(
        self,
        db: AsyncSession,
        user_id: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
    ) -> int: ...

    async def list_star_events(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        bull_pen_id: int | None,
        season_id: int | None,
        reason_code: str | None,
        limit: int,
        offset: int,
    ) -> list[StarEvent]: ...

    async def count_rooms_played(self, db: AsyncSession, user_id: str) -> int: ...

    async def recent_final_ranks(
        self, db: AsyncSession, user_id: str, exclude_bull_pen_id: int, limit: int
    ) -> list[int]: ...

    async def season_standing(
        self, db: AsyncSession, user_id: str, season_id: int
    ) -> tuple[int | None, int]: ...

    async def count_active_days(self, db: AsyncSession, user_id: str, days: int) -> int: ...

    async def has_campaign_action(
        self, db: AsyncSession, user_id: str, campaign: str, action: str | None
    ) -> bool: ...


class SnapshotRepositoryProtocol(Protocol):
    async def insert_snapshots(
        self, db: AsyncSession, rows: Sequence[dict[str, Any]]
    ) -> None: ...

    async def get_latest(self, db: AsyncSession, bull_pen_id: int) -> list[LeaderboardSnapshot]: ...

    async def get_history(
        self, db: AsyncSession, bull_pen_id: int, limit: int
    ) -> list[LeaderboardSnapshot]: ...

    async def count_latest(self, db: AsyncSession, bull_pen_id: int) -> int: ...


class SettlementRepositoryProtocol(Protocol):
    async def get_active_rake_config(self, db: AsyncSession) -> RakeConfig | None: ...

    async def insert_rake_collection(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        rake_config_id: int,
        amount: Decimal,
        pool_size: Decimal,
    ) -> None: ...

    async def mark_settled(
        self, db: AsyncSession, bull_pen_id: int, settled_at: datetime
    ) -> None: ...
