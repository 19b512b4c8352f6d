"""AchievementService: star awards and settlement-time rule evaluation.

award_stars never raises for a repeated award: the (user, reason_code,
bull_pen_id, season_id) tuple is unique and a duplicate insert is a no-op
returning None. Callers own the transaction.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.enums import StarScope
from src.bp_common.errors import InvalidStarQueryError
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_room.domain.models import BullPen
from src.bp_settlement.domain.models import StarEvent
from src.bp_settlement.domain.repository import StarRepositoryProtocol
from src.bp_settlement.domain.rules import (
    STRAIGHT_WINS_REQUIRED,
    AchievementAward,
    AchievementContext,
    evaluate_achievements,
)
from src.bp_settlement.infrastructure.star_repository import StarRepository

logger = logging.getLogger(__name__)

ACHIEVEMENT_SOURCE = "achievement"


class AchievementService:
    def __init__(self, repo: StarRepositoryProtocol | None = None) -> None:
        self._repo: StarRepositoryProtocol = repo or StarRepository()

    async def award_stars(
        self,
        db: AsyncSession,
        user_id: str,
        reason_code: str,
        stars: int,
        *,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        source: str = ACHIEVEMENT_SOURCE,
        meta: dict[str, Any] | None = None,
    ) -> StarEvent | None:
        """Insert a star award; None means it was already awarded."""
        if stars <= 0:
            raise ValueError(f"stars must be > 0, got {stars}")
        event = await self._repo.insert_star_event(
            db,
            user_id=user_id,
            reason_code=reason_code,
            stars=stars,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            source=source,
            meta=meta,
        )
        if event is not None:
            logger.info(
                "Awarded %d stars to %s for %s (room=%s season=%s)",
                stars, user_id, reason_code, bull_pen_id, season_id,
            )
        return event

    async def get_aggregated_stars(
        self,
        db: AsyncSession,
        user_id: str,
        scope: str = StarScope.LIFETIME.value,
        *,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
    ) -> int:
        if scope == StarScope.LIFETIME.value:
            return await self._repo.sum_stars(db, user_id)
        if scope == StarScope.ROOM.value:
            if bull_pen_id is None:
                raise InvalidStarQueryError("room scope requires bull_pen_id")
            return await self._repo.sum_stars(db, user_id, bull_pen_id=bull_pen_id)
        if scope == StarScope.SEASON.value:
            if season_id is None:
                raise InvalidStarQueryError("season scope requires season_id")
            return await self._repo.sum_stars(db, user_id, season_id=season_id)
        raise InvalidStarQueryError(f"unknown scope {scope}")

    async def list_star_events(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        reason_code: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[StarEvent]:
        return await self._repo.list_star_events(
            db,
            user_id,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            reason_code=reason_code,
            limit=limit,
            offset=offset,
        )

    async def build_context(
        self, db: AsyncSession, room: BullPen, entry: RankingEntry
    ) -> AchievementContext:
        user_id = entry.user_id
        season_rank, season_size = None, 0
        if room.season_id is not None:
            season_rank, season_size = await self._repo.season_standing(
                db, user_id, room.season_id
            )
        campaign_done = False
        if settings.CAMPAIGN_CODE:
            campaign_done = await self._repo.has_campaign_action(
                db, user_id, settings.CAMPAIGN_CODE, settings.CAMPAIGN_ACTION
            )
        return AchievementContext(
            user_id=user_id,
            bull_pen_id=room.id,
            rank=entry.rank,
            rooms_played=await self._repo.count_rooms_played(db, user_id),
            previous_ranks=tuple(
                await self._repo.recent_final_ranks(
                    db, user_id, room.id, STRAIGHT_WINS_REQUIRED - 1
                )
            ),
            season_id=room.season_id,
            season_rank=season_rank,
            season_size=season_size,
            season_percentile=settings.SEASON_TOP_PERCENTILE,
            active_days=await self._repo.count_active_days(
                db, user_id, settings.ACTIVITY_STREAK_DAYS
            ),
            streak_days=settings.ACTIVITY_STREAK_DAYS,
            campaign=settings.CAMPAIGN_CODE,
            campaign_done=campaign_done,
        )

    async def evaluate_and_award(
        self, db: AsyncSession, room: BullPen, entry: RankingEntry
    ) -> list[StarEvent]:
        """Evaluate every rule for one settled member; returns only new awards."""
        ctx = await self.build_context(db, room, entry)
        awarded = []
        for award in evaluate_achievements(ctx):
            event = await self._award(db, room, entry.user_id, award)
            if event is not None:
                awarded.append(event)
        return awarded

    async def _award(
        self, db: AsyncSession, room: BullPen, user_id: str, award: AchievementAward
    ) -> StarEvent | None:
        bull_pen_id = room.id if award.scope == StarScope.ROOM.value else None
        season_id = room.season_id if award.scope == StarScope.SEASON.value else None
        return await self.award_stars(
            db,
            user_id,
            award.reason_code,
            award.stars,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            meta={**award.meta, "settled_room": room.id},
        )
