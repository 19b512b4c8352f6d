"""StarRepository: star_events plus the read-only statistics achievement
rules are evaluated against.

star_events uniqueness is enforced by an expression index over
(user_id, reason_code, COALESCE(bull_pen_id, 0), COALESCE(season_id, 0)); the
insert uses ON CONFLICT DO NOTHING against it, so a repeated award returns
no row instead of raising.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import MembershipStatus, OrderStatus
from src.bp_settlement.domain.models import StarEvent

_STAR_COLUMNS = "id, user_id, reason_code, stars, bull_pen_id, season_id, source, meta, created_at"

_INSERT_STAR_EVENT_SQL = text(f"""
    INSERT INTO star_events (user_id, reason_code, stars, bull_pen_id, season_id, source, meta)
    VALUES (:user_id, :reason_code, :stars, :bull_pen_id, :season_id, :source,
            CAST(:meta AS JSONB))
    ON CONFLICT (user_id, reason_code, (COALESCE(bull_pen_id, 0)), (COALESCE(season_id, 0)))
    DO NOTHING
    RETURNING {_STAR_COLUMNS}
""")

_SUM_STARS_SQL = text("""
    SELECT COALESCE(SUM(stars), 0) AS total
    FROM star_events
    WHERE user_id = :user_id
      AND (CAST(:bull_pen_id AS BIGINT) IS NULL OR bull_pen_id = :bull_pen_id)
      AND (CAST(:season_id AS BIGINT) IS NULL OR season_id = :season_id)
""")

_LIST_STAR_EVENTS_SQL = text(f"""
    SELECT {_STAR_COLUMNS}
    FROM star_events
    WHERE user_id = :user_id
      AND (CAST(:bull_pen_id AS BIGINT) IS NULL OR bull_pen_id = :bull_pen_id)
      AND (CAST(:season_id AS BIGINT) IS NULL OR season_id = :season_id)
      AND (CAST(:reason_code AS TEXT) IS NULL OR reason_code = :reason_code)
    ORDER BY created_at DESC, id DESC
    LIMIT :limit OFFSET :offset
""")

_COUNT_ROOMS_PLAYED_SQL = text(f"""
    SELECT COUNT(DISTINCT bull_pen_id)
    FROM bull_pen_memberships
    WHERE user_id = :user_id AND status = '{MembershipStatus.ACTIVE.value}'
""")

# final rank per previously settled room, most recent first
_RECENT_FINAL_RANKS_SQL = text("""
    SELECT rank FROM (
        SELECT DISTINCT ON (ls.bull_pen_id) ls.bull_pen_id, ls.rank, ls.snapshot_at
        FROM leaderboard_snapshots ls
        JOIN bull_pens bp ON bp.id = ls.bull_pen_id
        WHERE ls.user_id = :user_id
          AND bp.settled_at IS NOT NULL
          AND ls.bull_pen_id <> :exclude_bull_pen_id
        ORDER BY ls.bull_pen_id, ls.snapshot_at DESC
    ) finals
    ORDER BY snapshot_at DESC
    LIMIT :limit
""")

# season standing by summed final pnl across the season's settled rooms
_SEASON_STANDING_SQL = text("""
    WITH finals AS (
        SELECT DISTINCT ON (ls.bull_pen_id, ls.user_id) ls.user_id, ls.pnl_abs
        FROM leaderboard_snapshots ls
        JOIN bull_pens bp ON bp.id = ls.bull_pen_id
        WHERE bp.season_id = :season_id AND bp.settled_at IS NOT NULL
        ORDER BY ls.bull_pen_id, ls.user_id, ls.snapshot_at DESC
    ),
    totals AS (
        SELECT user_id, SUM(pnl_abs) AS total_pnl FROM finals GROUP BY user_id
    ),
    ranked AS (
        SELECT user_id,
               ROW_NUMBER() OVER (ORDER BY total_pnl DESC, user_id ASC) AS season_rank,
               COUNT(*) OVER () AS season_size
        FROM totals
    )
    SELECT season_rank, season_size
    FROM ranked WHERE user_id = :user_id
""")

_COUNT_ACTIVE_DAYS_SQL = text(f"""
    SELECT COUNT(DISTINCT CAST(filled_at AS DATE))
    FROM bull_pen_orders
    WHERE user_id = :user_id
      AND status = '{OrderStatus.FILLED.value}'
      AND filled_at >= NOW() - make_interval(days => :days)
""")

_HAS_CAMPAIGN_ACTION_SQL = text("""
    SELECT EXISTS (
        SELECT 1 FROM user_campaign_actions
        WHERE user_id = :user_id
          AND campaign_code = :campaign_code
          AND (CAST(:action AS TEXT) IS NULL OR action = :action)
    )
""")


def _load_meta(raw: object) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        return json.loads(raw)
    return dict(raw)  # type: ignore[call-overload]


def _row_to_star_event(row: object) -> StarEvent:
    return StarEvent(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        reason_code=row.reason_code,  # type: ignore[attr-defined]
        stars=row.stars,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        season_id=row.season_id,  # type: ignore[attr-defined]
        source=row.source,  # type: ignore[attr-defined]
        meta=_load_meta(row.meta),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class StarRepository:
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
    ) -> StarEvent | None:
        """Returns None when the award tuple already exists."""
        result = await db.execute(
            _INSERT_STAR_EVENT_SQL,
            {
                "user_id": user_id,
                "reason_code": reason_code,
                "stars": stars,
                "bull_pen_id": bull_pen_id,
                "season_id": season_id,
                "source": source,
                "meta": json.dumps(meta or {}),
            },
        )
        row = result.fetchone()
        return _row_to_star_event(row) if row else None

    async def sum_stars(
        self,
        db: AsyncSession,
        user_id: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
    ) -> int:
        result = await db.execute(
            _SUM_STARS_SQL,
            {"user_id": user_id, "bull_pen_id": bull_pen_id, "season_id": season_id},
        )
        return int(result.scalar_one())

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
    ) -> list[StarEvent]:
        result = await db.execute(
            _LIST_STAR_EVENTS_SQL,
            {
                "user_id": user_id,
                "bull_pen_id": bull_pen_id,
                "season_id": season_id,
                "reason_code": reason_code,
                "limit": limit,
                "offset": offset,
            },
        )
        return [_row_to_star_event(r) for r in result.fetchall()]

    async def count_rooms_played(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(_COUNT_ROOMS_PLAYED_SQL, {"user_id": user_id})
        return int(result.scalar_one())

    async def recent_final_ranks(
        self, db: AsyncSession, user_id: str, exclude_bull_pen_id: int, limit: int
    ) -> list[int]:
        result = await db.execute(
            _RECENT_FINAL_RANKS_SQL,
            {"user_id": user_id, "exclude_bull_pen_id": exclude_bull_pen_id, "limit": limit},
        )
        return [int(r.rank) for r in result.fetchall()]

    async def season_standing(
        self, db: AsyncSession, user_id: str, season_id: int
    ) -> tuple[int | None, int]:
        """(rank, size) of the user in the season; rank is None if they have no result."""
        row = (
            await db.execute(_SEASON_STANDING_SQL, {"user_id": user_id, "season_id": season_id})
        ).fetchone()
        if row is None:
            return None, 0
        return int(row.season_rank), int(row.season_size)

    async def count_active_days(self, db: AsyncSession, user_id: str, days: int) -> int:
        result = await db.execute(_COUNT_ACTIVE_DAYS_SQL, {"user_id": user_id, "days": days})
        return int(result.scalar_one())

    async def has_campaign_action(
        self, db: AsyncSession, user_id: str, campaign: str, action: str | None
    ) -> bool:
        result = await db.execute(
            _HAS_CAMPAIGN_ACTION_SQL,
            {"user_id": user_id, "campaign_code": campaign, "action": action},
        )
        return bool(result.scalar_one())
