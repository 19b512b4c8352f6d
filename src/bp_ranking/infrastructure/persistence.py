"""RankingRepository: aggregate reads over star_events and user_budgets."""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

_ROOM_STARS_SQL = text("""
    SELECT user_id, COALESCE(SUM(stars), 0) AS total_stars
    FROM star_events
    WHERE bull_pen_id = :bull_pen_id
    GROUP BY user_id
""")

# account age is measured from budget account creation
_ACCOUNT_CREATED_SQL = text("""
    SELECT user_id, created_at FROM user_budgets WHERE user_id IN :user_ids
""").bindparams(bindparam("user_ids", expanding=True))


class RankingRepository:
    async def room_stars(self, db: AsyncSession, bull_pen_id: int) -> dict[str, int]:
        result = await db.execute(_ROOM_STARS_SQL, {"bull_pen_id": bull_pen_id})
        return {r.user_id: int(r.total_stars) for r in result.fetchall()}

    async def account_created(
        self, db: AsyncSession, user_ids: Sequence[str]
    ) -> dict[str, datetime]:
        if not user_ids:
            return {}
        result = await db.execute(_ACCOUNT_CREATED_SQL, {"user_ids": list(user_ids)})
        return {r.user_id: r.created_at for r in result.fetchall()}
