"""Repository Protocol for ranking inputs not owned by rooms or orders."""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


class RankingRepositoryProtocol(Protocol):
    async def room_stars(self, db: AsyncSession, bull_pen_id: int) -> dict[str, int]: ...

    async def account_created(
        self, db: AsyncSession, user_ids: Sequence[str]
    ) -> dict[str, datetime]: ...
