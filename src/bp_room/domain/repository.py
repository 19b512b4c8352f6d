"""Repository Protocol: dependency inversion for testability."""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_room.domain.models import BullPen, Membership


class RoomRepositoryProtocol(Protocol):
    async def get_room(self, db: AsyncSession, bull_pen_id: int) -> BullPen | None: ...

    async def get_room_for_update(self, db: AsyncSession, bull_pen_id: int) -> BullPen | None: ...

    async def insert_room(
        self,
        db: AsyncSession,
        *,
        name: str,
        description: str | None,
        host_user_id: str,
        starting_cash: Decimal,
        duration_sec: int,
        start_time: datetime | None,
        max_players: int,
        allow_fractional: bool,
        approval_required: bool,
        season_id: int | None,
    ) -> BullPen: ...

    async def update_room(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        *,
        name: str | None,
        description: str | None,
        starting_cash: Decimal | None,
        duration_sec: int | None,
        start_time: datetime | None,
        max_players: int | None,
        allow_fractional: bool | None,
        approval_required: bool | None,
    ) -> BullPen: ...

    async def update_state(self, db: AsyncSession, bull_pen_id: int, state: str) -> None: ...

    async def mark_cancelled(self, db: AsyncSession, bull_pen_id: int) -> None: ...

    async def delete_room(self, db: AsyncSession, bull_pen_id: int) -> None: ...

    async def get_membership(
        self, db: AsyncSession, bull_pen_id: int, user_id: str
    ) -> Membership | None: ...

    async def get_membership_for_update(
        self, db: AsyncSession, bull_pen_id: int, user_id: str
    ) -> Membership | None: ...

    async def insert_membership(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        role: str,
        status: str,
        cash: Decimal,
    ) -> Membership: ...

    async def update_membership_status(
        self, db: AsyncSession, membership_id: int, status: str
    ) -> None: ...

    async def reset_host_cash(
        self, db: AsyncSession, bull_pen_id: int, cash: Decimal
    ) -> None: ...

    async def set_all_membership_status(
        self, db: AsyncSession, bull_pen_id: int, from_statuses: Sequence[str], status: str
    ) -> None: ...

    async def count_members(
        self, db: AsyncSession, bull_pen_id: int, statuses: Sequence[str]
    ) -> int: ...

    async def list_members(self, db: AsyncSession, bull_pen_id: int) -> list[Membership]: ...

    async def list_rooms_for_user(self, db: AsyncSession, user_id: str) -> list[BullPen]: ...
