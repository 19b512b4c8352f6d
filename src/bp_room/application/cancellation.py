"""Room cancellation and member removal, with buy-in refunds.

Refunds are credits on the BudgetLedger with deterministic idempotency keys
(`cancellation-{user}-{room}`, `kick-{room}-{user}`), so a retried call after
a crash never refunds twice.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import BudgetOperationType, MembershipRole, MembershipStatus
from src.bp_common.errors import (
    AppError,
    MembershipNotFoundError,
    RoomNotCancellableError,
    RoomNotFoundError,
)
from src.bp_ledger.application.ledger import BudgetLedger
from src.bp_room.application.schemas import CancelRoomResponse, KickMemberResponse
from src.bp_room.application.service import SEAT_STATUSES, require_host
from src.bp_room.domain.models import BullPen
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.domain.state_machine import CANCELLABLE_STATES
from src.bp_room.infrastructure.persistence import RoomRepository

logger = logging.getLogger(__name__)


def cancellation_refund_key(bull_pen_id: int, user_id: str) -> str:
    return f"cancellation-{user_id}-{bull_pen_id}"


def kick_refund_key(bull_pen_id: int, user_id: str) -> str:
    return f"kick-{bull_pen_id}-{user_id}"


class CancellationService:
    def __init__(
        self,
        repo: RoomRepositoryProtocol | None = None,
        ledger: BudgetLedger | None = None,
    ) -> None:
        self._repo: RoomRepositoryProtocol = repo or RoomRepository()
        self._ledger = ledger or BudgetLedger()

    async def cancel_room(self, db: AsyncSession, bull_pen_id: int) -> CancelRoomResponse:
        """Refund every seated player, release all seats and stamp cancelled_at.

        Only rooms that have not started (draft/scheduled) can be cancelled.
        Calling again on a cancelled room is a no-op returning refunded_count=0.
        """
        try:
            room = await self._lock_room(db, bull_pen_id)
            if room.is_cancelled:
                await db.commit()
                return CancelRoomResponse(
                    bull_pen_id=bull_pen_id, refunded_count=0, correlation_id=None
                )
            if room.state not in CANCELLABLE_STATES:
                raise RoomNotCancellableError(bull_pen_id, room.state)

            correlation_id = f"room-{bull_pen_id}-cancellation-{uuid.uuid4()}"
            refunded = 0
            for member in await self._repo.list_members(db, bull_pen_id):
                # The host never bought in
                if member.role == MembershipRole.HOST.value or not member.holds_seat:
                    continue
                await self._ledger.credit(
                    db,
                    member.user_id,
                    room.starting_cash,
                    idempotency_key=cancellation_refund_key(bull_pen_id, member.user_id),
                    operation_type=BudgetOperationType.ROOM_CANCELLATION_REFUND.value,
                    bull_pen_id=bull_pen_id,
                    season_id=room.season_id,
                    correlation_id=correlation_id,
                )
                refunded += 1

            await self._repo.set_all_membership_status(
                db, bull_pen_id, SEAT_STATUSES, MembershipStatus.LEFT.value
            )
            await self._repo.mark_cancelled(db, bull_pen_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Room %d cancelled, %d members refunded", bull_pen_id, refunded)
        return CancelRoomResponse(
            bull_pen_id=bull_pen_id, refunded_count=refunded, correlation_id=correlation_id
        )

    async def kick_member(
        self, db: AsyncSession, bull_pen_id: int, host_user_id: str, user_id: str
    ) -> KickMemberResponse:
        """Host removes a player; the buy-in is refunded only before the room starts."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, host_user_id)
            membership = await self._repo.get_membership_for_update(db, bull_pen_id, user_id)
            if membership is None or not membership.holds_seat:
                raise MembershipNotFoundError(bull_pen_id, user_id)
            if membership.is_host:
                raise AppError(3016, "The host cannot be kicked", 422, "CANNOT_KICK_HOST")

            refunded = False
            if room.state in CANCELLABLE_STATES and not room.is_cancelled:
                await self._ledger.credit(
                    db,
                    user_id,
                    room.starting_cash,
                    idempotency_key=kick_refund_key(bull_pen_id, user_id),
                    operation_type=BudgetOperationType.ROOM_MEMBER_KICK_REFUND.value,
                    bull_pen_id=bull_pen_id,
                    season_id=room.season_id,
                    correlation_id=f"room-{bull_pen_id}-kick-{uuid.uuid4()}",
                )
                refunded = True
            await self._repo.update_membership_status(
                db, membership.id, MembershipStatus.KICKED.value
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "User %s kicked from room %d by %s (refunded=%s)",
            user_id, bull_pen_id, host_user_id, refunded,
        )
        return KickMemberResponse(
            bull_pen_id=bull_pen_id,
            user_id=user_id,
            status=MembershipStatus.KICKED.value,
            refunded=refunded,
        )

    async def _lock_room(self, db: AsyncSession, bull_pen_id: int) -> BullPen:
        room = await self._repo.get_room_for_update(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        return room
