"""RoomApplicationService: room lifecycle and membership use cases.

Every mutation locks the bull_pens row (SELECT ... FOR UPDATE) first, so
capacity checks, state transitions and buy-ins on the same room serialize.
Budget movements (buy-in, refunds) go through BudgetLedger inside the same
transaction as the membership change and commit or roll back with it.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import (
    BudgetOperationType,
    MembershipRole,
    MembershipStatus,
    RoomState,
)
from src.bp_common.errors import (
    AlreadyMemberError,
    HostCannotLeaveError,
    MembershipNotFoundError,
    MembershipNotPendingError,
    NotRoomHostError,
    RoomFullError,
    RoomNotEditableError,
    RoomNotFoundError,
    RoomNotJoinableError,
    RoomNotReadyError,
)
from src.bp_ledger.application.ledger import BudgetLedger
from src.bp_room.application.schemas import (
    CreateRoomRequest,
    JoinRoomResponse,
    LeaveRoomResponse,
    MembershipItem,
    RoomDetail,
    UpdateRoomRequest,
)
from src.bp_room.domain.models import BullPen, Membership
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.domain.state_machine import (
    EDITABLE_STATES,
    JOINABLE_STATES,
    assert_state_transition,
    can_complete_room,
    can_start_room,
    next_clock_state,
)
from src.bp_room.infrastructure.persistence import RoomRepository

logger = logging.getLogger(__name__)

SEAT_STATUSES = (MembershipStatus.PENDING.value, MembershipStatus.ACTIVE.value)


def _with_client_key(base: str, client_key: str | None) -> str:
    # A client Idempotency-Key only ever extends the room/user scoped key
    return f"{base}:{client_key}" if client_key else base


def buy_in_key(bull_pen_id: int, user_id: str, client_key: str | None = None) -> str:
    return _with_client_key(f"buyin-{bull_pen_id}-{user_id}", client_key)


def leave_refund_key(bull_pen_id: int, user_id: str, client_key: str | None = None) -> str:
    return _with_client_key(f"leave-{bull_pen_id}-{user_id}", client_key)


def rejection_refund_key(bull_pen_id: int, user_id: str) -> str:
    return f"rejection-{bull_pen_id}-{user_id}"


def require_host(room: BullPen, user_id: str) -> None:
    if room.host_user_id != user_id:
        raise NotRoomHostError(room.id)


class RoomApplicationService:
    def __init__(
        self,
        repo: RoomRepositoryProtocol | None = None,
        ledger: BudgetLedger | None = None,
    ) -> None:
        self._repo: RoomRepositoryProtocol = repo or RoomRepository()
        self._ledger = ledger or BudgetLedger()

    # ------------------------------------------------------------------
    # Room CRUD
    # ------------------------------------------------------------------

    async def create_room(
        self, db: AsyncSession, host_user_id: str, req: CreateRoomRequest
    ) -> RoomDetail:
        """Create a draft room plus the host membership (host does not buy in)."""
        try:
            room = await self._repo.insert_room(
                db,
                name=req.name,
                description=req.description,
                host_user_id=host_user_id,
                starting_cash=req.starting_cash,
                duration_sec=req.duration_sec,
                start_time=req.start_time,
                max_players=req.max_players,
                allow_fractional=req.allow_fractional,
                approval_required=req.approval_required,
                season_id=req.season_id,
            )
            await self._repo.insert_membership(
                db,
                room.id,
                host_user_id,
                MembershipRole.HOST.value,
                MembershipStatus.ACTIVE.value,
                room.starting_cash,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Room %d created by %s", room.id, host_user_id)
        return RoomDetail.from_domain(room, member_count=1)

    async def get_room(self, db: AsyncSession, bull_pen_id: int) -> RoomDetail:
        room = await self._repo.get_room(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        count = await self._repo.count_members(db, bull_pen_id, SEAT_STATUSES)
        return RoomDetail.from_domain(room, member_count=count)

    async def update_room(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, req: UpdateRoomRequest
    ) -> RoomDetail:
        """Host-only edit of economic parameters while draft/scheduled."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, user_id)
            if room.state not in EDITABLE_STATES or room.is_cancelled:
                raise RoomNotEditableError(bull_pen_id, f"state is {room.state}")
            seats = await self._repo.count_members(db, bull_pen_id, SEAT_STATUSES)
            cash_changed = (
                req.starting_cash is not None and req.starting_cash != room.starting_cash
            )
            if cash_changed and seats > 1:
                raise RoomNotEditableError(
                    bull_pen_id, "starting cash is fixed once players have bought in"
                )
            if req.max_players is not None and req.max_players < seats:
                raise RoomNotEditableError(
                    bull_pen_id, f"max_players {req.max_players} is below current seats {seats}"
                )
            updated = await self._repo.update_room(
                db,
                bull_pen_id,
                name=req.name,
                description=req.description,
                starting_cash=req.starting_cash,
                duration_sec=req.duration_sec,
                start_time=req.start_time,
                max_players=req.max_players,
                allow_fractional=req.allow_fractional,
                approval_required=req.approval_required,
            )
            if cash_changed:
                await self._repo.reset_host_cash(db, bull_pen_id, updated.starting_cash)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return RoomDetail.from_domain(updated, member_count=seats)

    async def delete_room(self, db: AsyncSession, bull_pen_id: int, user_id: str) -> None:
        """Host-only delete of a draft room nobody has bought into (use cancel otherwise)."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, user_id)
            if not room.is_draft:
                raise RoomNotEditableError(bull_pen_id, "only draft rooms can be deleted")
            seats = await self._repo.count_members(db, bull_pen_id, SEAT_STATUSES)
            if seats > 1:
                raise RoomNotEditableError(bull_pen_id, "players have joined; cancel instead")
            await self._repo.delete_room(db, bull_pen_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Room %d deleted by host %s", bull_pen_id, user_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def transition_room(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, to_state: str
    ) -> RoomDetail:
        """Host-driven single-step transition, validated by the state machine."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, user_id)
            if room.is_cancelled:
                raise RoomNotEditableError(bull_pen_id, "room was cancelled")
            assert_state_transition(room.state, to_state)
            await self._check_transition_preconditions(db, room, to_state)
            await self._repo.update_state(db, bull_pen_id, to_state)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Room %d: %s -> %s (host %s)", bull_pen_id, room.state, to_state, user_id)
        room.state = to_state
        return RoomDetail.from_domain(room)

    async def sync_room_state(self, db: AsyncSession, bull_pen_id: int) -> RoomDetail:
        """Advance scheduled→active or active→completed when the clock says so (one step)."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            target = None
            if not room.is_cancelled:
                target = next_clock_state(
                    room.state, room.start_time, room.duration_sec, utc_now()
                )
            if target is not None:
                assert_state_transition(room.state, target.value)
                await self._repo.update_state(db, bull_pen_id, target.value)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if target is not None:
            logger.info("Room %d: clock advanced %s -> %s", bull_pen_id, room.state, target.value)
            room.state = target.value
        return RoomDetail.from_domain(room)

    async def _check_transition_preconditions(
        self, db: AsyncSession, room: BullPen, to_state: str
    ) -> None:
        if to_state == RoomState.SCHEDULED.value and room.start_time is None:
            raise RoomNotReadyError("a start time is required to schedule")
        if to_state == RoomState.ACTIVE.value:
            active = await self._repo.count_members(
                db, room.id, (MembershipStatus.ACTIVE.value,)
            )
            ok, why = can_start_room(room.state, active)
            if not ok:
                raise RoomNotReadyError(why or "")
        if to_state == RoomState.COMPLETED.value:
            ok, why = can_complete_room(room.state, room.start_time, room.duration_sec, utc_now())
            if not ok:
                raise RoomNotReadyError(why or "")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def join_room(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        idempotency_key: str | None = None,
    ) -> JoinRoomResponse:
        """Debit the buy-in (ROOM_BUY_IN) and create a pending/active membership."""
        key = buy_in_key(bull_pen_id, user_id, idempotency_key)
        try:
            room = await self._lock_room(db, bull_pen_id)
            if room.state not in JOINABLE_STATES or room.is_cancelled:
                raise RoomNotJoinableError(bull_pen_id, room.state)
            if await self._repo.get_membership(db, bull_pen_id, user_id) is not None:
                raise AlreadyMemberError(bull_pen_id, user_id)
            seats = await self._repo.count_members(db, bull_pen_id, SEAT_STATUSES)
            if seats >= room.max_players:
                raise RoomFullError(bull_pen_id)

            charge = await self._ledger.debit(
                db,
                user_id,
                room.starting_cash,
                idempotency_key=key,
                operation_type=BudgetOperationType.ROOM_BUY_IN.value,
                bull_pen_id=bull_pen_id,
                season_id=room.season_id,
                meta={"room_name": room.name},
            )
            status = (
                MembershipStatus.PENDING.value
                if room.approval_required
                else MembershipStatus.ACTIVE.value
            )
            membership = await self._repo.insert_membership(
                db, bull_pen_id, user_id, MembershipRole.PLAYER.value, status, room.starting_cash
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("User %s joined room %d as %s", user_id, bull_pen_id, membership.status)
        return JoinRoomResponse(
            membership=MembershipItem.from_domain(membership),
            buy_in=float(room.starting_cash),
            budget_balance_after=float(charge.balance_after),
            idempotent=charge.idempotent,
        )

    async def leave_room(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        idempotency_key: str | None = None,
    ) -> LeaveRoomResponse:
        """Refund the buy-in (ROOM_LEAVE_REFUND) and mark the membership left."""
        key = leave_refund_key(bull_pen_id, user_id, idempotency_key)
        try:
            room = await self._lock_room(db, bull_pen_id)
            membership = await self._lock_seat(db, bull_pen_id, user_id)
            if membership.is_host:
                raise HostCannotLeaveError()
            if room.state not in JOINABLE_STATES or room.is_cancelled:
                raise RoomNotJoinableError(bull_pen_id, room.state)
            refund = await self._ledger.credit(
                db,
                user_id,
                room.starting_cash,
                idempotency_key=key,
                operation_type=BudgetOperationType.ROOM_LEAVE_REFUND.value,
                bull_pen_id=bull_pen_id,
                season_id=room.season_id,
            )
            await self._repo.update_membership_status(
                db, membership.id, MembershipStatus.LEFT.value
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("User %s left room %d", user_id, bull_pen_id)
        return LeaveRoomResponse(
            bull_pen_id=bull_pen_id,
            user_id=user_id,
            status=MembershipStatus.LEFT.value,
            refund=float(room.starting_cash),
            budget_balance_after=float(refund.balance_after),
        )

    async def approve_member(
        self, db: AsyncSession, bull_pen_id: int, host_user_id: str, user_id: str
    ) -> MembershipItem:
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, host_user_id)
            membership = await self._lock_pending(db, bull_pen_id, user_id)
            await self._repo.update_membership_status(
                db, membership.id, MembershipStatus.ACTIVE.value
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        membership.status = MembershipStatus.ACTIVE.value
        return MembershipItem.from_domain(membership)

    async def reject_member(
        self, db: AsyncSession, bull_pen_id: int, host_user_id: str, user_id: str
    ) -> MembershipItem:
        """Reject a pending join: membership becomes kicked and the buy-in is refunded."""
        try:
            room = await self._lock_room(db, bull_pen_id)
            require_host(room, host_user_id)
            membership = await self._lock_pending(db, bull_pen_id, user_id)
            await self._ledger.credit(
                db,
                user_id,
                room.starting_cash,
                idempotency_key=rejection_refund_key(bull_pen_id, user_id),
                operation_type=BudgetOperationType.ROOM_REJECTION_REFUND.value,
                bull_pen_id=bull_pen_id,
                season_id=room.season_id,
            )
            await self._repo.update_membership_status(
                db, membership.id, MembershipStatus.KICKED.value
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        membership.status = MembershipStatus.KICKED.value
        return MembershipItem.from_domain(membership)

    async def list_members(self, db: AsyncSession, bull_pen_id: int) -> list[MembershipItem]:
        if await self._repo.get_room(db, bull_pen_id) is None:
            raise RoomNotFoundError(bull_pen_id)
        members = await self._repo.list_members(db, bull_pen_id)
        return [MembershipItem.from_domain(m) for m in members]

    async def list_my_rooms(self, db: AsyncSession, user_id: str) -> list[RoomDetail]:
        rooms = await self._repo.list_rooms_for_user(db, user_id)
        return [RoomDetail.from_domain(r) for r in rooms]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _lock_room(self, db: AsyncSession, bull_pen_id: int) -> BullPen:
        room = await self._repo.get_room_for_update(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        return room

    async def _lock_seat(self, db: AsyncSession, bull_pen_id: int, user_id: str) -> Membership:
        membership = await self._repo.get_membership_for_update(db, bull_pen_id, user_id)
        if membership is None or not membership.holds_seat:
            raise MembershipNotFoundError(bull_pen_id, user_id)
        return membership

    async def _lock_pending(self, db: AsyncSession, bull_pen_id: int, user_id: str) -> Membership:
        membership = await self._repo.get_membership_for_update(db, bull_pen_id, user_id)
        if membership is None:
            raise MembershipNotFoundError(bull_pen_id, user_id)
        if membership.status != MembershipStatus.PENDING.value:
            raise MembershipNotPendingError(user_id, membership.status)
        return membership
