"""SettlementService: close a room, rank it, award achievements, snapshot, pay out.

Open positions are quoted first, before any row lock is taken. Everything
else runs in one transaction on the locked bull_pens row:
  1. guard: active/completed and not yet settled (settled rooms replay the count)
  2. refund still-pending memberships
  3. collect member metrics against the pre-lock quotes and rank them
  4. per member: evaluate and award achievements in a savepoint; a failure is
     logged and rolled back to the savepoint, never propagated
  5. append one leaderboard snapshot row per ranked member
  6. rake + payouts credited through the BudgetLedger
  7. active -> completed, stamp settled_at, commit

Any other failure rolls the whole transaction back and is reported as
{success: false, error}; a retry starts from a clean slate.
"""

import logging
import uuid
from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import (
    BudgetOperationType,
    MembershipRole,
    MembershipStatus,
    RoomState,
)
from src.bp_common.errors import InternalError, RoomNotFoundError, RoomNotSettleableError
from src.bp_common.money import ZERO, round_money
from src.bp_ledger.application.ledger import BudgetLedger
from src.bp_ranking.application.service import RankingService
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_room.application.service import rejection_refund_key
from src.bp_room.domain.models import BullPen, Membership
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.domain.state_machine import SETTLEABLE_STATES, assert_state_transition
from src.bp_room.infrastructure.persistence import RoomRepository
from src.bp_settlement.application.achievements import AchievementService
from src.bp_settlement.application.snapshots import snapshot_rows
from src.bp_settlement.domain.models import Payout, SettlementResult
from src.bp_settlement.domain.payout import calculate_payouts, calculate_rake, validate_payouts
from src.bp_settlement.domain.repository import (
    SettlementRepositoryProtocol,
    SnapshotRepositoryProtocol,
)
from src.bp_settlement.infrastructure.persistence import SettlementRepository
from src.bp_settlement.infrastructure.snapshot_repository import SnapshotRepository

logger = logging.getLogger(__name__)


def settlement_key(bull_pen_id: int, user_id: str) -> str:
    return f"settlement-{user_id}-{bull_pen_id}"


def paying_players(members: Sequence[Membership]) -> int:
    """Players who bought in and are still seated (the host never buys in)."""
    return sum(
        1
        for m in members
        if m.role == MembershipRole.PLAYER.value and m.status == MembershipStatus.ACTIVE.value
    )


class SettlementService:
    def __init__(
        self,
        repo: SettlementRepositoryProtocol | None = None,
        room_repo: RoomRepositoryProtocol | None = None,
        snapshot_repo: SnapshotRepositoryProtocol | None = None,
        ranking: RankingService | None = None,
        achievements: AchievementService | None = None,
        ledger: BudgetLedger | None = None,
        payout_model: str | None = None,
    ) -> None:
        self._repo: SettlementRepositoryProtocol = repo or SettlementRepository()
        self._rooms: RoomRepositoryProtocol = room_repo or RoomRepository()
        self._snapshots: SnapshotRepositoryProtocol = snapshot_repo or SnapshotRepository()
        self._ranking = ranking or RankingService(room_repo=self._rooms)
        self._achievements = achievements or AchievementService()
        self._ledger = ledger or BudgetLedger()
        self._payout_model = payout_model or settings.PAYOUT_MODEL

    async def settle_room(self, db: AsyncSession, bull_pen_id: int) -> SettlementResult:
        try:
            result = await self._settle(db, bull_pen_id)
            await db.commit()
        except (RoomNotFoundError, RoomNotSettleableError):
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.exception("Settlement of room %d failed", bull_pen_id)
            return SettlementResult(success=False, settled_count=0, error=str(e))
        if not result.already_settled:
            logger.info(
                "Room %d settled: %d members, pool %s, rake %s (%s)",
                bull_pen_id, result.settled_count, result.pool, result.rake_amount,
                result.correlation_id,
            )
        return result

    async def _settle(self, db: AsyncSession, bull_pen_id: int) -> SettlementResult:
        prices = await self._ranking.quote_room(db, bull_pen_id)
        room = await self._rooms.get_room_for_update(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        if room.is_settled:
            count = await self._snapshots.count_latest(db, bull_pen_id)
            return SettlementResult(success=True, settled_count=count, already_settled=True)
        if room.state not in SETTLEABLE_STATES or room.is_cancelled:
            raise RoomNotSettleableError(bull_pen_id, room.state)

        members = await self._rooms.list_members(db, bull_pen_id)
        await self._refund_pending(db, room, members)

        entries = self._ranking.rank(await self._ranking.collect_metrics(db, room, prices))
        correlation_id = f"room-{bull_pen_id}-settlement-{uuid.uuid4()}"

        room_stars_awarded: dict[str, int] = {}
        for entry in entries:
            room_stars_awarded[entry.user_id] = await self._award_isolated(db, room, entry)

        settled_at = utc_now()
        await self._snapshots.insert_snapshots(
            db, snapshot_rows(bull_pen_id, entries, settled_at, room_stars_awarded)
        )

        pool = round_money(room.starting_cash * paying_players(members))
        rake = await self._collect_rake(db, bull_pen_id, pool)
        payouts = calculate_payouts(entries, pool - rake, self._payout_model)
        if not validate_payouts(payouts, pool - rake):
            raise InternalError(f"payouts for room {bull_pen_id} do not match pool {pool - rake}")
        await self._credit_payouts(db, room, payouts, entries, correlation_id)

        if room.state == RoomState.ACTIVE.value:
            assert_state_transition(room.state, RoomState.COMPLETED.value)
            await self._rooms.update_state(db, bull_pen_id, RoomState.COMPLETED.value)
        await self._repo.mark_settled(db, bull_pen_id, settled_at)

        return SettlementResult(
            success=True,
            settled_count=len(entries),
            correlation_id=correlation_id,
            pool=pool,
            rake_amount=rake,
            payouts=payouts,
        )

    async def _refund_pending(
        self, db: AsyncSession, room: BullPen, members: Sequence[Membership]
    ) -> None:
        for m in members:
            if m.status != MembershipStatus.PENDING.value:
                continue
            await self._ledger.credit(
                db,
                m.user_id,
                room.starting_cash,
                idempotency_key=rejection_refund_key(room.id, m.user_id),
                operation_type=BudgetOperationType.ROOM_REJECTION_REFUND.value,
                bull_pen_id=room.id,
                season_id=room.season_id,
                meta={"reason": "never approved before settlement"},
            )
            await self._rooms.update_membership_status(db, m.id, MembershipStatus.LEFT.value)

    async def _award_isolated(self, db: AsyncSession, room: BullPen, entry: RankingEntry) -> int:
        """Award achievements for one member; returns room-scoped stars newly awarded."""
        try:
            async with db.begin_nested():
                events = await self._achievements.evaluate_and_award(db, room, entry)
        except Exception:
            logger.warning(
                "Achievement evaluation failed for user %s in room %d",
                entry.user_id, room.id, exc_info=True,
            )
            return 0
        return sum(e.stars for e in events if e.bull_pen_id == room.id)

    async def _collect_rake(self, db: AsyncSession, bull_pen_id: int, pool: Decimal) -> Decimal:
        config = await self._repo.get_active_rake_config(db)
        rake = calculate_rake(pool, config)
        if config is not None and rake > 0:
            await self._repo.insert_rake_collection(db, bull_pen_id, config.id, rake, pool)
        return rake

    async def _credit_payouts(
        self,
        db: AsyncSession,
        room: BullPen,
        payouts: Sequence[Payout],
        entries: Sequence[RankingEntry],
        correlation_id: str,
    ) -> None:
        pnl_by_user = {e.user_id: e.pnl_abs for e in entries}
        for p in payouts:
            if p.amount <= ZERO:
                continue
            await self._ledger.credit(
                db,
                p.user_id,
                p.amount,
                idempotency_key=settlement_key(room.id, p.user_id),
                operation_type=BudgetOperationType.ROOM_SETTLEMENT_WIN.value,
                bull_pen_id=room.id,
                season_id=room.season_id,
                correlation_id=correlation_id,
                meta={"rank": p.rank, "pnl_abs": str(pnl_by_user.get(p.user_id, ZERO))},
            )
