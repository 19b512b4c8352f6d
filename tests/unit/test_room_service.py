"""Unit tests for RoomApplicationService and CancellationService with mock repositories."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.bp_common.enums import MembershipStatus, RoomState
from src.bp_common.errors import (
    AlreadyMemberError,
    HostCannotLeaveError,
    IdempotencyKeyConflictError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    MembershipNotPendingError,
    NotRoomHostError,
    RoomFullError,
    RoomNotCancellableError,
    RoomNotJoinableError,
    RoomNotReadyError,
)
from src.bp_ledger.application.ledger import BudgetLedger
from src.bp_ledger.domain.models import BudgetAccount, BudgetLedgerEntry, LedgerResult
from src.bp_room.application.cancellation import CancellationService
from src.bp_room.application.schemas import CreateRoomRequest
from src.bp_room.application.service import RoomApplicationService
from src.bp_room.domain.models import BullPen, Membership


def _room(
    state: str = RoomState.DRAFT.value,
    max_players: int = 10,
    approval_required: bool = False,
    start_time: datetime | None = None,
    cancelled: bool = False,
) -> BullPen:
    return BullPen(
        id=1,
        name="Tech Bulls",
        host_user_id="host",
        state=state,
        starting_cash=Decimal("10000.00"),
        duration_sec=3600,
        max_players=max_players,
        approval_required=approval_required,
        start_time=start_time,
        cancelled_at=datetime.now(UTC) if cancelled else None,
    )


def _member(
    user_id: str = "alice",
    status: str = MembershipStatus.ACTIVE.value,
    role: str = "player",
    member_id: int = 11,
) -> Membership:
    return Membership(
        id=member_id,
        bull_pen_id=1,
        user_id=user_id,
        role=role,
        status=status,
        cash=Decimal("10000.00"),
    )


def _ledger_result(after: str = "0.00", idempotent: bool = False) -> LedgerResult:
    return LedgerResult(
        balance_before=Decimal("10000.00"),
        balance_after=Decimal(after),
        log_id=1,
        idempotent=idempotent,
    )


def _room_three_buy_in() -> BudgetLedgerEntry:
    return BudgetLedgerEntry(
        id=99, user_id="alice", direction="OUT", operation_type="ROOM_BUY_IN",
        amount=Decimal("10000.00"), balance_before=Decimal("60000.00"),
        balance_after=Decimal("50000.00"), idempotency_key="buyin-3-alice", bull_pen_id=3,
    )


def _budget_repo(rows: dict[str, BudgetLedgerEntry]) -> AsyncMock:
    async def _insert(db: object, **kwargs: object) -> BudgetLedgerEntry:
        return BudgetLedgerEntry(id=100, **kwargs)  # type: ignore[arg-type]

    budgets = AsyncMock()
    budgets.get_log_by_key.side_effect = lambda db, key: rows.get(key)
    budgets.lock_budget.return_value = BudgetAccount(
        user_id="alice", available_balance=Decimal("50000.00"), locked_balance=Decimal("0")
    )
    budgets.insert_log = AsyncMock(side_effect=_insert)
    return budgets


def _make(room: BullPen) -> tuple[RoomApplicationService, AsyncMock, AsyncMock, AsyncMock]:
    repo = AsyncMock()
    repo.get_room_for_update.return_value = room
    repo.get_room.return_value = room
    ledger = AsyncMock()
    db = AsyncMock()
    return RoomApplicationService(repo=repo, ledger=ledger), repo, ledger, db


class TestCreateRoom:
    async def test_host_membership_without_buy_in(self) -> None:
        svc, repo, ledger, db = _make(_room())
        repo.insert_room.return_value = _room()

        req = CreateRoomRequest(name="  Tech Bulls ", starting_cash="10000", duration_sec=3600)
        result = await svc.create_room(db, "host", req)

        assert result.name == "Tech Bulls"
        assert result.member_count == 1
        assert repo.insert_room.await_args.kwargs["name"] == "Tech Bulls"
        role, status = repo.insert_membership.await_args.args[3:5]
        assert (role, status) == ("host", "active")
        ledger.debit.assert_not_awaited()
        db.commit.assert_awaited_once()


class TestJoinRoom:
    async def test_join_debits_buy_in_and_activates(self) -> None:
        svc, repo, ledger, db = _make(_room())
        repo.get_membership.return_value = None
        repo.count_members.return_value = 1
        repo.insert_membership.return_value = _member()
        ledger.debit.return_value = _ledger_result("40000.00")

        result = await svc.join_room(db, 1, "alice")

        assert result.membership.status == "active"
        assert result.buy_in == 10000.0
        assert result.budget_balance_after == 40000.0
        kwargs = ledger.debit.await_args.kwargs
        assert kwargs["operation_type"] == "ROOM_BUY_IN"
        assert kwargs["idempotency_key"] == "buyin-1-alice"
        assert repo.insert_membership.await_args.args[4] == "active"
        db.commit.assert_awaited_once()

    async def test_approval_required_creates_pending(self) -> None:
        svc, repo, ledger, db = _make(_room(approval_required=True))
        repo.get_membership.return_value = None
        repo.count_members.return_value = 1
        repo.insert_membership.return_value = _member(status="pending")
        ledger.debit.return_value = _ledger_result()

        await svc.join_room(db, 1, "alice", idempotency_key="client-key")

        assert repo.insert_membership.await_args.args[4] == "pending"
        assert ledger.debit.await_args.kwargs["idempotency_key"] == "buyin-1-alice:client-key"

    async def test_key_from_another_room_still_charges(self) -> None:
        budgets = _budget_repo({"buyin-3-alice": _room_three_buy_in()})
        svc, repo, _, db = _make(_room())
        svc = RoomApplicationService(repo=repo, ledger=BudgetLedger(repo=budgets))
        repo.get_membership.return_value = None
        repo.count_members.return_value = 1
        repo.insert_membership.return_value = _member()

        result = await svc.join_room(db, 1, "alice", idempotency_key="buyin-3-alice")

        assert result.idempotent is False
        assert budgets.update_balances.await_count == 1
        assert budgets.insert_log.await_args.kwargs["idempotency_key"] == (
            "buyin-1-alice:buyin-3-alice"
        )

    async def test_reused_ledger_row_for_other_room_is_a_conflict(self) -> None:
        budgets = _budget_repo({})
        budgets.get_log_by_key.side_effect = None
        budgets.get_log_by_key.return_value = _room_three_buy_in()
        svc, repo, _, db = _make(_room())
        svc = RoomApplicationService(repo=repo, ledger=BudgetLedger(repo=budgets))
        repo.get_membership.return_value = None
        repo.count_members.return_value = 1

        with pytest.raises(IdempotencyKeyConflictError):
            await svc.join_room(db, 1, "alice")
        budgets.update_balances.assert_not_awaited()
        repo.insert_membership.assert_not_awaited()
        db.rollback.assert_awaited_once()

    async def test_full_room_rejected_before_debit(self) -> None:
        svc, repo, ledger, db = _make(_room(max_players=2))
        repo.get_membership.return_value = None
        repo.count_members.return_value = 2

        with pytest.raises(RoomFullError):
            await svc.join_room(db, 1, "carol")
        ledger.debit.assert_not_awaited()
        db.rollback.assert_awaited_once()

    async def test_duplicate_join(self) -> None:
        svc, repo, ledger, db = _make(_room())
        repo.get_membership.return_value = _member()

        with pytest.raises(AlreadyMemberError):
            await svc.join_room(db, 1, "alice")

    async def test_completed_room_not_joinable(self) -> None:
        svc, _, _, db = _make(_room(state="completed"))
        with pytest.raises(RoomNotJoinableError):
            await svc.join_room(db, 1, "alice")

    async def test_insufficient_budget_leaves_no_membership(self) -> None:
        svc, repo, ledger, db = _make(_room())
        repo.get_membership.return_value = None
        repo.count_members.return_value = 1
        ledger.debit.side_effect = InsufficientFundsError("10000.00", "500.00")

        with pytest.raises(InsufficientFundsError):
            await svc.join_room(db, 1, "alice")
        repo.insert_membership.assert_not_awaited()
        db.rollback.assert_awaited_once()


class TestLeaveRoom:
    async def test_leave_refunds_buy_in(self) -> None:
        svc, repo, ledger, db = _make(_room(state="scheduled"))
        repo.get_membership_for_update.return_value = _member()
        ledger.credit.return_value = _ledger_result("50000.00")

        result = await svc.leave_room(db, 1, "alice")

        assert result.status == "left"
        assert result.refund == 10000.0
        assert ledger.credit.await_args.kwargs["operation_type"] == "ROOM_LEAVE_REFUND"
        repo.update_membership_status.assert_awaited_once_with(db, 11, "left")

    async def test_host_cannot_leave(self) -> None:
        svc, repo, ledger, db = _make(_room())
        repo.get_membership_for_update.return_value = _member("host", role="host")

        with pytest.raises(HostCannotLeaveError):
            await svc.leave_room(db, 1, "host")
        ledger.credit.assert_not_awaited()


class TestApproval:
    async def test_reject_refunds_and_kicks(self) -> None:
        svc, repo, ledger, db = _make(_room(approval_required=True))
        repo.get_membership_for_update.return_value = _member(status="pending")

        result = await svc.reject_member(db, 1, "host", "alice")

        assert result.status == "kicked"
        kwargs = ledger.credit.await_args.kwargs
        assert kwargs["operation_type"] == "ROOM_REJECTION_REFUND"
        assert kwargs["idempotency_key"] == "rejection-1-alice"

    async def test_approve_requires_pending(self) -> None:
        svc, repo, _, db = _make(_room())
        repo.get_membership_for_update.return_value = _member(status="active")

        with pytest.raises(MembershipNotPendingError):
            await svc.approve_member(db, 1, "host", "alice")

    async def test_only_host_approves(self) -> None:
        svc, _, _, db = _make(_room())
        with pytest.raises(NotRoomHostError):
            await svc.approve_member(db, 1, "mallory", "alice")


class TestTransitions:
    async def test_schedule_requires_start_time(self) -> None:
        svc, _, _, db = _make(_room())
        with pytest.raises(RoomNotReadyError):
            await svc.transition_room(db, 1, "host", "scheduled")

    async def test_start_needs_two_active_members(self) -> None:
        start = datetime.now(UTC) + timedelta(hours=1)
        svc, repo, _, db = _make(_room(state="scheduled", start_time=start))
        repo.count_members.return_value = 1

        with pytest.raises(RoomNotReadyError):
            await svc.transition_room(db, 1, "host", "active")
        repo.update_state.assert_not_awaited()

    async def test_skipping_a_state_is_rejected(self) -> None:
        svc, _, _, db = _make(_room())
        with pytest.raises(InvalidStateTransitionError):
            await svc.transition_room(db, 1, "host", "active")

    async def test_sync_advances_one_step(self) -> None:
        start = datetime.now(UTC) - timedelta(days=1)
        svc, repo, _, db = _make(_room(state="scheduled", start_time=start))

        result = await svc.sync_room_state(db, 1)

        assert result.state == "active"
        repo.update_state.assert_awaited_once_with(db, 1, "active")


class TestCancellation:
    async def test_cancel_refunds_seated_players_only(self) -> None:
        repo = AsyncMock()
        repo.get_room_for_update.return_value = _room(state="scheduled")
        repo.list_members.return_value = [
            _member("host", role="host", member_id=1),
            _member("alice", member_id=2),
            _member("bob", status="pending", member_id=3),
            _member("carol", status="left", member_id=4),
        ]
        ledger = AsyncMock()
        db = AsyncMock()
        svc = CancellationService(repo=repo, ledger=ledger)

        result = await svc.cancel_room(db, 1)

        assert result.refunded_count == 2
        refunded = [c.args[1] for c in ledger.credit.await_args_list]
        assert refunded == ["alice", "bob"]
        keys = {c.kwargs["idempotency_key"] for c in ledger.credit.await_args_list}
        assert keys == {"cancellation-alice-1", "cancellation-bob-1"}
        repo.mark_cancelled.assert_awaited_once_with(db, 1)
        db.commit.assert_awaited_once()

    async def test_cancel_twice_is_noop(self) -> None:
        repo = AsyncMock()
        repo.get_room_for_update.return_value = _room(cancelled=True)
        ledger = AsyncMock()
        svc = CancellationService(repo=repo, ledger=ledger)

        result = await svc.cancel_room(AsyncMock(), 1)

        assert result.refunded_count == 0
        ledger.credit.assert_not_awaited()

    async def test_active_room_cannot_be_cancelled(self) -> None:
        repo = AsyncMock()
        repo.get_room_for_update.return_value = _room(state="active")
        svc = CancellationService(repo=repo, ledger=AsyncMock())

        with pytest.raises(RoomNotCancellableError):
            await svc.cancel_room(AsyncMock(), 1)

    async def test_kick_after_start_has_no_refund(self) -> None:
        repo = AsyncMock()
        repo.get_room_for_update.return_value = _room(state="active")
        repo.get_membership_for_update.return_value = _member()
        ledger = AsyncMock()
        svc = CancellationService(repo=repo, ledger=ledger)

        result = await svc.kick_member(AsyncMock(), 1, "host", "alice")

        assert result.status == "kicked"
        assert result.refunded is False
        ledger.credit.assert_not_awaited()

    async def test_kick_before_start_refunds(self) -> None:
        repo = AsyncMock()
        repo.get_room_for_update.return_value = _room(state="draft")
        repo.get_membership_for_update.return_value = _member()
        ledger = AsyncMock()
        svc = CancellationService(repo=repo, ledger=ledger)

        result = await svc.kick_member(AsyncMock(), 1, "host", "alice")

        assert result.refunded is True
        assert ledger.credit.await_args.kwargs["idempotency_key"] == "kick-1-alice"
