"""Unit tests for SettlementService with mock collaborators."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.bp_common.errors import RoomNotFoundError, RoomNotSettleableError
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_room.domain.models import BullPen, Membership
from src.bp_settlement.application.settlement import (
    SettlementService,
    paying_players,
    settlement_key,
)
from src.bp_settlement.domain.models import RakeConfig, StarEvent


def _room(
    state: str = "active", settled: bool = False, cancelled: bool = False
) -> BullPen:
    return BullPen(
        id=7, name="Room", host_user_id="host", state=state,
        starting_cash=Decimal("10000.00"), duration_sec=3600, max_players=10,
        settled_at=datetime.now(UTC) if settled else None,
        cancelled_at=datetime.now(UTC) if cancelled else None,
    )


def _member(
    user_id: str, role: str = "player", status: str = "active", mid: int = 0
) -> Membership:
    return Membership(
        id=mid, bull_pen_id=7, user_id=user_id, role=role, status=status,
        cash=Decimal("10000.00"),
    )


def _entry(user_id: str, rank: int, pnl_abs: str, room_stars: int = 0) -> RankingEntry:
    return RankingEntry(
        user_id=user_id, score=1.0 / rank, pnl_pct=Decimal(pnl_abs) / 100,
        pnl_abs=Decimal(pnl_abs), room_stars=room_stars, trade_count=1, account_age_days=1,
        portfolio_value=Decimal("10000") + Decimal(pnl_abs), rank=rank,
    )


def _star(user_id: str, stars: int, bull_pen_id: int | None) -> StarEvent:
    return StarEvent(id=1, user_id=user_id, reason_code="x", stars=stars, bull_pen_id=bull_pen_id)


def _db() -> AsyncMock:
    db = AsyncMock()
    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=None)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    db.begin_nested = MagicMock(return_value=savepoint)
    return db


class _Harness:
    def __init__(
        self,
        room: BullPen,
        members: list[Membership],
        entries: list[RankingEntry],
        payout_model: str = "winner-take-all",
    ) -> None:
        self.repo = AsyncMock()
        self.repo.get_active_rake_config.return_value = None
        self.rooms = AsyncMock()
        self.rooms.get_room_for_update.return_value = room
        self.rooms.list_members.return_value = members
        self.snapshots = AsyncMock()
        self.ranking = MagicMock()
        self.ranking.quote_room = AsyncMock(return_value={"AAPL": Decimal("190.00")})
        self.ranking.collect_metrics = AsyncMock(return_value=[])
        self.ranking.rank = MagicMock(return_value=entries)
        self.achievements = AsyncMock()
        self.achievements.evaluate_and_award.return_value = []
        self.ledger = AsyncMock()
        self.db = _db()
        self.svc = SettlementService(
            repo=self.repo,
            room_repo=self.rooms,
            snapshot_repo=self.snapshots,
            ranking=self.ranking,
            achievements=self.achievements,
            ledger=self.ledger,
            payout_model=payout_model,
        )

    def snapshot_rows(self) -> list[dict[str, object]]:
        return self.snapshots.insert_snapshots.await_args.args[1]


MEMBERS = [
    _member("host", role="host", mid=1),
    _member("alice", mid=2),
    _member("bob", mid=3),
]
ENTRIES = [_entry("alice", 1, "500"), _entry("bob", 2, "-100"), _entry("host", 3, "-200")]


class TestHelpers:
    def test_paying_players_excludes_host_and_unseated(self) -> None:
        members = [*MEMBERS, _member("carol", status="left"), _member("dan", status="pending")]
        assert paying_players(members) == 2

    def test_settlement_key(self) -> None:
        assert settlement_key(7, "alice") == "settlement-alice-7"


class TestSettleRoom:
    async def test_happy_path(self) -> None:
        h = _Harness(_room(), MEMBERS, ENTRIES)

        result = await h.svc.settle_room(h.db, 7)

        assert result.success
        assert result.settled_count == 3
        assert result.pool == Decimal("20000.00")
        assert result.correlation_id is not None
        assert result.correlation_id.startswith("room-7-settlement-")
        credit = h.ledger.credit.await_args
        assert credit.args[1:] == ("alice", Decimal("20000.00"))
        assert credit.kwargs["operation_type"] == "ROOM_SETTLEMENT_WIN"
        assert credit.kwargs["idempotency_key"] == "settlement-alice-7"
        assert credit.kwargs["meta"] == {"rank": 1, "pnl_abs": "500"}
        h.ledger.credit.assert_awaited_once()
        h.rooms.update_state.assert_awaited_once_with(h.db, 7, "completed")
        h.repo.mark_settled.assert_awaited_once()
        h.db.commit.assert_awaited_once()
        assert [r["user_id"] for r in h.snapshot_rows()] == ["alice", "bob", "host"]

    async def test_quotes_taken_before_room_lock(self) -> None:
        room = _room()
        h = _Harness(room, MEMBERS, ENTRIES)
        seen: list[str] = []

        async def _quote(db: object, bull_pen_id: int) -> dict[str, Decimal]:
            seen.append("quote")
            return {"AAPL": Decimal("190.00")}

        async def _lock(db: object, bull_pen_id: int) -> BullPen:
            seen.append("lock")
            return room

        h.ranking.quote_room.side_effect = _quote
        h.rooms.get_room_for_update.side_effect = _lock

        result = await h.svc.settle_room(h.db, 7)

        assert result.success
        assert seen == ["quote", "lock"]
        h.ranking.collect_metrics.assert_awaited_once_with(
            h.db, room, {"AAPL": Decimal("190.00")}
        )

    async def test_completed_room_stays_completed(self) -> None:
        h = _Harness(_room("completed"), MEMBERS, ENTRIES)

        result = await h.svc.settle_room(h.db, 7)

        assert result.success
        h.rooms.update_state.assert_not_awaited()

    async def test_rake_reduces_payout(self) -> None:
        h = _Harness(_room(), MEMBERS, ENTRIES)
        h.repo.get_active_rake_config.return_value = RakeConfig(
            id=4, fee_type="percentage", fee_value=Decimal("5")
        )

        result = await h.svc.settle_room(h.db, 7)

        assert result.rake_amount == Decimal("1000.00")
        h.repo.insert_rake_collection.assert_awaited_once_with(
            h.db, 7, 4, Decimal("1000.00"), Decimal("20000.00")
        )
        assert h.ledger.credit.await_args.args[2] == Decimal("19000.00")

    async def test_achievement_failure_is_isolated(self) -> None:
        h = _Harness(_room(), MEMBERS, ENTRIES)

        async def _evaluate(db: object, room: BullPen, entry: RankingEntry) -> list[StarEvent]:
            if entry.user_id == "bob":
                raise RuntimeError("star table unavailable")
            if entry.user_id == "alice":
                return [_star("alice", 100, 7), _star("alice", 10, None)]
            return []

        h.achievements.evaluate_and_award.side_effect = _evaluate

        result = await h.svc.settle_room(h.db, 7)

        assert result.success
        assert result.settled_count == 3
        rows = h.snapshot_rows()
        assert len(rows) == 3
        # only room-scoped stars show up on the room snapshot
        assert {r["user_id"]: r["stars"] for r in rows} == {"alice": 100, "bob": 0, "host": 0}
        assert h.db.begin_nested.call_count == 3
        h.db.commit.assert_awaited_once()

    async def test_pending_members_refunded_first(self) -> None:
        members = [*MEMBERS, _member("dan", status="pending", mid=9)]
        h = _Harness(_room(), members, ENTRIES)

        await h.svc.settle_room(h.db, 7)

        first = h.ledger.credit.await_args_list[0]
        assert first.args[1] == "dan"
        assert first.kwargs["operation_type"] == "ROOM_REJECTION_REFUND"
        assert first.kwargs["idempotency_key"] == "rejection-7-dan"
        h.rooms.update_membership_status.assert_awaited_once_with(h.db, 9, "left")

    async def test_already_settled_replays_count(self) -> None:
        h = _Harness(_room("completed", settled=True), MEMBERS, ENTRIES)
        h.snapshots.count_latest.return_value = 3

        result = await h.svc.settle_room(h.db, 7)

        assert result.success
        assert result.already_settled
        assert result.settled_count == 3
        h.ledger.credit.assert_not_awaited()
        h.snapshots.insert_snapshots.assert_not_awaited()

    @pytest.mark.parametrize("state", ["draft", "scheduled", "archived"])
    async def test_not_settleable(self, state: str) -> None:
        h = _Harness(_room(state), MEMBERS, ENTRIES)
        with pytest.raises(RoomNotSettleableError):
            await h.svc.settle_room(h.db, 7)
        h.db.rollback.assert_awaited_once()

    async def test_cancelled_room_not_settleable(self) -> None:
        h = _Harness(_room("active", cancelled=True), MEMBERS, ENTRIES)
        with pytest.raises(RoomNotSettleableError):
            await h.svc.settle_room(h.db, 7)

    async def test_missing_room(self) -> None:
        h = _Harness(_room(), MEMBERS, ENTRIES)
        h.rooms.get_room_for_update.return_value = None
        with pytest.raises(RoomNotFoundError):
            await h.svc.settle_room(h.db, 7)

    async def test_hard_failure_rolls_back_and_reports(self) -> None:
        h = _Harness(_room(), MEMBERS, ENTRIES)
        h.snapshots.insert_snapshots.side_effect = RuntimeError("disk full")

        result = await h.svc.settle_room(h.db, 7)

        assert not result.success
        assert result.error == "disk full"
        assert result.settled_count == 0
        h.db.rollback.assert_awaited_once()
        h.db.commit.assert_not_awaited()
        h.repo.mark_settled.assert_not_awaited()

    async def test_proportional_model(self) -> None:
        entries = [_entry("alice", 1, "300"), _entry("bob", 2, "100"), _entry("host", 3, "-5")]
        h = _Harness(_room(), MEMBERS, entries, payout_model="proportional")

        result = await h.svc.settle_room(h.db, 7)

        assert [p.amount for p in result.payouts] == [
            Decimal("15000.00"), Decimal("5000.00"), Decimal("0"),
        ]
        assert h.ledger.credit.await_count == 2
