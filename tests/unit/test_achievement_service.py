"""Unit tests for AchievementService and SnapshotService."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import settings
from src.bp_common.errors import InvalidStarQueryError, RoomNotFoundError
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_room.domain.models import BullPen
from src.bp_settlement.application.achievements import AchievementService
from src.bp_settlement.application.snapshots import SnapshotService, snapshot_rows
from src.bp_settlement.domain.models import LeaderboardSnapshot, StarEvent
from src.bp_settlement.domain.rules import FIRST_ROOM_JOIN, ROOM_FIRST_PLACE, THREE_STRAIGHT_WINS


def _room(season_id: int | None = None) -> BullPen:
    return BullPen(
        id=7, name="Room", host_user_id="host", state="active",
        starting_cash=Decimal("10000"), duration_sec=3600, max_players=10,
        season_id=season_id,
    )


def _entry(user_id: str = "alice", rank: int = 1, room_stars: int = 0) -> RankingEntry:
    return RankingEntry(
        user_id=user_id, score=0.8, pnl_pct=Decimal("5"), pnl_abs=Decimal("500"),
        room_stars=room_stars, trade_count=3, account_age_days=30,
        portfolio_value=Decimal("10500"), rank=rank,
    )


def _star_repo(rooms_played: int = 1, previous: list[int] | None = None) -> AsyncMock:
    repo = AsyncMock()
    repo.count_rooms_played.return_value = rooms_played
    repo.recent_final_ranks.return_value = previous or []
    repo.count_active_days.return_value = 0
    repo.season_standing.return_value = (None, 0)
    repo.has_campaign_action.return_value = False

    async def _insert(db: Any, **kwargs: Any) -> StarEvent:
        return StarEvent(id=1, **kwargs)

    repo.insert_star_event.side_effect = _insert
    return repo


class TestAwardStars:
    async def test_inserts_event(self) -> None:
        repo = _star_repo()
        svc = AchievementService(repo=repo)
        event = await svc.award_stars(AsyncMock(), "alice", "manual", 5, bull_pen_id=7)
        assert event is not None
        assert event.stars == 5
        kwargs = repo.insert_star_event.await_args.kwargs
        assert kwargs["bull_pen_id"] == 7
        assert kwargs["season_id"] is None
        assert kwargs["source"] == "achievement"

    async def test_duplicate_returns_none(self) -> None:
        repo = _star_repo()
        repo.insert_star_event.side_effect = None
        repo.insert_star_event.return_value = None
        svc = AchievementService(repo=repo)
        assert await svc.award_stars(AsyncMock(), "alice", "manual", 5) is None

    async def test_non_positive_stars_rejected(self) -> None:
        svc = AchievementService(repo=_star_repo())
        with pytest.raises(ValueError):
            await svc.award_stars(AsyncMock(), "alice", "manual", 0)


class TestAggregatedStars:
    async def test_lifetime(self) -> None:
        repo = _star_repo()
        repo.sum_stars.return_value = 42
        svc = AchievementService(repo=repo)
        assert await svc.get_aggregated_stars(AsyncMock(), "alice") == 42
        assert repo.sum_stars.await_args.kwargs == {}

    async def test_room_and_season_scopes(self) -> None:
        repo = _star_repo()
        repo.sum_stars.return_value = 3
        svc = AchievementService(repo=repo)
        db = AsyncMock()
        await svc.get_aggregated_stars(db, "alice", "room", bull_pen_id=7)
        assert repo.sum_stars.await_args.kwargs == {"bull_pen_id": 7}
        await svc.get_aggregated_stars(db, "alice", "season", season_id=2)
        assert repo.sum_stars.await_args.kwargs == {"season_id": 2}

    @pytest.mark.parametrize(
        ("scope", "kwargs"),
        [("room", {}), ("season", {}), ("weekly", {"bull_pen_id": 7})],
    )
    async def test_invalid_queries(self, scope: str, kwargs: dict[str, int]) -> None:
        svc = AchievementService(repo=_star_repo())
        with pytest.raises(InvalidStarQueryError):
            await svc.get_aggregated_stars(AsyncMock(), "alice", scope, **kwargs)


class TestBuildContext:
    async def test_no_season_no_campaign(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CAMPAIGN_CODE", None)
        repo = _star_repo(rooms_played=4, previous=[1, 2])
        svc = AchievementService(repo=repo)

        ctx = await svc.build_context(AsyncMock(), _room(), _entry(rank=2))

        assert ctx.rank == 2
        assert ctx.rooms_played == 4
        assert ctx.previous_ranks == (1, 2)
        assert ctx.season_rank is None
        repo.season_standing.assert_not_awaited()
        repo.has_campaign_action.assert_not_awaited()
        assert repo.recent_final_ranks.await_args.args[1:] == ("alice", 7, 2)

    async def test_season_and_campaign(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CAMPAIGN_CODE", "spring")
        monkeypatch.setattr(settings, "CAMPAIGN_ACTION", "share")
        repo = _star_repo()
        repo.season_standing.return_value = (2, 25)
        repo.has_campaign_action.return_value = True
        svc = AchievementService(repo=repo)

        ctx = await svc.build_context(AsyncMock(), _room(season_id=3), _entry())

        assert (ctx.season_id, ctx.season_rank, ctx.season_size) == (3, 2, 25)
        assert ctx.campaign == "spring"
        assert ctx.campaign_done
        assert repo.has_campaign_action.await_args.args[1:] == ("alice", "spring", "share")


class TestEvaluateAndAward:
    async def test_scopes_map_to_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CAMPAIGN_CODE", None)
        repo = _star_repo(rooms_played=1, previous=[1, 1])
        svc = AchievementService(repo=repo)

        events = await svc.evaluate_and_award(AsyncMock(), _room(season_id=3), _entry())

        by_code = {e.reason_code: e for e in events}
        assert set(by_code) == {FIRST_ROOM_JOIN, ROOM_FIRST_PLACE, THREE_STRAIGHT_WINS}
        # lifetime awards carry neither room nor season
        assert by_code[FIRST_ROOM_JOIN].bull_pen_id is None
        assert by_code[FIRST_ROOM_JOIN].season_id is None
        assert by_code[ROOM_FIRST_PLACE].bull_pen_id == 7
        assert by_code[ROOM_FIRST_PLACE].season_id is None
        assert by_code[ROOM_FIRST_PLACE].meta["settled_room"] == 7

    async def test_duplicates_are_dropped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CAMPAIGN_CODE", None)
        repo = _star_repo(rooms_played=1)

        async def _insert(db: Any, **kwargs: Any) -> StarEvent | None:
            if kwargs["reason_code"] == FIRST_ROOM_JOIN:
                return None
            return StarEvent(id=2, **kwargs)

        repo.insert_star_event.side_effect = _insert
        svc = AchievementService(repo=repo)

        events = await svc.evaluate_and_award(AsyncMock(), _room(), _entry())

        assert [e.reason_code for e in events] == [ROOM_FIRST_PLACE]

    async def test_nothing_for_mid_table(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CAMPAIGN_CODE", None)
        repo = _star_repo(rooms_played=3)
        svc = AchievementService(repo=repo)
        assert await svc.evaluate_and_award(AsyncMock(), _room(), _entry(rank=4)) == []
        repo.insert_star_event.assert_not_awaited()


def _snap(user_id: str, rank: int, at: datetime) -> LeaderboardSnapshot:
    return LeaderboardSnapshot(
        id=rank, bull_pen_id=7, user_id=user_id, rank=rank, stars=0, score=0.5,
        portfolio_value=Decimal("10000"), pnl_abs=Decimal("0"), pnl_pct=Decimal("0"),
        snapshot_at=at,
    )


class TestSnapshotService:
    def test_snapshot_rows_adds_extra_stars(self) -> None:
        at = datetime.now(UTC)
        rows = snapshot_rows(7, [_entry(room_stars=5), _entry("bob", 2)], at, {"alice": 100})
        assert [r["stars"] for r in rows] == [105, 0]
        assert all(r["snapshot_at"] == at for r in rows)

    async def test_create_snapshot(self) -> None:
        repo = AsyncMock()
        rooms = AsyncMock()
        rooms.get_room.return_value = _room()
        ranking = MagicMock()
        ranking.collect_metrics = AsyncMock(return_value=[])
        ranking.rank = MagicMock(return_value=[_entry(), _entry("bob", 2)])
        db = AsyncMock()
        svc = SnapshotService(repo=repo, room_repo=rooms, ranking=ranking)

        resp = await svc.create_snapshot(db, 7)

        assert resp.snapshot_count == 2
        assert len(repo.insert_snapshots.await_args.args[1]) == 2
        db.commit.assert_awaited_once()

    async def test_create_snapshot_missing_room(self) -> None:
        rooms = AsyncMock()
        rooms.get_room.return_value = None
        svc = SnapshotService(repo=AsyncMock(), room_repo=rooms, ranking=MagicMock())
        with pytest.raises(RoomNotFoundError):
            await svc.create_snapshot(AsyncMock(), 7)

    async def test_latest_empty(self) -> None:
        repo = AsyncMock()
        repo.get_latest.return_value = []
        svc = SnapshotService(repo=repo, room_repo=AsyncMock(), ranking=MagicMock())
        latest = await svc.get_latest_snapshot(AsyncMock(), 7)
        assert latest.snapshot_at is None
        assert latest.entries == []

    async def test_history_groups_by_timestamp(self) -> None:
        newer = datetime.now(UTC)
        older = newer - timedelta(hours=1)
        repo = AsyncMock()
        repo.get_history.return_value = [
            _snap("alice", 1, newer), _snap("bob", 2, newer),
            _snap("bob", 1, older), _snap("alice", 2, older),
        ]
        svc = SnapshotService(repo=repo, room_repo=AsyncMock(), ranking=MagicMock())

        history = await svc.get_snapshot_history(AsyncMock(), 7, limit=5)

        assert [s.snapshot_at for s in history.snapshots] == [newer, older]
        assert [e.user_id for e in history.snapshots[1].entries] == ["bob", "alice"]
        repo.get_history.assert_awaited_once()
