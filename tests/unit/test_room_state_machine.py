"""Tests for the bp_room lifecycle state machine."""

from datetime import UTC, datetime, timedelta

import pytest

from src.bp_common.enums import RoomState
from src.bp_common.errors import InvalidStateTransitionError
from src.bp_room.domain.state_machine import (
    assert_state_transition,
    calculate_room_state,
    can_complete_room,
    can_start_room,
    is_valid_state_transition,
    next_clock_state,
)

START = datetime(2026, 3, 1, 14, 0, tzinfo=UTC)


class TestTransitions:
    @pytest.mark.parametrize(
        ("src", "dst"),
        [
            ("draft", "scheduled"),
            ("scheduled", "active"),
            ("active", "completed"),
            ("completed", "archived"),
        ],
    )
    def test_single_forward_step_is_valid(self, src: str, dst: str) -> None:
        assert is_valid_state_transition(src, dst)

    @pytest.mark.parametrize(
        ("src", "dst"),
        [
            ("draft", "active"),        # skips scheduled
            ("active", "scheduled"),    # backwards
            ("completed", "completed"),
            ("archived", "draft"),
            ("draft", "bogus"),
        ],
    )
    def test_other_moves_are_invalid(self, src: str, dst: str) -> None:
        assert not is_valid_state_transition(src, dst)

    def test_assert_raises_with_both_states(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc:
            assert_state_transition("completed", "active")
        assert "completed -> active" in exc.value.message

    def test_accepts_enum_members(self) -> None:
        assert is_valid_state_transition(RoomState.DRAFT, RoomState.SCHEDULED)


class TestClock:
    def test_before_start_is_scheduled(self) -> None:
        now = START - timedelta(seconds=1)
        assert calculate_room_state(START, 3600, now) == RoomState.SCHEDULED

    def test_during_window_is_active(self) -> None:
        now = START + timedelta(minutes=30)
        assert calculate_room_state(START, 3600, now) == RoomState.ACTIVE

    def test_end_boundary_is_completed(self) -> None:
        now = START + timedelta(seconds=3600)
        assert calculate_room_state(START, 3600, now) == RoomState.COMPLETED

    def test_naive_start_treated_as_utc(self) -> None:
        naive = START.replace(tzinfo=None)
        assert calculate_room_state(naive, 60, START + timedelta(seconds=10)) == RoomState.ACTIVE

    def test_next_clock_state_moves_one_step(self) -> None:
        way_later = START + timedelta(days=1)
        assert next_clock_state("scheduled", START, 60, way_later) == RoomState.ACTIVE
        assert next_clock_state("active", START, 60, way_later) == RoomState.COMPLETED

    def test_next_clock_state_ignores_draft_and_completed(self) -> None:
        later = START + timedelta(days=1)
        assert next_clock_state("draft", START, 60, later) is None
        assert next_clock_state("completed", START, 60, later) is None

    def test_next_clock_state_nothing_due(self) -> None:
        assert next_clock_state("scheduled", START, 60, START - timedelta(hours=1)) is None

    def test_next_clock_state_without_start_time(self) -> None:
        assert next_clock_state("scheduled", None, 60, START) is None


class TestPreconditions:
    def test_start_needs_two_active_members(self) -> None:
        ok, why = can_start_room("scheduled", 1)
        assert not ok
        assert "2 active members" in (why or "")
        assert can_start_room("scheduled", 2) == (True, None)

    def test_start_needs_scheduled(self) -> None:
        ok, _ = can_start_room("draft", 5)
        assert not ok

    def test_complete_needs_elapsed_duration(self) -> None:
        ok, why = can_complete_room("active", START, 3600, START + timedelta(minutes=1))
        assert not ok
        assert why == "room duration has not elapsed"
        assert can_complete_room("active", START, 3600, START + timedelta(hours=2)) == (True, None)
