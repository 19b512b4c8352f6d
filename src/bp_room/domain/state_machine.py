"""Room lifecycle state machine.

    draft → scheduled → active → completed → archived

A transition is valid only when it advances exactly one step. Clock-driven
progression (scheduled→active at start_time, active→completed at end) goes
through the same check, one step per call.
"""

from datetime import datetime, timedelta

from src.bp_common.datetime_utils import ensure_utc
from src.bp_common.enums import RoomState
from src.bp_common.errors import InvalidStateTransitionError

ROOM_STATE_ORDER: tuple[RoomState, ...] = (
    RoomState.DRAFT,
    RoomState.SCHEDULED,
    RoomState.ACTIVE,
    RoomState.COMPLETED,
    RoomState.ARCHIVED,
)

TRADABLE_STATES = frozenset(
    {RoomState.DRAFT.value, RoomState.SCHEDULED.value, RoomState.ACTIVE.value}
)
JOINABLE_STATES = TRADABLE_STATES
EDITABLE_STATES = frozenset({RoomState.DRAFT.value, RoomState.SCHEDULED.value})
CANCELLABLE_STATES = EDITABLE_STATES
SETTLEABLE_STATES = frozenset({RoomState.ACTIVE.value, RoomState.COMPLETED.value})

MIN_PLAYERS_TO_START = 2

_INDEX = {state.value: i for i, state in enumerate(ROOM_STATE_ORDER)}


def is_valid_state_transition(from_state: str, to_state: str) -> bool:
    """True iff `to_state` is the immediate successor of `from_state`."""
    src = _INDEX.get(str(from_state))
    dst = _INDEX.get(str(to_state))
    if src is None or dst is None:
        return False
    return dst == src + 1


def assert_state_transition(from_state: str, to_state: str) -> None:
    if not is_valid_state_transition(from_state, to_state):
        raise InvalidStateTransitionError(str(from_state), str(to_state))


def calculate_room_state(start_time: datetime, duration_sec: int, now: datetime) -> RoomState:
    """Clock view of a started room: scheduled before start, active until end, then completed."""
    start = ensure_utc(start_time)
    current = ensure_utc(now)
    if current < start:
        return RoomState.SCHEDULED
    if current < start + timedelta(seconds=duration_sec):
        return RoomState.ACTIVE
    return RoomState.COMPLETED


def next_clock_state(
    state: str, start_time: datetime | None, duration_sec: int, now: datetime
) -> RoomState | None:
    """Single step the clock allows from `state`, or None when nothing is due.

    Only scheduled and active rooms follow the clock; draft rooms wait for the
    host and completed rooms wait for settlement/cleanup.
    """
    if start_time is None or state not in (RoomState.SCHEDULED.value, RoomState.ACTIVE.value):
        return None
    target = calculate_room_state(start_time, duration_sec, now)
    if _INDEX[target.value] <= _INDEX[state]:
        return None
    return ROOM_STATE_ORDER[_INDEX[state] + 1]


def can_start_room(state: str, active_member_count: int) -> tuple[bool, str | None]:
    if state != RoomState.SCHEDULED.value:
        return False, f"room must be scheduled (state={state})"
    if active_member_count < MIN_PLAYERS_TO_START:
        return False, f"at least {MIN_PLAYERS_TO_START} active members required"
    return True, None


def can_complete_room(
    state: str, start_time: datetime | None, duration_sec: int, now: datetime
) -> tuple[bool, str | None]:
    if state != RoomState.ACTIVE.value:
        return False, f"room must be active (state={state})"
    if start_time is None:
        return False, "room has no start time"
    if calculate_room_state(start_time, duration_sec, now) != RoomState.COMPLETED:
        return False, "room duration has not elapsed"
    return True, None
