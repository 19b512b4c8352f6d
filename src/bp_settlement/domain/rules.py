"""Achievement catalog and pure rule evaluators.

Every award is keyed by (user_id, reason_code, bull_pen_id, season_id); the
scope below decides which of bull_pen_id / season_id are part of that key:
  room      awarded at most once per room
  season    at most once per season
  lifetime  at most once ever
"""

import math
from dataclasses import dataclass, field
from typing import Any

from src.bp_common.enums import StarScope

FIRST_ROOM_JOIN = "first_room_join"
ROOM_FIRST_PLACE = "room_first_place"
THREE_STRAIGHT_WINS = "three_straight_wins"
SEASON_TOP_PREFIX = "season_top_"
ACTIVITY_STREAK_PREFIX = "activity_streak_"
ROOMS_PLAYED_PREFIX = "rooms_played_"
CAMPAIGN_PREFIX = "campaign_"

ROOMS_PLAYED_MILESTONES: dict[int, int] = {10: 20, 50: 60, 100: 150}
STRAIGHT_WINS_REQUIRED = 3

STAR_VALUES: dict[str, int] = {
    FIRST_ROOM_JOIN: 10,
    ROOM_FIRST_PLACE: 100,
    THREE_STRAIGHT_WINS: 40,
    SEASON_TOP_PREFIX: 50,
    ACTIVITY_STREAK_PREFIX: 25,
    CAMPAIGN_PREFIX: 15,
}


def rooms_played_code(count: int) -> str:
    return f"{ROOMS_PLAYED_PREFIX}{count}"


def season_top_code(percentile: int) -> str:
    return f"{SEASON_TOP_PREFIX}{percentile}_percent"


def activity_streak_code(days: int) -> str:
    return f"{ACTIVITY_STREAK_PREFIX}{days}"


def campaign_code(code: str) -> str:
    return f"{CAMPAIGN_PREFIX}{code}"


@dataclass(frozen=True)
class AchievementAward:
    reason_code: str
    stars: int
    scope: str                      # StarScope value
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AchievementContext:
    """Everything the rules need about one member at settlement time."""

    user_id: str
    bull_pen_id: int
    rank: int
    rooms_played: int
    previous_ranks: tuple[int, ...] = ()    # most recent settled rooms first
    season_id: int | None = None
    season_rank: int | None = None
    season_size: int = 0
    season_percentile: int = 10
    active_days: int = 0
    streak_days: int = 7
    campaign: str | None = None
    campaign_done: bool = False


def qualifies_first_room_join(rooms_played: int) -> bool:
    return rooms_played == 1


def qualifies_room_first_place(rank: int) -> bool:
    return rank == 1


def qualifies_three_straight_wins(rank: int, previous_ranks: tuple[int, ...]) -> bool:
    """Current room plus the two previously settled rooms all finished first."""
    needed = STRAIGHT_WINS_REQUIRED - 1
    if rank != 1 or len(previous_ranks) < needed:
        return False
    return all(r == 1 for r in previous_ranks[:needed])


def reached_milestones(rooms_played: int) -> list[int]:
    return [n for n in sorted(ROOMS_PLAYED_MILESTONES) if rooms_played >= n]


def in_top_percentile(rank: int | None, total: int, percentile: int) -> bool:
    """top 10% of 25 users -> ranks 1..3 (ceil)."""
    if rank is None or total <= 0:
        return False
    return rank <= math.ceil(percentile / 100 * total)


def qualifies_activity_streak(active_days: int, required_days: int) -> bool:
    return required_days > 0 and active_days >= required_days


def evaluate_achievements(ctx: AchievementContext) -> list[AchievementAward]:
    awards: list[AchievementAward] = []
    if qualifies_first_room_join(ctx.rooms_played):
        awards.append(
            AchievementAward(
                FIRST_ROOM_JOIN, STAR_VALUES[FIRST_ROOM_JOIN], StarScope.LIFETIME.value
            )
        )
    if qualifies_room_first_place(ctx.rank):
        awards.append(
            AchievementAward(ROOM_FIRST_PLACE, STAR_VALUES[ROOM_FIRST_PLACE], StarScope.ROOM.value)
        )
    if qualifies_three_straight_wins(ctx.rank, ctx.previous_ranks):
        awards.append(
            AchievementAward(
                THREE_STRAIGHT_WINS, STAR_VALUES[THREE_STRAIGHT_WINS], StarScope.ROOM.value
            )
        )
    for count in reached_milestones(ctx.rooms_played):
        awards.append(
            AchievementAward(
                rooms_played_code(count),
                ROOMS_PLAYED_MILESTONES[count],
                StarScope.LIFETIME.value,
                {"rooms_played": ctx.rooms_played},
            )
        )
    if ctx.season_id is not None and in_top_percentile(
        ctx.season_rank, ctx.season_size, ctx.season_percentile
    ):
        awards.append(
            AchievementAward(
                season_top_code(ctx.season_percentile),
                STAR_VALUES[SEASON_TOP_PREFIX],
                StarScope.SEASON.value,
                {"season_rank": ctx.season_rank, "season_size": ctx.season_size},
            )
        )
    if qualifies_activity_streak(ctx.active_days, ctx.streak_days):
        awards.append(
            AchievementAward(
                activity_streak_code(ctx.streak_days),
                STAR_VALUES[ACTIVITY_STREAK_PREFIX],
                StarScope.LIFETIME.value,
            )
        )
    if ctx.campaign and ctx.campaign_done:
        awards.append(
            AchievementAward(
                campaign_code(ctx.campaign), STAR_VALUES[CAMPAIGN_PREFIX], StarScope.LIFETIME.value
            )
        )
    return awards
