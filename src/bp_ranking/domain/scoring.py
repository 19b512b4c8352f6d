"""Composite scoring and deterministic tie-breaking for room leaderboards.

Composite score = w_return * norm(pnl_pct) + w_pnl * norm(pnl_abs) + w_stars * norm(room_stars)
with each metric min-max normalized across the room's cohort.

Tie-break order (each applied only when every earlier field is exactly equal):
  score desc, pnl_pct desc, pnl_abs desc, room_stars desc, trade_count desc,
  account_age_days desc, user_id asc
"""

from dataclasses import dataclass, replace
from decimal import Decimal

from config.settings import settings
from src.bp_common.errors import InvalidRankingWeightsError

_WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class RankingWeights:
    w_return: float = 0.5
    w_pnl: float = 0.2
    w_stars: float = 0.3

    @property
    def total(self) -> float:
        return self.w_return + self.w_pnl + self.w_stars

    def validate(self) -> "RankingWeights":
        if abs(self.total - 1.0) > _WEIGHT_TOLERANCE:
            raise InvalidRankingWeightsError(self.total)
        return self

    @classmethod
    def from_settings(cls) -> "RankingWeights":
        return cls(
            w_return=settings.RANKING_WEIGHT_RETURN,
            w_pnl=settings.RANKING_WEIGHT_PNL,
            w_stars=settings.RANKING_WEIGHT_STARS,
        ).validate()


@dataclass(frozen=True)
class MemberMetrics:
    """Raw per-member inputs to ranking."""

    user_id: str
    cash: Decimal
    portfolio_value: Decimal
    pnl_abs: Decimal
    pnl_pct: Decimal
    room_stars: int = 0
    trade_count: int = 0
    account_age_days: int = 0


@dataclass(frozen=True)
class RankingEntry:
    user_id: str
    score: float
    pnl_pct: Decimal
    pnl_abs: Decimal
    room_stars: int
    trade_count: int
    account_age_days: int
    portfolio_value: Decimal
    norm_return: float = 0.0
    norm_pnl: float = 0.0
    norm_stars: float = 0.0
    rank: int = 0


def normalize_metric(value: float, min_value: float, max_value: float) -> float:
    """Linear scale to [0, 1]; 0.5 when the cohort has a single distinct value."""
    if max_value == min_value:
        return 0.5
    return (value - min_value) / (max_value - min_value)


def compute_composite_score(
    norm_return: float,
    norm_pnl: float,
    norm_stars: float,
    weights: RankingWeights | None = None,
) -> float:
    """Weighted sum. Weights are validated where they are built, not here."""
    w = weights or RankingWeights()
    return w.w_return * norm_return + w.w_pnl * norm_pnl + w.w_stars * norm_stars


def _tie_break_key(entry: RankingEntry) -> tuple:
    return (
        -entry.score,
        -entry.pnl_pct,
        -entry.pnl_abs,
        -entry.room_stars,
        -entry.trade_count,
        -entry.account_age_days,
        entry.user_id,
    )


def apply_tie_breakers(entries: list[RankingEntry]) -> list[RankingEntry]:
    """Return a new list in leaderboard order with rank = position + 1."""
    ordered = sorted(entries, key=_tie_break_key)
    return [replace(entry, rank=index + 1) for index, entry in enumerate(ordered)]


def rank_entries(
    metrics: list[MemberMetrics], weights: RankingWeights | None = None
) -> list[RankingEntry]:
    """Normalize across the cohort, score, tie-break and assign ranks."""
    if not metrics:
        return []
    w = weights or RankingWeights()
    returns = [float(m.pnl_pct) for m in metrics]
    pnls = [float(m.pnl_abs) for m in metrics]
    stars = [float(m.room_stars) for m in metrics]

    entries = []
    for m in metrics:
        norm_return = normalize_metric(float(m.pnl_pct), min(returns), max(returns))
        norm_pnl = normalize_metric(float(m.pnl_abs), min(pnls), max(pnls))
        norm_stars = normalize_metric(float(m.room_stars), min(stars), max(stars))
        entries.append(
            RankingEntry(
                user_id=m.user_id,
                score=compute_composite_score(norm_return, norm_pnl, norm_stars, w),
                pnl_pct=m.pnl_pct,
                pnl_abs=m.pnl_abs,
                room_stars=m.room_stars,
                trade_count=m.trade_count,
                account_age_days=m.account_age_days,
                portfolio_value=m.portfolio_value,
                norm_return=norm_return,
                norm_pnl=norm_pnl,
                norm_stars=norm_stars,
            )
        )
    return apply_tie_breakers(entries)
