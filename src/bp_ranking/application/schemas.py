"""Pydantic schemas for leaderboard responses."""

from pydantic import BaseModel

from src.bp_ranking.domain.scoring import RankingEntry


class LeaderboardRow(BaseModel):
    rank: int
    user_id: str
    score: float
    portfolio_value: float
    pnl_abs: float
    pnl_pct: float
    stars: int
    trade_count: int

    @classmethod
    def from_entry(cls, entry: RankingEntry) -> "LeaderboardRow":
        return cls(
            rank=entry.rank,
            user_id=entry.user_id,
            score=round(entry.score, 6),
            portfolio_value=float(entry.portfolio_value),
            pnl_abs=float(entry.pnl_abs),
            pnl_pct=float(entry.pnl_pct),
            stars=entry.room_stars,
            trade_count=entry.trade_count,
        )


class LiveLeaderboardResponse(BaseModel):
    bull_pen_id: int
    state: str
    entries: list[LeaderboardRow]
