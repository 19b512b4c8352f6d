"""Pydantic schemas for settlement, snapshots and star awards."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from src.bp_settlement.domain.models import LeaderboardSnapshot, SettlementResult, StarEvent


class PayoutItem(BaseModel):
    user_id: str
    rank: int
    amount: float


class SettlementResponse(BaseModel):
    success: bool
    settled_count: int
    error: str | None = None
    correlation_id: str | None = None
    pool: float = 0.0
    rake_amount: float = 0.0
    payouts: list[PayoutItem] = []
    already_settled: bool = False

    @classmethod
    def from_result(cls, result: SettlementResult) -> "SettlementResponse":
        return cls(
            success=result.success,
            settled_count=result.settled_count,
            error=result.error,
            correlation_id=result.correlation_id,
            pool=float(result.pool),
            rake_amount=float(result.rake_amount),
            payouts=[
                PayoutItem(user_id=p.user_id, rank=p.rank, amount=float(p.amount))
                for p in result.payouts
            ],
            already_settled=result.already_settled,
        )


class SnapshotRow(BaseModel):
    rank: int
    user_id: str
    stars: int
    score: float
    portfolio_value: float
    pnl_abs: float
    pnl_pct: float

    @classmethod
    def from_domain(cls, s: LeaderboardSnapshot) -> "SnapshotRow":
        return cls(
            rank=s.rank,
            user_id=s.user_id,
            stars=s.stars,
            score=s.score,
            portfolio_value=float(s.portfolio_value),
            pnl_abs=float(s.pnl_abs),
            pnl_pct=float(s.pnl_pct),
        )


class SnapshotSet(BaseModel):
    snapshot_at: datetime | None
    entries: list[SnapshotRow]


class SnapshotHistoryResponse(BaseModel):
    bull_pen_id: int
    snapshots: list[SnapshotSet]


class SnapshotCreatedResponse(BaseModel):
    bull_pen_id: int
    snapshot_count: int
    snapshot_at: datetime


class StarEventItem(BaseModel):
    id: int
    reason_code: str
    stars: int
    bull_pen_id: int | None
    season_id: int | None
    source: str
    meta: dict[str, Any]
    created_at: datetime | None

    @classmethod
    def from_domain(cls, e: StarEvent) -> "StarEventItem":
        return cls(
            id=e.id,
            reason_code=e.reason_code,
            stars=e.stars,
            bull_pen_id=e.bull_pen_id,
            season_id=e.season_id,
            source=e.source,
            meta=e.meta,
            created_at=e.created_at,
        )


class StarsResponse(BaseModel):
    user_id: str
    scope: str
    total_stars: int
    events: list[StarEventItem]
