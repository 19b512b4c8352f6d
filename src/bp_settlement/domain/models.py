"""Settlement domain models: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class RakeConfig:
    id: int
    fee_type: str                   # RakeFeeType value
    fee_value: Decimal
    min_pool: Decimal | None = None
    max_pool: Decimal | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Payout:
    user_id: str
    rank: int
    amount: Decimal


@dataclass
class StarEvent:
    id: int
    user_id: str
    reason_code: str
    stars: int
    bull_pen_id: int | None = None
    season_id: int | None = None
    source: str = "achievement"
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.stars <= 0:
            raise ValueError(f"stars must be > 0, got {self.stars}")


@dataclass(frozen=True)
class LeaderboardSnapshot:
    id: int
    bull_pen_id: int
    user_id: str
    rank: int
    stars: int
    score: float
    portfolio_value: Decimal
    pnl_abs: Decimal
    pnl_pct: Decimal
    snapshot_at: datetime


@dataclass
class SettlementResult:
    success: bool
    settled_count: int = 0
    error: str | None = None
    correlation_id: str | None = None
    pool: Decimal = Decimal("0")
    rake_amount: Decimal = Decimal("0")
    payouts: list[Payout] = field(default_factory=list)
    already_settled: bool = False
