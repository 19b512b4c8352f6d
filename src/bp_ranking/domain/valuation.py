"""Portfolio valuation: portfolio_value = cash + sum(qty * price) per member."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal

from src.bp_common.datetime_utils import seconds_between
from src.bp_common.money import ZERO, round_money
from src.bp_order.domain.models import Position
from src.bp_ranking.domain.scoring import MemberMetrics
from src.bp_room.domain.models import Membership

PCT_QUANT = Decimal("0.0001")
_SECONDS_PER_DAY = 86400


def portfolio_value(
    cash: Decimal, positions: Sequence[Position], prices: Mapping[str, Decimal]
) -> Decimal:
    """Positions without a price are valued at their average cost."""
    total = cash
    for p in positions:
        total += p.market_value(prices.get(p.symbol, p.avg_cost))
    return round_money(total)


def pnl(value: Decimal, starting_cash: Decimal) -> tuple[Decimal, Decimal]:
    """(pnl_abs, pnl_pct): pnl(Decimal('1100'), Decimal('1000')) -> (100.00, 10.0000)."""
    pnl_abs = round_money(value - starting_cash)
    if starting_cash <= 0:
        return pnl_abs, ZERO
    pnl_pct = (pnl_abs / starting_cash * 100).quantize(PCT_QUANT)
    return pnl_abs, pnl_pct


def account_age_days(created_at: datetime | None, now: datetime) -> int:
    if created_at is None:
        return 0
    return max(0, int(seconds_between(created_at, now) // _SECONDS_PER_DAY))


def build_member_metrics(
    members: Sequence[Membership],
    positions: Sequence[Position],
    prices: Mapping[str, Decimal],
    starting_cash: Decimal,
    *,
    room_stars: Mapping[str, int] | None = None,
    trade_counts: Mapping[str, int] | None = None,
    account_created: Mapping[str, datetime] | None = None,
    now: datetime,
) -> list[MemberMetrics]:
    by_user: dict[str, list[Position]] = {}
    for p in positions:
        by_user.setdefault(p.user_id, []).append(p)

    stars = room_stars or {}
    trades = trade_counts or {}
    created = account_created or {}

    metrics = []
    for m in members:
        value = portfolio_value(m.cash, by_user.get(m.user_id, []), prices)
        pnl_abs, pnl_pct = pnl(value, starting_cash)
        metrics.append(
            MemberMetrics(
                user_id=m.user_id,
                cash=m.cash,
                portfolio_value=value,
                pnl_abs=pnl_abs,
                pnl_pct=pnl_pct,
                room_stars=stars.get(m.user_id, 0),
                trade_count=trades.get(m.user_id, 0),
                account_age_days=account_age_days(created.get(m.user_id), now),
            )
        )
    return metrics
