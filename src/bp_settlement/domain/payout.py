"""Rake and payout arithmetic. Pure functions over Decimal money.

Payout models:
  winner-take-all  rank 1 receives the whole pool
  proportional     pool split by positive pnl_abs; nobody positive -> winner-take-all
  tiered           90% split 50/30/20 among ranks 1-3, 10% split evenly among the rest

Whatever rounding (or an unfilled tier) leaves over goes to rank 1, so the
payouts always sum to the pool exactly.
"""

from collections.abc import Sequence
from decimal import Decimal

from src.bp_common.enums import PayoutModel, RakeFeeType
from src.bp_common.money import ZERO, round_money
from src.bp_ranking.domain.scoring import RankingEntry
from src.bp_settlement.domain.models import Payout, RakeConfig

TIER_SHARES = {1: Decimal("0.50"), 2: Decimal("0.30"), 3: Decimal("0.20")}
TIER_POOL_SHARE = Decimal("0.90")
REST_POOL_SHARE = Decimal("0.10")
PAYOUT_TOLERANCE = Decimal("0.01")


def calculate_rake(pool: Decimal, config: RakeConfig | None) -> Decimal:
    """House fee for a pool; 0 when no config is active or the pool is outside bounds.

    percentage and tiered both take fee_value percent of the pool; fixed takes
    fee_value, capped at the pool.
    """
    if config is None or pool <= 0:
        return ZERO
    if config.min_pool is not None and pool < config.min_pool:
        return ZERO
    if config.max_pool is not None and pool > config.max_pool:
        return ZERO

    if config.fee_type == RakeFeeType.FIXED.value:
        rake = config.fee_value
    elif config.fee_type in (RakeFeeType.PERCENTAGE.value, RakeFeeType.TIERED.value):
        rake = pool * config.fee_value / 100
    else:
        raise ValueError(f"Unknown rake fee type: {config.fee_type}")
    return min(round_money(rake), pool)


def calculate_payouts(
    entries: Sequence[RankingEntry], pool: Decimal, model: str
) -> list[Payout]:
    """entries must already be in rank order (rank 1 first)."""
    if not entries:
        return []
    if model == PayoutModel.WINNER_TAKE_ALL.value:
        payouts = [
            Payout(e.user_id, e.rank, round_money(pool) if i == 0 else ZERO)
            for i, e in enumerate(entries)
        ]
    elif model == PayoutModel.PROPORTIONAL.value:
        positive = sum((max(ZERO, e.pnl_abs) for e in entries), ZERO)
        if positive <= 0:
            return calculate_payouts(entries, pool, PayoutModel.WINNER_TAKE_ALL.value)
        payouts = [
            Payout(e.user_id, e.rank, round_money(max(ZERO, e.pnl_abs) / positive * pool))
            for e in entries
        ]
    elif model == PayoutModel.TIERED.value:
        tier_pool = pool * TIER_POOL_SHARE
        rest_count = len(entries) - len(TIER_SHARES)
        rest_each = round_money(pool * REST_POOL_SHARE / rest_count) if rest_count > 0 else ZERO
        payouts = []
        for i, e in enumerate(entries):
            share = TIER_SHARES.get(i + 1)
            amount = round_money(tier_pool * share) if share is not None else rest_each
            payouts.append(Payout(e.user_id, e.rank, amount))
    else:
        raise ValueError(f"Unknown payout model: {model}")
    return adjust_for_rounding(payouts, pool)


def adjust_for_rounding(payouts: list[Payout], pool: Decimal) -> list[Payout]:
    """Give the residue (pool - sum) to rank 1."""
    if not payouts:
        return payouts
    residue = round_money(pool) - sum((p.amount for p in payouts), ZERO)
    if residue == 0:
        return payouts
    first = payouts[0]
    return [Payout(first.user_id, first.rank, first.amount + residue), *payouts[1:]]


def validate_payouts(
    payouts: Sequence[Payout], pool: Decimal, tolerance: Decimal = PAYOUT_TOLERANCE
) -> bool:
    total = sum((p.amount for p in payouts), ZERO)
    return abs(total - pool) <= tolerance and all(p.amount >= 0 for p in payouts)
