"""Pure fill decisions for buy/sell orders.

No I/O here: the engine loads the locked membership cash and position,
asks for a FillDecision, then persists whatever the decision says.
"""

from decimal import Decimal

from src.bp_common.enums import OrderSide, RejectionReason
from src.bp_common.money import ZERO, round_money_down, round_money_up, round_qty
from src.bp_order.domain.models import FillDecision, Position


def buy_cost(qty: Decimal, price: Decimal) -> Decimal:
    """Cash debited for a buy: buy_cost(0.004, 1) -> Decimal('0.01')."""
    return round_money_up(qty * price)


def sell_proceeds(qty: Decimal, price: Decimal) -> Decimal:
    """Cash credited for a sell: sell_proceeds(0.004, 1) -> Decimal('0.00')."""
    return round_money_down(qty * price)


def weighted_average_cost(
    old_qty: Decimal, old_avg: Decimal, qty: Decimal, price: Decimal
) -> Decimal:
    """new_avg = (old_qty*old_avg + qty*price) / (old_qty + qty).

    weighted_average_cost(10, 100, 10, 120) -> Decimal('110.000000')
    """
    total_qty = old_qty + qty
    if total_qty <= 0:
        raise ValueError(f"total quantity must be > 0, got {total_qty}")
    return round_qty((old_qty * old_avg + qty * price) / total_qty)


def decide_buy(
    cash: Decimal, position: Position | None, qty: Decimal, price: Decimal
) -> FillDecision:
    held_qty = position.qty if position is not None else ZERO
    held_avg = position.avg_cost if position is not None else None
    cost = buy_cost(qty, price)
    # cost >= qty*price, so this also rejects any sub-cent overdraw
    if cost > cash:
        return FillDecision(
            accepted=False,
            cash_after=cash,
            position_qty=held_qty,
            position_avg_cost=held_avg,
            rejection_reason=RejectionReason.INSUFFICIENT_CASH.value,
        )
    if position is None:
        new_avg = round_qty(price)
    else:
        new_avg = weighted_average_cost(position.qty, position.avg_cost, qty, price)
    return FillDecision(
        accepted=True,
        cash_after=cash - cost,
        position_qty=round_qty(held_qty + qty),
        position_avg_cost=new_avg,
    )


def decide_sell(
    cash: Decimal, position: Position | None, qty: Decimal, price: Decimal
) -> FillDecision:
    if position is None or position.qty < qty:
        return FillDecision(
            accepted=False,
            cash_after=cash,
            position_qty=position.qty if position is not None else ZERO,
            position_avg_cost=position.avg_cost if position is not None else None,
            rejection_reason=RejectionReason.INSUFFICIENT_SHARES.value,
        )
    remaining = round_qty(position.qty - qty)
    if remaining <= 0:
        # closed positions do not retain their average cost
        return FillDecision(
            accepted=True,
            cash_after=cash + sell_proceeds(qty, price),
            position_qty=ZERO,
            position_avg_cost=None,
        )
    return FillDecision(
        accepted=True,
        cash_after=cash + sell_proceeds(qty, price),
        position_qty=remaining,
        position_avg_cost=position.avg_cost,
    )


def decide_fill(
    side: str, cash: Decimal, position: Position | None, qty: Decimal, price: Decimal
) -> FillDecision:
    if side == OrderSide.BUY.value:
        return decide_buy(cash, position, qty, price)
    if side == OrderSide.SELL.value:
        return decide_sell(cash, position, qty, price)
    raise ValueError(f"Unknown order side: {side}")
