"""Order domain models: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.bp_common.datetime_utils import seconds_between
from src.bp_common.enums import OrderStatus
from src.bp_common.money import ZERO


@dataclass
class Order:
    id: int
    bull_pen_id: int
    user_id: str
    symbol: str
    side: str                       # OrderSide value
    order_type: str                 # OrderType value
    qty: Decimal
    status: str = OrderStatus.NEW.value
    limit_price: Decimal | None = None
    rejection_reason: str | None = None
    filled_qty: Decimal = ZERO
    avg_fill_price: Decimal | None = None
    placed_at: datetime | None = None
    filled_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.qty <= 0:
            raise ValueError(f"qty must be > 0, got {self.qty}")


@dataclass
class Position:
    id: int
    bull_pen_id: int
    user_id: str
    symbol: str
    qty: Decimal
    avg_cost: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.qty < 0:
            raise ValueError(f"Position qty must be >= 0, got {self.qty}")
        if self.avg_cost < 0:
            raise ValueError(f"Position avg_cost must be >= 0, got {self.avg_cost}")

    def market_value(self, price: Decimal) -> Decimal:
        return self.qty * price


@dataclass(frozen=True)
class PriceQuote:
    """A price from the quote collaborator.

    as_of is the provider's timestamp for the price; fetched_at is when this
    service obtained it. Freshness is measured from fetched_at when known, so a
    weekend close price is not refetched on every order.
    """

    symbol: str
    price: Decimal
    as_of: datetime
    fetched_at: datetime | None = None

    def age_seconds(self, now: datetime) -> float:
        return seconds_between(self.fetched_at or self.as_of, now)

    def is_fresh(self, now: datetime, window_seconds: int) -> bool:
        return self.age_seconds(now) < window_seconds


@dataclass(frozen=True)
class FillDecision:
    """Outcome of evaluating one order against cash and position state.

    On acceptance, cash_after / position_qty / position_avg_cost are the values
    to persist; position_qty == 0 means the position row must be deleted.
    On rejection the numbers echo the unchanged inputs.
    """

    accepted: bool
    cash_after: Decimal
    position_qty: Decimal
    position_avg_cost: Decimal | None
    rejection_reason: str | None = None

    @property
    def closes_position(self) -> bool:
        return self.accepted and self.position_qty <= 0


@dataclass
class OrderResult:
    order: Order
    fill_price: Decimal | None
    new_cash: Decimal
    new_position: Position | None

    @property
    def status(self) -> str:
        return self.order.status

    @property
    def rejection_reason(self) -> str | None:
        return self.order.rejection_reason
