"""Pydantic schemas for order placement and order/position listing.

The public order surface speaks camelCase (limitPrice, orderId, newCash ...);
request fields accept either spelling, responses are dumped by alias.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.bp_order.domain.models import Order, OrderResult, Position

MAX_ORDER_QTY = Decimal("1000000")
MAX_LIMIT_PRICE = Decimal("1000000")
SYMBOL_MAX_LENGTH = 10

_SYMBOL_RE = re.compile(r"^[A-Z0-9][A-Z0-9.\-]{0,9}$")


class PlaceOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str = Field(..., min_length=1, max_length=SYMBOL_MAX_LENGTH)
    side: Literal["buy", "sell"]
    order_type: Literal["market", "limit"] = Field(..., alias="type")
    qty: Decimal = Field(..., gt=0, le=MAX_ORDER_QTY, decimal_places=6)
    limit_price: Decimal | None = Field(
        None, alias="limitPrice", gt=0, le=MAX_LIMIT_PRICE, decimal_places=6
    )

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        symbol = v.strip().upper()
        if not _SYMBOL_RE.match(symbol):
            raise ValueError("symbol must be 1-10 letters, digits, '.' or '-'")
        return symbol

    @model_validator(mode="after")
    def limit_needs_price(self) -> "PlaceOrderRequest":
        if self.order_type == "limit" and self.limit_price is None:
            raise ValueError("limitPrice is required for limit orders")
        return self


class PositionView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    bull_pen_id: int = Field(..., serialization_alias="bullPenId")
    user_id: str = Field(..., serialization_alias="userId")
    symbol: str
    qty: float
    avg_cost: float = Field(..., serialization_alias="avgCost")

    @classmethod
    def from_domain(cls, p: Position) -> "PositionView":
        return cls(
            id=p.id,
            bull_pen_id=p.bull_pen_id,
            user_id=p.user_id,
            symbol=p.symbol,
            qty=float(p.qty),
            avg_cost=float(p.avg_cost),
        )


class PlaceOrderResponse(BaseModel):
    order_id: int = Field(..., serialization_alias="orderId")
    status: str
    fill_price: float | None = Field(None, serialization_alias="fillPrice")
    new_cash: float = Field(..., serialization_alias="newCash")
    new_position: PositionView | None = Field(None, serialization_alias="newPosition")
    rejection_reason: str | None = Field(None, serialization_alias="rejectionReason")

    @classmethod
    def from_result(cls, result: OrderResult) -> "PlaceOrderResponse":
        return cls(
            order_id=result.order.id,
            status=result.status,
            fill_price=float(result.fill_price) if result.fill_price is not None else None,
            new_cash=float(result.new_cash),
            new_position=(
                PositionView.from_domain(result.new_position)
                if result.new_position is not None
                else None
            ),
            rejection_reason=result.rejection_reason,
        )


class OrderItem(BaseModel):
    id: int
    bull_pen_id: int = Field(..., serialization_alias="bullPenId")
    user_id: str = Field(..., serialization_alias="userId")
    symbol: str
    side: str
    order_type: str = Field(..., serialization_alias="type")
    qty: float
    limit_price: float | None = Field(None, serialization_alias="limitPrice")
    status: str
    rejection_reason: str | None = Field(None, serialization_alias="rejectionReason")
    filled_qty: float = Field(..., serialization_alias="filledQty")
    avg_fill_price: float | None = Field(None, serialization_alias="avgFillPrice")
    placed_at: datetime | None = Field(None, serialization_alias="placedAt")
    filled_at: datetime | None = Field(None, serialization_alias="filledAt")

    @classmethod
    def from_domain(cls, o: Order) -> "OrderItem":
        return cls(
            id=o.id,
            bull_pen_id=o.bull_pen_id,
            user_id=o.user_id,
            symbol=o.symbol,
            side=o.side,
            order_type=o.order_type,
            qty=float(o.qty),
            limit_price=float(o.limit_price) if o.limit_price is not None else None,
            status=o.status,
            rejection_reason=o.rejection_reason,
            filled_qty=float(o.filled_qty),
            avg_fill_price=float(o.avg_fill_price) if o.avg_fill_price is not None else None,
            placed_at=o.placed_at,
            filled_at=o.filled_at,
        )
