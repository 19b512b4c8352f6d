"""Repository and collaborator Protocols for bp_order."""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_order.domain.models import Order, Position, PriceQuote


class OrderRepositoryProtocol(Protocol):
    async def get_position_for_update(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, symbol: str
    ) -> Position | None: ...

    async def insert_order(
        self,
        db: AsyncSession,
        *,
        bull_pen_id: int,
        user_id: str,
        symbol: str,
        side: str,
        order_type: str,
        qty: Decimal,
        limit_price: Decimal | None,
        status: str,
        rejection_reason: str | None = None,
    ) -> Order: ...

    async def mark_filled(
        self, db: AsyncSession, order_id: int, filled_qty: Decimal, fill_price: Decimal
    ) -> Order: ...

    async def update_member_cash(
        self, db: AsyncSession, membership_id: int, cash: Decimal
    ) -> None: ...

    async def upsert_position(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        symbol: str,
        qty: Decimal,
        avg_cost: Decimal,
    ) -> Position: ...

    async def delete_position(self, db: AsyncSession, position_id: int) -> None: ...

    async def list_orders(
        self, db: AsyncSession, bull_pen_id: int, user_id: str | None, limit: int
    ) -> list[Order]: ...

    async def list_positions(
        self, db: AsyncSession, bull_pen_id: int, user_id: str | None = None
    ) -> list[Position]: ...

    async def count_filled_orders(
        self, db: AsyncSession, bull_pen_id: int
    ) -> dict[str, int]: ...


class QuoteSourceProtocol(Protocol):
    async def get_price(self, symbol: str) -> PriceQuote: ...


class QuoteCacheProtocol(Protocol):
    async def get(self, symbol: str) -> PriceQuote | None: ...

    async def set(self, quote: PriceQuote, ttl_seconds: int) -> None: ...
