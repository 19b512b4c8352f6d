"""OrderExecutionEngine: validate, price and fill one order atomically.

Order of work for place_order:
  1. cheap reads (no transaction side effects): room tradable, caller is an
     active member, fractional quantity allowed
  2. price resolution (may hit Redis and the quote provider)
  3. one transaction: lock membership, lock position, decide, write the order
     row, move cash and shares, commit

Business rejections (INSUFFICIENT_CASH / INSUFFICIENT_SHARES) are persisted as
rejected orders and returned as values, never raised.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import OrderStatus
from src.bp_common.errors import (
    FractionalSharesNotAllowedError,
    NotActiveMemberError,
    RoomNotFoundError,
    RoomNotTradableError,
)
from src.bp_common.money import is_whole
from src.bp_order.application.price_resolver import PriceResolver
from src.bp_order.application.schemas import (
    OrderItem,
    PlaceOrderRequest,
    PlaceOrderResponse,
    PositionView,
)
from src.bp_order.domain.decision import decide_fill
from src.bp_order.domain.models import OrderResult, Position
from src.bp_order.domain.repository import OrderRepositoryProtocol
from src.bp_order.infrastructure.persistence import OrderRepository
from src.bp_room.domain.models import BullPen
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.domain.state_machine import TRADABLE_STATES
from src.bp_room.infrastructure.persistence import RoomRepository

logger = logging.getLogger(__name__)

DEFAULT_ORDER_LIST_LIMIT = 100


class OrderExecutionEngine:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        room_repo: RoomRepositoryProtocol | None = None,
        prices: PriceResolver | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._rooms: RoomRepositoryProtocol = room_repo or RoomRepository()
        self._prices = prices or PriceResolver()

    async def place_order(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, req: PlaceOrderRequest
    ) -> PlaceOrderResponse:
        result = await self.execute(db, bull_pen_id, user_id, req)
        return PlaceOrderResponse.from_result(result)

    async def execute(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, req: PlaceOrderRequest
    ) -> OrderResult:
        room = await self._check_tradable(db, bull_pen_id, user_id)
        if not room.allow_fractional and not is_whole(req.qty):
            raise FractionalSharesNotAllowedError(bull_pen_id)

        price = await self._prices.effective_price(req.symbol, req.order_type, req.limit_price)

        try:
            membership = await self._rooms.get_membership_for_update(db, bull_pen_id, user_id)
            # status may have changed between the cheap read and the lock
            if membership is None or not membership.is_active:
                raise NotActiveMemberError(bull_pen_id, user_id)
            position = await self._repo.get_position_for_update(
                db, bull_pen_id, user_id, req.symbol
            )
            decision = decide_fill(req.side, membership.cash, position, req.qty, price)

            if not decision.accepted:
                order = await self._repo.insert_order(
                    db,
                    bull_pen_id=bull_pen_id,
                    user_id=user_id,
                    symbol=req.symbol,
                    side=req.side,
                    order_type=req.order_type,
                    qty=req.qty,
                    limit_price=req.limit_price,
                    status=OrderStatus.REJECTED.value,
                    rejection_reason=decision.rejection_reason,
                )
                await db.commit()
                logger.info(
                    "Order %d rejected: room=%d user=%s %s %s x%s (%s)",
                    order.id, bull_pen_id, user_id, req.side, req.symbol, req.qty,
                    decision.rejection_reason,
                )
                return OrderResult(
                    order=order, fill_price=None, new_cash=membership.cash, new_position=position
                )

            order = await self._repo.insert_order(
                db,
                bull_pen_id=bull_pen_id,
                user_id=user_id,
                symbol=req.symbol,
                side=req.side,
                order_type=req.order_type,
                qty=req.qty,
                limit_price=req.limit_price,
                status=OrderStatus.NEW.value,
            )
            await self._repo.update_member_cash(db, membership.id, decision.cash_after)
            new_position = await self._apply_position(
                db, bull_pen_id, user_id, req.symbol, position, decision.position_qty,
                decision.position_avg_cost,
            )
            order = await self._repo.mark_filled(db, order.id, req.qty, price)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Order %d filled: room=%d user=%s %s %s x%s @ %s, cash %s -> %s",
            order.id, bull_pen_id, user_id, req.side, req.symbol, req.qty, price,
            membership.cash, decision.cash_after,
        )
        return OrderResult(
            order=order, fill_price=price, new_cash=decision.cash_after, new_position=new_position
        )

    async def list_orders(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str | None = None,
        limit: int = DEFAULT_ORDER_LIST_LIMIT,
    ) -> list[OrderItem]:
        if await self._rooms.get_room(db, bull_pen_id) is None:
            raise RoomNotFoundError(bull_pen_id)
        orders = await self._repo.list_orders(db, bull_pen_id, user_id, limit)
        return [OrderItem.from_domain(o) for o in orders]

    async def list_positions(
        self, db: AsyncSession, bull_pen_id: int, user_id: str | None = None
    ) -> list[PositionView]:
        if await self._rooms.get_room(db, bull_pen_id) is None:
            raise RoomNotFoundError(bull_pen_id)
        positions = await self._repo.list_positions(db, bull_pen_id, user_id)
        return [PositionView.from_domain(p) for p in positions]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check_tradable(self, db: AsyncSession, bull_pen_id: int, user_id: str) -> BullPen:
        room = await self._rooms.get_room(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        if room.state not in TRADABLE_STATES or room.is_cancelled:
            raise RoomNotTradableError(bull_pen_id, room.state)
        membership = await self._rooms.get_membership(db, bull_pen_id, user_id)
        if membership is None or not membership.is_active:
            raise NotActiveMemberError(bull_pen_id, user_id)
        return room

    async def _apply_position(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        symbol: str,
        current: Position | None,
        qty: Decimal,
        avg_cost: Decimal | None,
    ) -> Position | None:
        if qty <= 0:
            if current is not None:
                await self._repo.delete_position(db, current.id)
            return None
        if avg_cost is None:
            raise ValueError("open position requires an average cost")
        return await self._repo.upsert_position(db, bull_pen_id, user_id, symbol, qty, avg_cost)
