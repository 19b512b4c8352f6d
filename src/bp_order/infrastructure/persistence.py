"""OrderRepository: raw text() SQL over bull_pen_orders, bull_pen_positions
and the cash column of bull_pen_memberships.

Position rows are locked with FOR UPDATE; the membership lock is taken through
RoomRepository.get_membership_for_update in the same transaction.
"""

from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import OrderStatus
from src.bp_common.errors import InternalError
from src.bp_order.domain.models import Order, Position

_ORDER_COLUMNS = """
    id, bull_pen_id, user_id, symbol, side, type, qty, limit_price, status,
    rejection_reason, filled_qty, avg_fill_price, placed_at, filled_at
"""

_POSITION_COLUMNS = "id, bull_pen_id, user_id, symbol, qty, avg_cost, created_at, updated_at"

_GET_POSITION_FOR_UPDATE_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM bull_pen_positions
    WHERE bull_pen_id = :bull_pen_id AND user_id = :user_id AND symbol = :symbol
    FOR UPDATE
""")

_INSERT_ORDER_SQL = text(f"""
    INSERT INTO bull_pen_orders
        (bull_pen_id, user_id, symbol, side, type, qty, limit_price, status, rejection_reason)
    VALUES
        (:bull_pen_id, :user_id, :symbol, :side, :type, :qty, :limit_price, :status,
         :rejection_reason)
    RETURNING {_ORDER_COLUMNS}
""")

_MARK_FILLED_SQL = text(f"""
    UPDATE bull_pen_orders
    SET status = '{OrderStatus.FILLED.value}',
        filled_qty = :filled_qty,
        avg_fill_price = :avg_fill_price,
        filled_at = NOW()
    WHERE id = :id
    RETURNING {_ORDER_COLUMNS}
""")

_UPDATE_MEMBER_CASH_SQL = text("""
    UPDATE bull_pen_memberships SET cash = :cash, updated_at = NOW() WHERE id = :id
""")

_UPSERT_POSITION_SQL = text(f"""
    INSERT INTO bull_pen_positions (bull_pen_id, user_id, symbol, qty, avg_cost)
    VALUES (:bull_pen_id, :user_id, :symbol, :qty, :avg_cost)
    ON CONFLICT (bull_pen_id, user_id, symbol) DO UPDATE
    SET qty = EXCLUDED.qty,
        avg_cost = EXCLUDED.avg_cost,
        updated_at = NOW()
    RETURNING {_POSITION_COLUMNS}
""")

_DELETE_POSITION_SQL = text("DELETE FROM bull_pen_positions WHERE id = :id")

_LIST_ORDERS_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM bull_pen_orders
    WHERE bull_pen_id = :bull_pen_id
      AND (CAST(:user_id AS TEXT) IS NULL OR user_id = :user_id)
    ORDER BY placed_at DESC, id DESC
    LIMIT :limit
""")

_LIST_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM bull_pen_positions
    WHERE bull_pen_id = :bull_pen_id
      AND (CAST(:user_id AS TEXT) IS NULL OR user_id = :user_id)
    ORDER BY user_id ASC, symbol ASC
""")

_COUNT_FILLED_SQL = text(f"""
    SELECT user_id, COUNT(*) AS trade_count
    FROM bull_pen_orders
    WHERE bull_pen_id = :bull_pen_id AND status = '{OrderStatus.FILLED.value}'
    GROUP BY user_id
""")


def _optional_decimal(value: object) -> Decimal | None:
    return Decimal(value) if value is not None else None  # type: ignore[arg-type]


def _row_to_order(row: object) -> Order:
    return Order(
        id=row.id,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        symbol=row.symbol,  # type: ignore[attr-defined]
        side=row.side,  # type: ignore[attr-defined]
        order_type=row.type,  # type: ignore[attr-defined]
        qty=Decimal(row.qty),  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        limit_price=_optional_decimal(row.limit_price),  # type: ignore[attr-defined]
        rejection_reason=row.rejection_reason,  # type: ignore[attr-defined]
        filled_qty=Decimal(row.filled_qty),  # type: ignore[attr-defined]
        avg_fill_price=_optional_decimal(row.avg_fill_price),  # type: ignore[attr-defined]
        placed_at=row.placed_at,  # type: ignore[attr-defined]
        filled_at=row.filled_at,  # type: ignore[attr-defined]
    )


def _row_to_position(row: object) -> Position:
    return Position(
        id=row.id,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        symbol=row.symbol,  # type: ignore[attr-defined]
        qty=Decimal(row.qty),  # type: ignore[attr-defined]
        avg_cost=Decimal(row.avg_cost),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class OrderRepository:
    async def get_position_for_update(
        self, db: AsyncSession, bull_pen_id: int, user_id: str, symbol: str
    ) -> Position | None:
        row = (
            await db.execute(
                _GET_POSITION_FOR_UPDATE_SQL,
                {"bull_pen_id": bull_pen_id, "user_id": user_id, "symbol": symbol},
            )
        ).fetchone()
        return _row_to_position(row) if row else None

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
    ) -> Order:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "bull_pen_id": bull_pen_id,
                "user_id": user_id,
                "symbol": symbol,
                "side": side,
                "type": order_type,
                "qty": qty,
                "limit_price": limit_price,
                "status": status,
                "rejection_reason": rejection_reason,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("bull_pen_orders insert returned no rows")
        return _row_to_order(row)

    async def mark_filled(
        self, db: AsyncSession, order_id: int, filled_qty: Decimal, fill_price: Decimal
    ) -> Order:
        result = await db.execute(
            _MARK_FILLED_SQL,
            {"id": order_id, "filled_qty": filled_qty, "avg_fill_price": fill_price},
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"order {order_id} vanished before fill")
        return _row_to_order(row)

    async def update_member_cash(
        self, db: AsyncSession, membership_id: int, cash: Decimal
    ) -> None:
        await db.execute(_UPDATE_MEMBER_CASH_SQL, {"id": membership_id, "cash": cash})

    async def upsert_position(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        symbol: str,
        qty: Decimal,
        avg_cost: Decimal,
    ) -> Position:
        result = await db.execute(
            _UPSERT_POSITION_SQL,
            {
                "bull_pen_id": bull_pen_id,
                "user_id": user_id,
                "symbol": symbol,
                "qty": qty,
                "avg_cost": avg_cost,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("bull_pen_positions upsert returned no rows")
        return _row_to_position(row)

    async def delete_position(self, db: AsyncSession, position_id: int) -> None:
        await db.execute(_DELETE_POSITION_SQL, {"id": position_id})

    async def list_orders(
        self, db: AsyncSession, bull_pen_id: int, user_id: str | None, limit: int
    ) -> list[Order]:
        result = await db.execute(
            _LIST_ORDERS_SQL, {"bull_pen_id": bull_pen_id, "user_id": user_id, "limit": limit}
        )
        return [_row_to_order(r) for r in result.fetchall()]

    async def list_positions(
        self, db: AsyncSession, bull_pen_id: int, user_id: str | None = None
    ) -> list[Position]:
        result = await db.execute(
            _LIST_POSITIONS_SQL, {"bull_pen_id": bull_pen_id, "user_id": user_id}
        )
        return [_row_to_position(r) for r in result.fetchall()]

    async def count_filled_orders(self, db: AsyncSession, bull_pen_id: int) -> dict[str, int]:
        result = await db.execute(_COUNT_FILLED_SQL, {"bull_pen_id": bull_pen_id})
        return {r.user_id: int(r.trade_count) for r in result.fetchall()}
