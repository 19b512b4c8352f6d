"""bp_order REST API: order placement and order/position listing.

A rejected order is a business outcome: HTTP 200 with status "rejected".
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import get_current_user_id
from src.bp_order.application.engine import OrderExecutionEngine
from src.bp_order.application.schemas import PlaceOrderRequest

router = APIRouter(prefix="/bull-pens", tags=["orders"])

_engine = OrderExecutionEngine()


@router.post("/{bull_pen_id}/orders")
async def place_order(
    bull_pen_id: int,
    body: PlaceOrderRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _engine.place_order(db, bull_pen_id, user_id, body)
    return success_response(data.model_dump(by_alias=True), request)


@router.get("/{bull_pen_id}/orders")
async def list_orders(
    bull_pen_id: int,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    mine: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
) -> ApiResponse:
    orders = await _engine.list_orders(db, bull_pen_id, user_id if mine else None, limit)
    return success_response({"orders": [o.model_dump(by_alias=True) for o in orders]}, request)


@router.get("/{bull_pen_id}/positions")
async def list_positions(
    bull_pen_id: int,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    mine: bool = Query(False),
) -> ApiResponse:
    positions = await _engine.list_positions(db, bull_pen_id, user_id if mine else None)
    return success_response(
        {"positions": [p.model_dump(by_alias=True) for p in positions]}, request
    )
