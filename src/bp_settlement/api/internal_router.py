"""Internal settlement surfaces: service-token gated (scheduler / admin tooling)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import require_internal_service
from src.bp_settlement.application.schemas import SettlementResponse
from src.bp_settlement.application.settlement import SettlementService
from src.bp_settlement.application.snapshots import SnapshotService

router = APIRouter(tags=["internal-settlement"], dependencies=[Depends(require_internal_service)])

_settlement = SettlementService()
_snapshots = SnapshotService()


@router.post("/settlement/rooms/{bull_pen_id}")
async def settle_room(
    bull_pen_id: int,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _settlement.settle_room(db, bull_pen_id)
    return success_response(SettlementResponse.from_result(result).model_dump(), request)


@router.post("/snapshots/rooms/{bull_pen_id}")
async def create_snapshot(
    bull_pen_id: int,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _snapshots.create_snapshot(db, bull_pen_id)
    return success_response(data.model_dump(), request)
