"""Internal room operations: service-token gated (scheduler / admin tooling)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import require_internal_service
from src.bp_room.application.cancellation import CancellationService
from src.bp_room.application.service import RoomApplicationService

router = APIRouter(tags=["internal-rooms"], dependencies=[Depends(require_internal_service)])

_service = RoomApplicationService()
_cancellation = CancellationService()


@router.post("/cancellation/rooms/{bull_pen_id}")
async def cancel_room(
    bull_pen_id: int,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _cancellation.cancel_room(db, bull_pen_id)
    return success_response(data.model_dump(), request)


@router.post("/rooms/{bull_pen_id}/sync-state")
async def sync_room_state(
    bull_pen_id: int,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.sync_room_state(db, bull_pen_id)
    return success_response(data.model_dump(), request)
