"""Live room leaderboard computed from current cash, positions and quotes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import get_current_user_id
from src.bp_ranking.application.service import RankingService

router = APIRouter(prefix="/bull-pens", tags=["leaderboard"])

_service = RankingService()


@router.get("/{bull_pen_id}/leaderboard")
async def live_leaderboard(
    bull_pen_id: int,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.live_leaderboard(db, bull_pen_id)
    return success_response(data.model_dump(), request)
