"""Snapshot leaderboards and the caller's star awards."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import get_current_user_id
from src.bp_settlement.application.achievements import AchievementService
from src.bp_settlement.application.schemas import StarEventItem, StarsResponse
from src.bp_settlement.application.snapshots import SnapshotService

router = APIRouter(tags=["leaderboard", "stars"])

_snapshots = SnapshotService()
_achievements = AchievementService()

CurrentUser = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/bull-pens/{bull_pen_id}/leaderboard/latest")
async def latest_leaderboard(
    bull_pen_id: int, user_id: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _snapshots.get_latest_snapshot(db, bull_pen_id)
    return success_response({"bull_pen_id": bull_pen_id, **data.model_dump()}, request)


@router.get("/bull-pens/{bull_pen_id}/leaderboard/history")
async def leaderboard_history(
    bull_pen_id: int,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse:
    data = await _snapshots.get_snapshot_history(db, bull_pen_id, limit)
    return success_response(data.model_dump(), request)


@router.get("/users/me/stars")
async def my_stars(
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
    scope: Literal["lifetime", "room", "season"] = Query("lifetime"),
    bull_pen_id: int | None = Query(None),
    season_id: int | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    total = await _achievements.get_aggregated_stars(
        db, user_id, scope, bull_pen_id=bull_pen_id, season_id=season_id
    )
    events = await _achievements.list_star_events(
        db,
        user_id,
        bull_pen_id=bull_pen_id if scope == "room" else None,
        season_id=season_id if scope == "season" else None,
        limit=limit,
        offset=offset,
    )
    data = StarsResponse(
        user_id=user_id,
        scope=scope,
        total_stars=total,
        events=[StarEventItem.from_domain(e) for e in events],
    )
    return success_response(data.model_dump(), request)
