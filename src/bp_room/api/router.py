"""bp_room REST API: rooms and memberships, all require a user access token."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import get_current_user_id
from src.bp_room.application.cancellation import CancellationService
from src.bp_room.application.schemas import (
    CreateRoomRequest,
    TransitionRequest,
    UpdateRoomRequest,
)
from src.bp_room.application.service import RoomApplicationService

router = APIRouter(prefix="/bull-pens", tags=["bull-pens"])

_service = RoomApplicationService()
_cancellation = CancellationService()

CurrentUser = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
# suffixed onto the room/user ledger key; budget_logs.idempotency_key is VARCHAR(255)
OptionalIdempotencyKey = Annotated[str | None, Header(alias="Idempotency-Key", max_length=128)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_room(
    body: CreateRoomRequest, user_id: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.create_room(db, user_id, body)
    return success_response(data.model_dump(), request)


@router.get("/mine")
async def list_my_rooms(user_id: CurrentUser, db: DbSession, request: Request) -> ApiResponse:
    rooms = await _service.list_my_rooms(db, user_id)
    return success_response([r.model_dump() for r in rooms], request)


@router.get("/{bull_pen_id}")
async def get_room(
    bull_pen_id: int, user_id: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.get_room(db, bull_pen_id)
    return success_response(data.model_dump(), request)


@router.patch("/{bull_pen_id}")
async def update_room(
    bull_pen_id: int,
    body: UpdateRoomRequest,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.update_room(db, bull_pen_id, user_id, body)
    return success_response(data.model_dump(), request)


@router.delete("/{bull_pen_id}")
async def delete_room(
    bull_pen_id: int, user_id: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    await _service.delete_room(db, bull_pen_id, user_id)
    return success_response({"bull_pen_id": bull_pen_id, "deleted": True}, request)


@router.post("/{bull_pen_id}/state")
async def transition_room(
    bull_pen_id: int,
    body: TransitionRequest,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.transition_room(db, bull_pen_id, user_id, body.state.value)
    return success_response(data.model_dump(), request)


@router.post("/{bull_pen_id}/join")
async def join_room(
    bull_pen_id: int,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
    idempotency_key: OptionalIdempotencyKey = None,
) -> ApiResponse:
    data = await _service.join_room(db, bull_pen_id, user_id, idempotency_key)
    return success_response(data.model_dump(), request)


@router.post("/{bull_pen_id}/leave")
async def leave_room(
    bull_pen_id: int,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
    idempotency_key: OptionalIdempotencyKey = None,
) -> ApiResponse:
    data = await _service.leave_room(db, bull_pen_id, user_id, idempotency_key)
    return success_response(data.model_dump(), request)


@router.get("/{bull_pen_id}/members")
async def list_members(
    bull_pen_id: int, user_id: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    members = await _service.list_members(db, bull_pen_id)
    return success_response([m.model_dump() for m in members], request)


@router.post("/{bull_pen_id}/members/{member_user_id}/approve")
async def approve_member(
    bull_pen_id: int,
    member_user_id: str,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.approve_member(db, bull_pen_id, user_id, member_user_id)
    return success_response(data.model_dump(), request)


@router.post("/{bull_pen_id}/members/{member_user_id}/reject")
async def reject_member(
    bull_pen_id: int,
    member_user_id: str,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.reject_member(db, bull_pen_id, user_id, member_user_id)
    return success_response(data.model_dump(), request)


@router.post("/{bull_pen_id}/members/{member_user_id}/kick")
async def kick_member(
    bull_pen_id: int,
    member_user_id: str,
    user_id: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _cancellation.kick_member(db, bull_pen_id, user_id, member_user_id)
    return success_response(data.model_dump(), request)
