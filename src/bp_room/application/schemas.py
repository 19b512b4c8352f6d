"""Pydantic schemas for bp_room API: validation limits live here."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.bp_common.datetime_utils import ensure_utc, utc_now
from src.bp_common.enums import RoomState
from src.bp_room.domain.models import BullPen, Membership

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
MIN_DURATION_SEC = 60
MAX_DURATION_SEC = 86_400
MAX_STARTING_CASH = Decimal("1000000")
MIN_PLAYERS = 2
MAX_PLAYERS = 100


def _require_future(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    value = ensure_utc(value)
    if value <= utc_now():
        raise ValueError("start_time must be in the future")
    return value


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateRoomRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    starting_cash: Decimal = Field(..., gt=0, le=MAX_STARTING_CASH, decimal_places=2)
    duration_sec: int = Field(..., ge=MIN_DURATION_SEC, le=MAX_DURATION_SEC)
    start_time: datetime | None = None
    max_players: int = Field(10, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    allow_fractional: bool = False
    approval_required: bool = False
    season_id: int | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("start_time")
    @classmethod
    def _future_start(cls, v: datetime | None) -> datetime | None:
        return _require_future(v)


class UpdateRoomRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=MAX_NAME_LENGTH)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    starting_cash: Decimal | None = Field(None, gt=0, le=MAX_STARTING_CASH, decimal_places=2)
    duration_sec: int | None = Field(None, ge=MIN_DURATION_SEC, le=MAX_DURATION_SEC)
    start_time: datetime | None = None
    max_players: int | None = Field(None, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    allow_fractional: bool | None = None
    approval_required: bool | None = None

    @field_validator("start_time")
    @classmethod
    def _future_start(cls, v: datetime | None) -> datetime | None:
        return _require_future(v)


class TransitionRequest(BaseModel):
    state: RoomState


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RoomDetail(BaseModel):
    id: int
    name: str
    description: str | None
    host_user_id: str
    state: str
    starting_cash: float
    duration_sec: int
    start_time: str | None
    end_time: str | None
    max_players: int
    allow_fractional: bool
    approval_required: bool
    season_id: int | None
    cancelled: bool
    settled: bool
    member_count: int | None = None

    @classmethod
    def from_domain(cls, room: BullPen, member_count: int | None = None) -> "RoomDetail":
        return cls(
            id=room.id,
            name=room.name,
            description=room.description,
            host_user_id=room.host_user_id,
            state=room.state,
            starting_cash=float(room.starting_cash),
            duration_sec=room.duration_sec,
            start_time=room.start_time.isoformat() if room.start_time else None,
            end_time=room.end_time.isoformat() if room.end_time else None,
            max_players=room.max_players,
            allow_fractional=room.allow_fractional,
            approval_required=room.approval_required,
            season_id=room.season_id,
            cancelled=room.is_cancelled,
            settled=room.is_settled,
            member_count=member_count,
        )


class MembershipItem(BaseModel):
    id: int
    bull_pen_id: int
    user_id: str
    role: str
    status: str
    cash: float
    joined_at: str | None

    @classmethod
    def from_domain(cls, m: Membership) -> "MembershipItem":
        return cls(
            id=m.id,
            bull_pen_id=m.bull_pen_id,
            user_id=m.user_id,
            role=m.role,
            status=m.status,
            cash=float(m.cash),
            joined_at=m.joined_at.isoformat() if m.joined_at else None,
        )


class JoinRoomResponse(BaseModel):
    membership: MembershipItem
    buy_in: float
    budget_balance_after: float
    idempotent: bool


class LeaveRoomResponse(BaseModel):
    bull_pen_id: int
    user_id: str
    status: str
    refund: float
    budget_balance_after: float


class KickMemberResponse(BaseModel):
    bull_pen_id: int
    user_id: str
    status: str
    refunded: bool


class CancelRoomResponse(BaseModel):
    bull_pen_id: int
    refunded_count: int
    correlation_id: str | None
