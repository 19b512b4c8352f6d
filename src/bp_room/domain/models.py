"""Domain models for bp_room: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from src.bp_common.enums import MembershipRole, MembershipStatus, RoomState


@dataclass
class BullPen:
    id: int
    name: str
    host_user_id: str
    state: str                      # RoomState value
    starting_cash: Decimal
    duration_sec: int
    max_players: int
    allow_fractional: bool = False
    approval_required: bool = False
    description: str | None = None
    start_time: datetime | None = None
    season_id: int | None = None
    cancelled_at: datetime | None = None
    settled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.starting_cash <= 0:
            raise ValueError(f"starting_cash must be > 0, got {self.starting_cash}")
        if self.duration_sec <= 0:
            raise ValueError(f"duration_sec must be > 0, got {self.duration_sec}")

    @property
    def end_time(self) -> datetime | None:
        if self.start_time is None:
            return None
        return self.start_time + timedelta(seconds=self.duration_sec)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    @property
    def is_draft(self) -> bool:
        return self.state == RoomState.DRAFT.value


@dataclass
class Membership:
    id: int
    bull_pen_id: int
    user_id: str
    role: str                       # MembershipRole value
    status: str                     # MembershipStatus value
    cash: Decimal                   # in-room spendable balance, not the real budget
    joined_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.cash < 0:
            raise ValueError(f"Membership cash must be >= 0, got {self.cash}")

    @property
    def is_host(self) -> bool:
        return self.role == MembershipRole.HOST.value

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE.value

    @property
    def holds_seat(self) -> bool:
        """Pending and active memberships count toward max_players and are refundable."""
        return self.status in (MembershipStatus.PENDING.value, MembershipStatus.ACTIVE.value)
