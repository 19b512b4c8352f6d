"""Global enums: must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import Enum


class BudgetStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class LedgerDirection(str, Enum):
    """budget_logs.direction: IN = credit, OUT = debit, LOCK/UNLOCK move between buckets."""
    IN = "IN"
    OUT = "OUT"
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"


class BalanceBucket(str, Enum):
    AVAILABLE = "available"
    LOCKED = "locked"


class BudgetOperationType(str, Enum):
    # Room economics
    ROOM_BUY_IN = "ROOM_BUY_IN"
    ROOM_LEAVE_REFUND = "ROOM_LEAVE_REFUND"
    ROOM_REJECTION_REFUND = "ROOM_REJECTION_REFUND"
    ROOM_MEMBER_KICK_REFUND = "ROOM_MEMBER_KICK_REFUND"
    ROOM_CANCELLATION_REFUND = "ROOM_CANCELLATION_REFUND"
    ROOM_SETTLEMENT_WIN = "ROOM_SETTLEMENT_WIN"
    # Transfers (paired rows, one correlation id)
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    # Admin
    ADJUSTMENT = "ADJUSTMENT"


class RoomState(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MembershipRole(str, Enum):
    HOST = "host"
    PLAYER = "player"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    KICKED = "kicked"
    LEFT = "left"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(str, Enum):
    NEW = "new"
    FILLED = "filled"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    INSUFFICIENT_CASH = "INSUFFICIENT_CASH"
    INSUFFICIENT_SHARES = "INSUFFICIENT_SHARES"


class RakeFeeType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"


class PayoutModel(str, Enum):
    WINNER_TAKE_ALL = "winner-take-all"
    PROPORTIONAL = "proportional"
    TIERED = "tiered"


class StarScope(str, Enum):
    LIFETIME = "lifetime"
    ROOM = "room"
    SEASON = "season"
