"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Budget ledger
  3xxx: Room lifecycle / membership
  4xxx: Order
  5xxx: Settlement
  9xxx: System

`reason` is the stable upper-snake literal clients switch on
(e.g. INSUFFICIENT_FUNDS); `code` is the numeric catalogue id.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        reason: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.reason = reason
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401, "INVALID_TOKEN")


class InternalServiceAuthError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Internal service token required", 403, "FORBIDDEN")


class IdempotencyKeyRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(
            1003, "Idempotency-Key header is required", 400, "IDEMPOTENCY_KEY_REQUIRED"
        )


# --- 2xxx: Budget ledger ---

class BudgetNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2001, f"Budget not found for user {user_id}", 404, "BUDGET_NOT_FOUND")


class BudgetFrozenError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Budget for user {user_id} is not active", 422, "BUDGET_FROZEN")


class InsufficientFundsError(AppError):
    def __init__(self, required: object, available: object) -> None:
        super().__init__(
            2003,
            f"Insufficient funds: required {required}, available {available}",
            422,
            "INSUFFICIENT_FUNDS",
        )


class InsufficientLockedFundsError(AppError):
    def __init__(self, required: object, locked: object) -> None:
        super().__init__(
            2004,
            f"Insufficient locked funds: required {required}, locked {locked}",
            422,
            "INSUFFICIENT_LOCKED_FUNDS",
        )


class SameUserTransferError(AppError):
    def __init__(self) -> None:
        super().__init__(2005, "Cannot transfer to the same user", 422, "SAME_USER")


class InvalidAmountError(AppError):
    def __init__(self, amount: object) -> None:
        super().__init__(2006, f"Amount must be positive, got {amount}", 400, "INVALID_AMOUNT")


class IdempotencyKeyConflictError(AppError):
    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            2009,
            f"Idempotency key {idempotency_key} was already used for a different operation",
            409,
            "IDEMPOTENCY_KEY_CONFLICT",
        )


# --- 3xxx: Room lifecycle / membership ---

class RoomNotFoundError(AppError):
    def __init__(self, bull_pen_id: int) -> None:
        super().__init__(3001, f"Bull pen not found: {bull_pen_id}", 404, "ROOM_NOT_FOUND")


class InvalidStateTransitionError(AppError):
    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(
            3002,
            f"Invalid state transition: {from_state} -> {to_state}",
            422,
            "INVALID_STATE_TRANSITION",
        )


class RoomNotTradableError(AppError):
    def __init__(self, bull_pen_id: int, state: str) -> None:
        super().__init__(
            3003,
            f"Bull pen {bull_pen_id} is not tradable (state={state})",
            422,
            "ROOM_NOT_TRADABLE",
        )


class NotActiveMemberError(AppError):
    def __init__(self, bull_pen_id: int, user_id: str) -> None:
        super().__init__(
            3004,
            f"User {user_id} is not an active member of bull pen {bull_pen_id}",
            403,
            "NOT_ACTIVE_MEMBER",
        )


class RoomFullError(AppError):
    def __init__(self, bull_pen_id: int) -> None:
        super().__init__(3005, f"Bull pen {bull_pen_id} is full", 422, "ROOM_FULL")


class AlreadyMemberError(AppError):
    def __init__(self, bull_pen_id: int, user_id: str) -> None:
        super().__init__(
            3006, f"User {user_id} already joined bull pen {bull_pen_id}", 409, "ALREADY_MEMBER"
        )


class NotRoomHostError(AppError):
    def __init__(self, bull_pen_id: int) -> None:
        super().__init__(3007, f"Only the host can manage bull pen {bull_pen_id}", 403, "NOT_HOST")


class HostCannotLeaveError(AppError):
    def __init__(self) -> None:
        super().__init__(3008, "The host cannot leave their own bull pen", 422, "HOST_CANNOT_LEAVE")


class RoomNotEditableError(AppError):
    def __init__(self, bull_pen_id: int, detail: str) -> None:
        super().__init__(
            3009, f"Bull pen {bull_pen_id} cannot be edited: {detail}", 422, "ROOM_NOT_EDITABLE"
        )


class MembershipNotFoundError(AppError):
    def __init__(self, bull_pen_id: int, user_id: str) -> None:
        super().__init__(
            3010,
            f"No membership for user {user_id} in bull pen {bull_pen_id}",
            404,
            "MEMBER_NOT_FOUND",
        )


class MembershipNotPendingError(AppError):
    def __init__(self, user_id: str, status: str) -> None:
        super().__init__(
            3011, f"Membership of {user_id} is {status}, not pending", 422, "MEMBERSHIP_NOT_PENDING"
        )


class RoomNotJoinableError(AppError):
    def __init__(self, bull_pen_id: int, state: str) -> None:
        super().__init__(
            3012,
            f"Bull pen {bull_pen_id} is closed to membership changes (state={state})",
            422,
            "ROOM_NOT_JOINABLE",
        )


class RoomNotCancellableError(AppError):
    def __init__(self, bull_pen_id: int, state: str) -> None:
        super().__init__(
            3013,
            f"Bull pen {bull_pen_id} already started (state={state})",
            422,
            "ROOM_ALREADY_STARTED",
        )


class RoomNotReadyError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3014, f"Bull pen cannot start: {detail}", 422, "ROOM_NOT_READY")


class InvalidRoomError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3015, f"Invalid bull pen: {detail}", 400, "VALIDATION_ERROR")


# --- 4xxx: Order ---

class InvalidOrderError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid order: {detail}", 400, "VALIDATION_ERROR")


class FractionalSharesNotAllowedError(AppError):
    def __init__(self, bull_pen_id: int) -> None:
        super().__init__(
            4002,
            f"Bull pen {bull_pen_id} does not allow fractional shares",
            400,
            "FRACTIONAL_NOT_ALLOWED",
        )


class PriceUnavailableError(AppError):
    def __init__(self, symbol: str, detail: str = "") -> None:
        message = f"No price available for {symbol}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(4003, message, 503, "PRICE_UNAVAILABLE")


# --- 5xxx: Settlement ---

class RoomNotSettleableError(AppError):
    def __init__(self, bull_pen_id: int, state: str) -> None:
        super().__init__(
            5001,
            f"Bull pen {bull_pen_id} cannot be settled (state={state})",
            422,
            "ROOM_NOT_SETTLEABLE",
        )


class InvalidRankingWeightsError(AppError):
    def __init__(self, total: float) -> None:
        super().__init__(
            5002, f"Ranking weights must sum to 1, got {total}", 500, "INVALID_RANKING_WEIGHTS"
        )


class InvalidStarQueryError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(5003, f"Invalid star query: {detail}", 400, "VALIDATION_ERROR")


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500, "INTERNAL_ERROR")
