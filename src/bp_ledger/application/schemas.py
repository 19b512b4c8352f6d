"""Pydantic schemas and cursor utilities for the internal budget API."""

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.bp_common.money import money_to_display
from src.bp_ledger.domain.models import (
    BudgetAccount,
    BudgetLedgerEntry,
    LedgerResult,
    TransferResult,
)

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on malformed input."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (
        binascii.Error, UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError
    ):
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BudgetOperationRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    operation_type: str = Field(..., min_length=1, max_length=64)
    bull_pen_id: int | None = None
    season_id: int | None = None
    correlation_id: str | None = Field(None, max_length=128)
    meta: dict[str, Any] | None = None


class TransferRequest(BaseModel):
    from_user_id: str = Field(..., min_length=1, max_length=64)
    to_user_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    operation_type: str | None = Field(None, max_length=64)
    bull_pen_id: int | None = None
    season_id: int | None = None
    correlation_id: str | None = Field(None, max_length=128)
    meta: dict[str, Any] | None = None


class AdjustRequest(BudgetOperationRequest):
    operation_type: str = Field("ADJUSTMENT", min_length=1, max_length=64)
    direction: Literal["IN", "OUT"]
    admin_id: str = Field(..., min_length=1, max_length=64, description="Acting admin identity")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LedgerOperationResponse(BaseModel):
    balance_before: float
    balance_after: float
    log_id: int
    idempotent: bool

    @classmethod
    def from_result(cls, result: LedgerResult) -> "LedgerOperationResponse":
        return cls(
            balance_before=float(result.balance_before),
            balance_after=float(result.balance_after),
            log_id=result.log_id,
            idempotent=result.idempotent,
        )


class TransferResponse(BaseModel):
    correlation_id: str
    idempotent: bool
    from_user: LedgerOperationResponse
    to_user: LedgerOperationResponse

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResponse":
        return cls(
            correlation_id=result.correlation_id,
            idempotent=result.idempotent,
            from_user=LedgerOperationResponse.from_result(result.debit),
            to_user=LedgerOperationResponse.from_result(result.credit),
        )


class BudgetResponse(BaseModel):
    user_id: str
    currency: str
    status: str
    available_balance: float
    locked_balance: float
    total_balance: float
    total_balance_display: str

    @classmethod
    def from_domain(cls, account: BudgetAccount) -> "BudgetResponse":
        return cls(
            user_id=account.user_id,
            currency=account.currency,
            status=account.status,
            available_balance=float(account.available_balance),
            locked_balance=float(account.locked_balance),
            total_balance=float(account.total_balance),
            total_balance_display=money_to_display(account.total_balance),
        )


class BudgetLogItem(BaseModel):
    id: int
    direction: str
    operation_type: str
    amount: float
    balance_before: float
    balance_after: float
    currency: str
    correlation_id: str | None
    bull_pen_id: int | None
    season_id: int | None
    moved_from: str | None
    moved_to: str | None
    meta: dict[str, Any]
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, entry: BudgetLedgerEntry) -> "BudgetLogItem":
        return cls(
            id=entry.id,
            direction=entry.direction,
            operation_type=entry.operation_type,
            amount=float(entry.amount),
            balance_before=float(entry.balance_before),
            balance_after=float(entry.balance_after),
            currency=entry.currency,
            correlation_id=entry.correlation_id,
            bull_pen_id=entry.bull_pen_id,
            season_id=entry.season_id,
            moved_from=entry.moved_from,
            moved_to=entry.moved_to,
            meta=entry.meta,
            created_at=entry.created_at.isoformat() if entry.created_at else "",
        )


class BudgetLogResponse(BaseModel):
    items: list[BudgetLogItem]
    next_cursor: str | None
    has_more: bool
