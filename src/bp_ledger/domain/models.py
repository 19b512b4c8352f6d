"""Domain models for bp_ledger: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.bp_common.enums import BudgetStatus


@dataclass
class BudgetAccount:
    user_id: str
    available_balance: Decimal
    locked_balance: Decimal
    currency: str = "VUSD"
    status: str = BudgetStatus.ACTIVE.value
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.available_balance < 0 or self.locked_balance < 0:
            raise ValueError(
                f"Budget balances must be >= 0 (available={self.available_balance}, "
                f"locked={self.locked_balance})"
            )

    @property
    def total_balance(self) -> Decimal:
        return self.available_balance + self.locked_balance

    @property
    def is_active(self) -> bool:
        return self.status == BudgetStatus.ACTIVE.value


@dataclass(frozen=True)
class BudgetLedgerEntry:
    """Immutable audit row; balance_before/after always refer to available_balance."""

    id: int
    user_id: str
    direction: str                  # LedgerDirection value
    operation_type: str
    amount: Decimal                 # always positive; direction carries the sign
    balance_before: Decimal
    balance_after: Decimal
    idempotency_key: str
    currency: str = "VUSD"
    correlation_id: str | None = None
    bull_pen_id: int | None = None
    season_id: int | None = None
    moved_from: str | None = None
    moved_to: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class LedgerResult:
    balance_before: Decimal
    balance_after: Decimal
    log_id: int
    idempotent: bool = False

    @classmethod
    def from_entry(cls, entry: BudgetLedgerEntry, idempotent: bool) -> "LedgerResult":
        return cls(
            balance_before=entry.balance_before,
            balance_after=entry.balance_after,
            log_id=entry.id,
            idempotent=idempotent,
        )


@dataclass
class TransferResult:
    correlation_id: str
    debit: LedgerResult
    credit: LedgerResult
    idempotent: bool = False
