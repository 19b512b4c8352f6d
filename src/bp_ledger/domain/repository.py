"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_ledger.domain.models import BudgetAccount, BudgetLedgerEntry


class BudgetRepositoryProtocol(Protocol):
    async def get_budget(self, db: AsyncSession, user_id: str) -> BudgetAccount | None: ...

    async def lock_budget(self, db: AsyncSession, user_id: str) -> BudgetAccount | None: ...

    async def update_balances(
        self,
        db: AsyncSession,
        user_id: str,
        available_balance: Decimal,
        locked_balance: Decimal,
    ) -> None: ...

    async def get_log_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> BudgetLedgerEntry | None: ...

    async def insert_log(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        direction: str,
        operation_type: str,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        idempotency_key: str,
        currency: str,
        correlation_id: str | None,
        bull_pen_id: int | None,
        season_id: int | None,
        moved_from: str | None,
        moved_to: str | None,
        meta: dict[str, Any],
    ) -> BudgetLedgerEntry: ...

    async def list_logs(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        operation_type: str | None,
    ) -> list[BudgetLedgerEntry]: ...
