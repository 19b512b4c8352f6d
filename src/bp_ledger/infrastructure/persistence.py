"""BudgetRepository: concrete implementation of BudgetRepositoryProtocol.

Balances are a materialized running total on user_budgets; budget_logs is the
append-only audit/idempotency trail and is never summed to derive a balance.

Transaction ownership: the CALLER opens and commits the transaction.
`lock_budget` takes a row lock (SELECT ... FOR UPDATE) that is held until then.
"""

import json
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.errors import InternalError
from src.bp_ledger.domain.models import BudgetAccount, BudgetLedgerEntry

# ---------------------------------------------------------------------------
# SQL: user_budgets
# ---------------------------------------------------------------------------

_BUDGET_COLUMNS = """
    user_id, available_balance, locked_balance, currency, status, created_at, updated_at
"""

_GET_BUDGET_SQL = text(f"""
    SELECT {_BUDGET_COLUMNS}
    FROM user_budgets
    WHERE user_id = :user_id
""")

_LOCK_BUDGET_SQL = text(f"""
    SELECT {_BUDGET_COLUMNS}
    FROM user_budgets
    WHERE user_id = :user_id
    FOR UPDATE
""")

_UPDATE_BALANCES_SQL = text("""
    UPDATE user_budgets
    SET available_balance = :available_balance,
        locked_balance    = :locked_balance,
        updated_at = NOW()
    WHERE user_id = :user_id
""")

# ---------------------------------------------------------------------------
# SQL: budget_logs
# ---------------------------------------------------------------------------

_LOG_COLUMNS = """
    id, user_id, direction, operation_type, amount, balance_before, balance_after,
    currency, idempotency_key, correlation_id, bull_pen_id, season_id,
    moved_from, moved_to, meta, created_at
"""

_GET_LOG_BY_KEY_SQL = text(f"""
    SELECT {_LOG_COLUMNS}
    FROM budget_logs
    WHERE idempotency_key = :idempotency_key
""")

_INSERT_LOG_SQL = text(f"""
    INSERT INTO budget_logs
        (user_id, direction, operation_type, amount, balance_before, balance_after,
         currency, idempotency_key, correlation_id, bull_pen_id, season_id,
         moved_from, moved_to, meta)
    VALUES
        (:user_id, :direction, :operation_type, :amount, :balance_before, :balance_after,
         :currency, :idempotency_key, :correlation_id, :bull_pen_id, :season_id,
         :moved_from, :moved_to, CAST(:meta AS JSONB))
    RETURNING {_LOG_COLUMNS}
""")

_LIST_LOGS_SQL = text(f"""
    SELECT {_LOG_COLUMNS}
    FROM budget_logs
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:operation_type AS TEXT) IS NULL
           OR operation_type = CAST(:operation_type AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_budget(row: object) -> BudgetAccount:
    return BudgetAccount(
        user_id=row.user_id,  # type: ignore[attr-defined]
        available_balance=Decimal(row.available_balance),  # type: ignore[attr-defined]
        locked_balance=Decimal(row.locked_balance),  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _load_meta(raw: object) -> dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered
    if raw is None:
        return {}
    if isinstance(raw, str):
        return dict(json.loads(raw))
    return dict(raw)  # type: ignore[call-overload]


def _row_to_entry(row: object) -> BudgetLedgerEntry:
    return BudgetLedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        direction=row.direction,  # type: ignore[attr-defined]
        operation_type=row.operation_type,  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        balance_before=Decimal(row.balance_before),  # type: ignore[attr-defined]
        balance_after=Decimal(row.balance_after),  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        correlation_id=row.correlation_id,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        season_id=row.season_id,  # type: ignore[attr-defined]
        moved_from=row.moved_from,  # type: ignore[attr-defined]
        moved_to=row.moved_to,  # type: ignore[attr-defined]
        meta=_load_meta(row.meta),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class BudgetRepository:
    """Concrete repository: raw SQL, no commits."""

    async def get_budget(self, db: AsyncSession, user_id: str) -> BudgetAccount | None:
        result = await db.execute(_GET_BUDGET_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_budget(row) if row else None

    async def lock_budget(self, db: AsyncSession, user_id: str) -> BudgetAccount | None:
        result = await db.execute(_LOCK_BUDGET_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_budget(row) if row else None

    async def update_balances(
        self,
        db: AsyncSession,
        user_id: str,
        available_balance: Decimal,
        locked_balance: Decimal,
    ) -> None:
        await db.execute(
            _UPDATE_BALANCES_SQL,
            {
                "user_id": user_id,
                "available_balance": available_balance,
                "locked_balance": locked_balance,
            },
        )

    async def get_log_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> BudgetLedgerEntry | None:
        result = await db.execute(_GET_LOG_BY_KEY_SQL, {"idempotency_key": idempotency_key})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

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
    ) -> BudgetLedgerEntry:
        result = await db.execute(
            _INSERT_LOG_SQL,
            {
                "user_id": user_id,
                "direction": direction,
                "operation_type": operation_type,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "currency": currency,
                "idempotency_key": idempotency_key,
                "correlation_id": correlation_id,
                "bull_pen_id": bull_pen_id,
                "season_id": season_id,
                "moved_from": moved_from,
                "moved_to": moved_to,
                "meta": json.dumps(meta, default=str),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("budget_logs insert returned no rows")
        return _row_to_entry(row)

    async def list_logs(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        operation_type: str | None,
    ) -> list[BudgetLedgerEntry]:
        result = await db.execute(
            _LIST_LOGS_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "operation_type": operation_type,
                "limit": limit,
            },
        )
        return [_row_to_entry(row) for row in result.fetchall()]
