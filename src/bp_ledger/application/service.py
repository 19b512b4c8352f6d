"""BudgetApplicationService: transaction boundary for the internal budget API.

Each mutation runs the BudgetLedger inside one commit/rollback block; read
operations (get_budget, list_logs) run without an explicit transaction.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.errors import BudgetNotFoundError
from src.bp_ledger.application.ledger import BudgetLedger
from src.bp_ledger.application.schemas import (
    AdjustRequest,
    BudgetLogItem,
    BudgetLogResponse,
    BudgetOperationRequest,
    BudgetResponse,
    LedgerOperationResponse,
    TransferRequest,
    TransferResponse,
    cursor_decode,
    cursor_encode,
)
from src.bp_ledger.domain.repository import BudgetRepositoryProtocol
from src.bp_ledger.infrastructure.persistence import BudgetRepository

_SINGLE_ACCOUNT_OPERATIONS = ("credit", "debit", "lock", "unlock")


class BudgetApplicationService:
    def __init__(
        self,
        repo: BudgetRepositoryProtocol | None = None,
        ledger: BudgetLedger | None = None,
    ) -> None:
        self._repo: BudgetRepositoryProtocol = repo or BudgetRepository()
        self._ledger = ledger or BudgetLedger(self._repo)

    async def apply(
        self,
        db: AsyncSession,
        operation: str,
        req: BudgetOperationRequest,
        idempotency_key: str,
    ) -> LedgerOperationResponse:
        """Run credit/debit/lock/unlock by name and commit."""
        if operation not in _SINGLE_ACCOUNT_OPERATIONS:
            raise ValueError(f"Unsupported budget operation: {operation}")
        method = getattr(self._ledger, operation)
        try:
            result = await method(
                db,
                req.user_id,
                req.amount,
                idempotency_key=idempotency_key,
                operation_type=req.operation_type,
                bull_pen_id=req.bull_pen_id,
                season_id=req.season_id,
                correlation_id=req.correlation_id,
                meta=req.meta,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return LedgerOperationResponse.from_result(result)

    async def transfer(
        self, db: AsyncSession, req: TransferRequest, idempotency_key: str
    ) -> TransferResponse:
        try:
            result = await self._ledger.transfer(
                db,
                req.from_user_id,
                req.to_user_id,
                req.amount,
                idempotency_key=idempotency_key,
                operation_type=req.operation_type,
                bull_pen_id=req.bull_pen_id,
                season_id=req.season_id,
                correlation_id=req.correlation_id,
                meta=req.meta,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return TransferResponse.from_result(result)

    async def adjust(
        self, db: AsyncSession, req: AdjustRequest, idempotency_key: str
    ) -> LedgerOperationResponse:
        try:
            result = await self._ledger.adjust(
                db,
                req.user_id,
                req.amount,
                req.direction,
                admin_id=req.admin_id,
                idempotency_key=idempotency_key,
                operation_type=req.operation_type,
                bull_pen_id=req.bull_pen_id,
                season_id=req.season_id,
                correlation_id=req.correlation_id,
                meta=req.meta,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return LedgerOperationResponse.from_result(result)

    async def get_budget(self, db: AsyncSession, user_id: str) -> BudgetResponse:
        account = await self._repo.get_budget(db, user_id)
        if account is None:
            raise BudgetNotFoundError(user_id)
        return BudgetResponse.from_domain(account)

    async def list_logs(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        operation_type: str | None,
    ) -> BudgetLogResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_logs(db, user_id, cursor_id, limit + 1, operation_type)
        has_more = len(entries) > limit
        page = entries[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return BudgetLogResponse(
            items=[BudgetLogItem.from_domain(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )
