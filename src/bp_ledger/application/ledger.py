"""BudgetLedger: idempotent money movement on user_budgets.

Every mutation follows the same sequence inside the caller's transaction:
  1. look up the idempotency key; a hit replays the stored before/after balances
  2. lock the budget row(s) FOR UPDATE and require status = active
  3. re-check the key (a concurrent first application may have committed
     while this call waited on the row lock)
  4. recompute balances, write them back, append one budget_logs row per account

The ledger never commits. Callers (BudgetApplicationService, room and
settlement services) own the transaction so that a buy-in debit and the
membership insert commit or roll back together.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import BalanceBucket, BudgetOperationType, LedgerDirection
from src.bp_common.errors import (
    AppError,
    BudgetFrozenError,
    BudgetNotFoundError,
    IdempotencyKeyConflictError,
    InsufficientFundsError,
    InsufficientLockedFundsError,
    InternalError,
    InvalidAmountError,
    SameUserTransferError,
)
from src.bp_common.money import round_money, to_decimal
from src.bp_ledger.domain.models import (
    BudgetAccount,
    BudgetLedgerEntry,
    LedgerResult,
    TransferResult,
)
from src.bp_ledger.domain.repository import BudgetRepositoryProtocol
from src.bp_ledger.infrastructure.persistence import BudgetRepository

logger = logging.getLogger(__name__)

_TRANSFER_IN_KEY_SUFFIX = ":in"


def _validate_amount(amount: object) -> Decimal:
    value = round_money(to_decimal(amount))
    if value <= 0:
        raise InvalidAmountError(amount)
    return value


class _Expected(NamedTuple):
    user_id: str
    direction: str
    operation_type: str
    amount: Decimal
    bull_pen_id: int | None


def _check_replay(entry: BudgetLedgerEntry, idempotency_key: str, expected: _Expected) -> None:
    """A key only replays the movement it was first used for."""
    actual = _Expected(
        entry.user_id, entry.direction, entry.operation_type, entry.amount, entry.bull_pen_id
    )
    if actual != expected:
        logger.warning(
            "Idempotency key conflict key=%s stored=%s requested=%s",
            idempotency_key, actual, expected,
        )
        raise IdempotencyKeyConflictError(idempotency_key)


def next_balances(
    account: BudgetAccount, direction: str, amount: Decimal
) -> tuple[Decimal, Decimal]:
    """Return (available, locked) after applying `direction` for `amount`.

    Raises InsufficientFundsError / InsufficientLockedFundsError instead of
    ever producing a negative bucket.
    """
    available = account.available_balance
    locked = account.locked_balance
    if direction == LedgerDirection.IN:
        return round_money(available + amount), locked
    if direction in (LedgerDirection.OUT, LedgerDirection.LOCK):
        if amount > available:
            raise InsufficientFundsError(amount, available)
        if direction == LedgerDirection.OUT:
            return round_money(available - amount), locked
        return round_money(available - amount), round_money(locked + amount)
    if direction == LedgerDirection.UNLOCK:
        if amount > locked:
            raise InsufficientLockedFundsError(amount, locked)
        return round_money(available + amount), round_money(locked - amount)
    raise InternalError(f"Unknown ledger direction: {direction}")


class BudgetLedger:
    def __init__(self, repo: BudgetRepositoryProtocol | None = None) -> None:
        self._repo: BudgetRepositoryProtocol = repo or BudgetRepository()

    # ------------------------------------------------------------------
    # Single-account operations
    # ------------------------------------------------------------------

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        *,
        idempotency_key: str,
        operation_type: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerResult:
        return await self._apply(
            db, user_id, amount, LedgerDirection.IN,
            idempotency_key=idempotency_key, operation_type=operation_type,
            bull_pen_id=bull_pen_id, season_id=season_id,
            correlation_id=correlation_id, meta=meta,
        )

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        *,
        idempotency_key: str,
        operation_type: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerResult:
        return await self._apply(
            db, user_id, amount, LedgerDirection.OUT,
            idempotency_key=idempotency_key, operation_type=operation_type,
            bull_pen_id=bull_pen_id, season_id=season_id,
            correlation_id=correlation_id, meta=meta,
        )

    async def lock(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        *,
        idempotency_key: str,
        operation_type: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerResult:
        return await self._apply(
            db, user_id, amount, LedgerDirection.LOCK,
            idempotency_key=idempotency_key, operation_type=operation_type,
            bull_pen_id=bull_pen_id, season_id=season_id,
            correlation_id=correlation_id, meta=meta,
            moved_from=BalanceBucket.AVAILABLE.value, moved_to=BalanceBucket.LOCKED.value,
        )

    async def unlock(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        *,
        idempotency_key: str,
        operation_type: str,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerResult:
        return await self._apply(
            db, user_id, amount, LedgerDirection.UNLOCK,
            idempotency_key=idempotency_key, operation_type=operation_type,
            bull_pen_id=bull_pen_id, season_id=season_id,
            correlation_id=correlation_id, meta=meta,
            moved_from=BalanceBucket.LOCKED.value, moved_to=BalanceBucket.AVAILABLE.value,
        )

    async def adjust(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        direction: str,
        *,
        admin_id: str,
        idempotency_key: str,
        operation_type: str | None = None,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerResult:
        """Admin credit (direction=IN) or debit (direction=OUT); records the acting admin."""
        if direction not in (LedgerDirection.IN, LedgerDirection.OUT):
            raise AppError(2007, f"Adjust direction must be IN or OUT, got {direction}", 400,
                           "INVALID_DIRECTION")
        if not admin_id:
            raise AppError(2008, "Adjustments require an admin identity", 400, "ADMIN_REQUIRED")
        audit_meta = {
            **(meta or {}),
            "created_by": admin_id,
            "adjusted_at": utc_now().isoformat(),
        }
        return await self._apply(
            db, user_id, amount, LedgerDirection(direction),
            idempotency_key=idempotency_key,
            operation_type=operation_type or BudgetOperationType.ADJUSTMENT.value,
            bull_pen_id=bull_pen_id, season_id=season_id,
            correlation_id=correlation_id, meta=audit_meta,
        )

    # ------------------------------------------------------------------
    # Two-account operation
    # ------------------------------------------------------------------

    async def transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        amount: object,
        *,
        idempotency_key: str,
        operation_type: str | None = None,
        bull_pen_id: int | None = None,
        season_id: int | None = None,
        correlation_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> TransferResult:
        """Debit `from_user_id` and credit `to_user_id` under one correlation id.

        The OUT row carries the caller's key, the IN row `key + ":in"`; both
        rows are written in the caller's transaction or neither is.
        """
        if from_user_id == to_user_id:
            raise SameUserTransferError()
        value = _validate_amount(amount)

        existing = await self._repo.get_log_by_key(db, idempotency_key)
        if existing is not None:
            return await self._replay_transfer(
                db, idempotency_key, existing, from_user_id, to_user_id, value, bull_pen_id
            )

        # Ascending user_id lock order: two opposite transfers cannot deadlock
        locked: dict[str, BudgetAccount] = {}
        for uid in sorted((from_user_id, to_user_id)):
            locked[uid] = await self._lock_active(db, uid)

        existing = await self._repo.get_log_by_key(db, idempotency_key)
        if existing is not None:
            return await self._replay_transfer(
                db, idempotency_key, existing, from_user_id, to_user_id, value, bull_pen_id
            )

        corr = correlation_id or f"transfer-{uuid.uuid4()}"
        base_meta = dict(meta or {})
        if operation_type:
            base_meta["operation_type"] = operation_type
        source, target = locked[from_user_id], locked[to_user_id]

        src_available, src_locked = next_balances(source, LedgerDirection.OUT, value)
        await self._repo.update_balances(db, from_user_id, src_available, src_locked)
        out_entry = await self._repo.insert_log(
            db,
            user_id=from_user_id,
            direction=LedgerDirection.OUT.value,
            operation_type=BudgetOperationType.TRANSFER_OUT.value,
            amount=value,
            balance_before=source.available_balance,
            balance_after=src_available,
            idempotency_key=idempotency_key,
            currency=source.currency,
            correlation_id=corr,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            moved_from=None,
            moved_to=None,
            meta={**base_meta, "counterparty": to_user_id},
        )

        dst_available, dst_locked = next_balances(target, LedgerDirection.IN, value)
        await self._repo.update_balances(db, to_user_id, dst_available, dst_locked)
        in_entry = await self._repo.insert_log(
            db,
            user_id=to_user_id,
            direction=LedgerDirection.IN.value,
            operation_type=BudgetOperationType.TRANSFER_IN.value,
            amount=value,
            balance_before=target.available_balance,
            balance_after=dst_available,
            idempotency_key=f"{idempotency_key}{_TRANSFER_IN_KEY_SUFFIX}",
            currency=target.currency,
            correlation_id=corr,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            moved_from=None,
            moved_to=None,
            meta={**base_meta, "counterparty": from_user_id},
        )
        logger.info(
            "Transfer %s: %s -> %s amount=%s", corr, from_user_id, to_user_id, value
        )
        return TransferResult(
            correlation_id=corr,
            debit=LedgerResult.from_entry(out_entry, idempotent=False),
            credit=LedgerResult.from_entry(in_entry, idempotent=False),
            idempotent=False,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _lock_active(self, db: AsyncSession, user_id: str) -> BudgetAccount:
        account = await self._repo.lock_budget(db, user_id)
        if account is None:
            raise BudgetNotFoundError(user_id)
        if not account.is_active:
            raise BudgetFrozenError(user_id)
        return account

    async def _apply(
        self,
        db: AsyncSession,
        user_id: str,
        amount: object,
        direction: LedgerDirection,
        *,
        idempotency_key: str,
        operation_type: str,
        bull_pen_id: int | None,
        season_id: int | None,
        correlation_id: str | None,
        meta: dict[str, Any] | None,
        moved_from: str | None = None,
        moved_to: str | None = None,
    ) -> LedgerResult:
        value = _validate_amount(amount)
        expected = _Expected(user_id, direction.value, operation_type, value, bull_pen_id)

        existing = await self._repo.get_log_by_key(db, idempotency_key)
        if existing is not None:
            _check_replay(existing, idempotency_key, expected)
            logger.info("Ledger replay key=%s log_id=%d", idempotency_key, existing.id)
            return LedgerResult.from_entry(existing, idempotent=True)

        account = await self._lock_active(db, user_id)

        existing = await self._repo.get_log_by_key(db, idempotency_key)
        if existing is not None:
            _check_replay(existing, idempotency_key, expected)
            logger.info("Ledger replay after lock key=%s log_id=%d", idempotency_key, existing.id)
            return LedgerResult.from_entry(existing, idempotent=True)

        available, locked = next_balances(account, direction, value)
        await self._repo.update_balances(db, user_id, available, locked)
        entry = await self._repo.insert_log(
            db,
            user_id=user_id,
            direction=direction.value,
            operation_type=operation_type,
            amount=value,
            balance_before=account.available_balance,
            balance_after=available,
            idempotency_key=idempotency_key,
            currency=account.currency or settings.DEFAULT_CURRENCY,
            correlation_id=correlation_id,
            bull_pen_id=bull_pen_id,
            season_id=season_id,
            moved_from=moved_from,
            moved_to=moved_to,
            meta=dict(meta or {}),
        )
        logger.info(
            "Ledger %s %s user=%s amount=%s balance %s -> %s",
            direction.value, operation_type, user_id, value,
            account.available_balance, available,
        )
        return LedgerResult.from_entry(entry, idempotent=False)

    async def _replay_transfer(
        self,
        db: AsyncSession,
        idempotency_key: str,
        out_entry: BudgetLedgerEntry,
        from_user_id: str,
        to_user_id: str,
        value: Decimal,
        bull_pen_id: int | None,
    ) -> TransferResult:
        in_key = f"{idempotency_key}{_TRANSFER_IN_KEY_SUFFIX}"
        _check_replay(out_entry, idempotency_key, _Expected(
            from_user_id, LedgerDirection.OUT.value,
            BudgetOperationType.TRANSFER_OUT.value, value, bull_pen_id,
        ))
        in_entry = await self._repo.get_log_by_key(db, in_key)
        if in_entry is None or out_entry.correlation_id is None:
            raise InternalError(f"Incomplete transfer rows for key {idempotency_key}")
        _check_replay(in_entry, in_key, _Expected(
            to_user_id, LedgerDirection.IN.value,
            BudgetOperationType.TRANSFER_IN.value, value, bull_pen_id,
        ))
        logger.info("Transfer replay key=%s correlation=%s", idempotency_key,
                    out_entry.correlation_id)
        return TransferResult(
            correlation_id=out_entry.correlation_id,
            debit=LedgerResult.from_entry(out_entry, idempotent=True),
            credit=LedgerResult.from_entry(in_entry, idempotent=True),
            idempotent=True,
        )
