"""Unit tests for BudgetLedger using a mock repository."""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.bp_common.enums import BudgetStatus, LedgerDirection
from src.bp_common.errors import (
    AppError,
    BudgetFrozenError,
    BudgetNotFoundError,
    IdempotencyKeyConflictError,
    InsufficientFundsError,
    InsufficientLockedFundsError,
    InvalidAmountError,
    SameUserTransferError,
)
from src.bp_ledger.application.ledger import BudgetLedger, next_balances
from src.bp_ledger.domain.models import BudgetAccount, BudgetLedgerEntry


def _account(
    available: str = "1000.00",
    locked: str = "0.00",
    user_id: str = "user-1",
    status: str = BudgetStatus.ACTIVE.value,
) -> BudgetAccount:
    return BudgetAccount(
        user_id=user_id,
        available_balance=Decimal(available),
        locked_balance=Decimal(locked),
        status=status,
        created_at=datetime.now(UTC),
    )


def _echo_log(log_id: int = 1) -> AsyncMock:
    """insert_log mock that returns a ledger row built from its keyword args."""

    async def _insert(db: object, **kwargs: object) -> BudgetLedgerEntry:
        return BudgetLedgerEntry(id=log_id, **kwargs)  # type: ignore[arg-type]

    return AsyncMock(side_effect=_insert)


def _make_repo(account: BudgetAccount | None) -> AsyncMock:
    repo = AsyncMock()
    repo.get_log_by_key.return_value = None
    repo.lock_budget.return_value = account
    repo.insert_log = _echo_log()
    return repo


class TestNextBalances:
    def test_credit(self) -> None:
        assert next_balances(_account(), LedgerDirection.IN, Decimal("50")) == (
            Decimal("1050.00"), Decimal("0.00"),
        )

    def test_lock_moves_between_buckets(self) -> None:
        available, locked = next_balances(_account(), LedgerDirection.LOCK, Decimal("400"))
        assert available == Decimal("600.00")
        assert locked == Decimal("400.00")

    def test_unlock_beyond_locked_raises(self) -> None:
        with pytest.raises(InsufficientLockedFundsError):
            next_balances(_account(locked="10"), LedgerDirection.UNLOCK, Decimal("10.01"))

    def test_debit_beyond_available_raises(self) -> None:
        with pytest.raises(InsufficientFundsError):
            next_balances(_account(available="5"), LedgerDirection.OUT, Decimal("5.01"))


class TestLedgerEntry:
    def test_entry_is_immutable(self) -> None:
        entry = BudgetLedgerEntry(
            id=1, user_id="user-1", direction="IN", operation_type="X",
            amount=Decimal("10"), balance_before=Decimal("0"), balance_after=Decimal("10"),
            idempotency_key="k-1",
        )
        with pytest.raises(FrozenInstanceError):
            entry.balance_after = Decimal("99")  # type: ignore[misc]


class TestCredit:
    async def test_credit_writes_balances_and_log(self) -> None:
        repo = _make_repo(_account())
        ledger = BudgetLedger(repo=repo)

        result = await ledger.credit(
            MagicMock(), "user-1", "250.005",
            idempotency_key="k-1", operation_type="ROOM_SETTLEMENT_WIN", bull_pen_id=9,
        )

        assert result.balance_before == Decimal("1000.00")
        assert result.balance_after == Decimal("1250.01")
        assert result.idempotent is False
        assert repo.update_balances.await_args.args[1:] == (
            "user-1", Decimal("1250.01"), Decimal("0.00"),
        )
        kwargs = repo.insert_log.await_args.kwargs
        assert kwargs["direction"] == "IN"
        assert kwargs["bull_pen_id"] == 9
        assert kwargs["idempotency_key"] == "k-1"

    async def test_replay_returns_stored_balances(self) -> None:
        stored = BudgetLedgerEntry(
            id=7, user_id="user-1", direction="IN", operation_type="X",
            amount=Decimal("10"), balance_before=Decimal("1"), balance_after=Decimal("11"),
            idempotency_key="k-1",
        )
        repo = _make_repo(_account())
        repo.get_log_by_key.return_value = stored
        ledger = BudgetLedger(repo=repo)

        result = await ledger.credit(
            MagicMock(), "user-1", 10, idempotency_key="k-1", operation_type="X"
        )

        assert result.idempotent is True
        assert result.log_id == 7
        assert result.balance_after == Decimal("11")
        repo.lock_budget.assert_not_awaited()
        repo.update_balances.assert_not_awaited()

    async def test_replay_detected_after_lock(self) -> None:
        stored = BudgetLedgerEntry(
            id=8, user_id="user-1", direction="IN", operation_type="X",
            amount=Decimal("10"), balance_before=Decimal("0"), balance_after=Decimal("10"),
            idempotency_key="k-2",
        )
        repo = _make_repo(_account())
        repo.get_log_by_key.side_effect = [None, stored]
        ledger = BudgetLedger(repo=repo)

        result = await ledger.credit(
            MagicMock(), "user-1", 10, idempotency_key="k-2", operation_type="X"
        )

        assert result.idempotent is True
        repo.update_balances.assert_not_awaited()

    @pytest.mark.parametrize(
        ("user_id", "bull_pen_id", "amount"),
        [("user-2", 3, 10), ("user-1", 7, 10), ("user-1", 3, 25)],
    )
    async def test_key_reused_for_other_movement_conflicts(
        self, user_id: str, bull_pen_id: int, amount: int
    ) -> None:
        stored = BudgetLedgerEntry(
            id=99, user_id="user-1", direction="OUT", operation_type="ROOM_BUY_IN",
            amount=Decimal("10.00"), balance_before=Decimal("50"), balance_after=Decimal("40"),
            idempotency_key="buyin-3-user-1", bull_pen_id=3,
        )
        repo = _make_repo(_account())
        repo.get_log_by_key.return_value = stored
        ledger = BudgetLedger(repo=repo)

        with pytest.raises(IdempotencyKeyConflictError) as exc:
            await ledger.debit(
                MagicMock(), user_id, amount, idempotency_key="buyin-3-user-1",
                operation_type="ROOM_BUY_IN", bull_pen_id=bull_pen_id,
            )
        assert exc.value.http_status == 409
        repo.update_balances.assert_not_awaited()

    async def test_key_reused_for_other_direction_conflicts(self) -> None:
        stored = BudgetLedgerEntry(
            id=5, user_id="user-1", direction="OUT", operation_type="X",
            amount=Decimal("10"), balance_before=Decimal("20"), balance_after=Decimal("10"),
            idempotency_key="k-3",
        )
        repo = _make_repo(_account())
        repo.get_log_by_key.side_effect = [None, stored]
        ledger = BudgetLedger(repo=repo)

        with pytest.raises(IdempotencyKeyConflictError):
            await ledger.credit(
                MagicMock(), "user-1", 10, idempotency_key="k-3", operation_type="X"
            )
        repo.update_balances.assert_not_awaited()

    @pytest.mark.parametrize("amount", [0, "-5", "0.001"])
    async def test_non_positive_amount_rejected(self, amount: object) -> None:
        ledger = BudgetLedger(repo=_make_repo(_account()))
        with pytest.raises(InvalidAmountError):
            await ledger.credit(
                MagicMock(), "user-1", amount, idempotency_key="k", operation_type="X"
            )

    async def test_missing_budget(self) -> None:
        ledger = BudgetLedger(repo=_make_repo(None))
        with pytest.raises(BudgetNotFoundError):
            await ledger.credit(MagicMock(), "ghost", 1, idempotency_key="k", operation_type="X")

    async def test_frozen_budget(self) -> None:
        ledger = BudgetLedger(repo=_make_repo(_account(status=BudgetStatus.FROZEN.value)))
        with pytest.raises(BudgetFrozenError):
            await ledger.credit(MagicMock(), "user-1", 1, idempotency_key="k", operation_type="X")


class TestDebitAndLock:
    async def test_debit_insufficient_funds_writes_nothing(self) -> None:
        repo = _make_repo(_account(available="100.00"))
        ledger = BudgetLedger(repo=repo)

        with pytest.raises(InsufficientFundsError):
            await ledger.debit(
                MagicMock(), "user-1", "100.01", idempotency_key="k", operation_type="ROOM_BUY_IN"
            )
        repo.update_balances.assert_not_awaited()
        repo.insert_log.assert_not_awaited()

    async def test_lock_records_bucket_move(self) -> None:
        repo = _make_repo(_account())
        ledger = BudgetLedger(repo=repo)

        await ledger.lock(MagicMock(), "user-1", 300, idempotency_key="k", operation_type="X")

        kwargs = repo.insert_log.await_args.kwargs
        assert kwargs["direction"] == "LOCK"
        assert kwargs["moved_from"] == "available"
        assert kwargs["moved_to"] == "locked"
        assert kwargs["balance_after"] == Decimal("700.00")

    async def test_unlock(self) -> None:
        repo = _make_repo(_account(available="0", locked="300"))
        ledger = BudgetLedger(repo=repo)

        result = await ledger.unlock(
            MagicMock(), "user-1", 300, idempotency_key="k", operation_type="X"
        )

        assert result.balance_after == Decimal("300.00")
        assert repo.insert_log.await_args.kwargs["moved_to"] == "available"


class TestAdjust:
    async def test_adjust_records_admin(self) -> None:
        repo = _make_repo(_account())
        ledger = BudgetLedger(repo=repo)

        await ledger.adjust(
            MagicMock(), "user-1", 5, "OUT", admin_id="admin-1", idempotency_key="k"
        )

        kwargs = repo.insert_log.await_args.kwargs
        assert kwargs["operation_type"] == "ADJUSTMENT"
        assert kwargs["meta"]["created_by"] == "admin-1"

    async def test_adjust_rejects_lock_direction(self) -> None:
        ledger = BudgetLedger(repo=_make_repo(_account()))
        with pytest.raises(AppError) as exc:
            await ledger.adjust(
                MagicMock(), "user-1", 5, "LOCK", admin_id="admin-1", idempotency_key="k"
            )
        assert exc.value.reason == "INVALID_DIRECTION"


class TestTransfer:
    async def test_transfer_writes_paired_rows(self) -> None:
        repo = AsyncMock()
        repo.get_log_by_key.return_value = None
        accounts = {
            "alice": _account("500", user_id="alice"),
            "bob": _account("20", user_id="bob"),
        }
        repo.lock_budget.side_effect = lambda db, uid: accounts[uid]
        repo.insert_log = _echo_log()
        ledger = BudgetLedger(repo=repo)

        result = await ledger.transfer(
            MagicMock(), "bob", "alice", "15", idempotency_key="t-1"
        )

        locked_order = [c.args[1] for c in repo.lock_budget.await_args_list]
        assert locked_order == ["alice", "bob"]
        assert result.debit.balance_after == Decimal("5.00")
        assert result.credit.balance_after == Decimal("515.00")
        keys = [c.kwargs["idempotency_key"] for c in repo.insert_log.await_args_list]
        assert keys == ["t-1", "t-1:in"]
        corr = {c.kwargs["correlation_id"] for c in repo.insert_log.await_args_list}
        assert corr == {result.correlation_id}

    async def test_same_user_rejected(self) -> None:
        ledger = BudgetLedger(repo=AsyncMock())
        with pytest.raises(SameUserTransferError):
            await ledger.transfer(MagicMock(), "a", "a", 1, idempotency_key="k")


def _keyed_repo(accounts: dict[str, BudgetAccount]) -> AsyncMock:
    """Repository whose get_log_by_key sees every row insert_log wrote."""
    rows: dict[str, BudgetLedgerEntry] = {}

    async def _insert(db: object, **kwargs: object) -> BudgetLedgerEntry:
        entry = BudgetLedgerEntry(id=len(rows) + 1, **kwargs)  # type: ignore[arg-type]
        rows[entry.idempotency_key] = entry
        return entry

    def _update(db: object, uid: str, available: Decimal, locked: Decimal) -> None:
        accounts[uid] = BudgetAccount(
            user_id=uid, available_balance=available, locked_balance=locked
        )

    repo = AsyncMock()
    repo.get_log_by_key.side_effect = lambda db, key: rows.get(key)
    repo.lock_budget.side_effect = lambda db, uid: accounts[uid]
    repo.update_balances.side_effect = _update
    repo.insert_log = AsyncMock(side_effect=_insert)
    return repo


class TestTransferReplay:
    async def test_replay_returns_original_rows(self) -> None:
        repo = _keyed_repo({"alice": _account("500", user_id="alice"),
                            "bob": _account("20", user_id="bob")})
        ledger = BudgetLedger(repo=repo)

        first = await ledger.transfer(MagicMock(), "bob", "alice", "15", idempotency_key="t-1")
        again = await ledger.transfer(MagicMock(), "bob", "alice", "15", idempotency_key="t-1")

        assert again.idempotent is True
        assert again.correlation_id == first.correlation_id
        assert again.debit.log_id == first.debit.log_id
        assert again.debit.balance_after == first.debit.balance_after == Decimal("5.00")
        assert again.credit.balance_after == first.credit.balance_after == Decimal("515.00")
        assert repo.insert_log.await_count == 2

    async def test_replay_ignores_shared_correlation_id(self) -> None:
        repo = _keyed_repo({"alice": _account("500", user_id="alice"),
                            "bob": _account("20", user_id="bob")})
        ledger = BudgetLedger(repo=repo)

        await ledger.transfer(
            MagicMock(), "bob", "alice", "15", idempotency_key="t-1", correlation_id="batch-1"
        )
        second = await ledger.transfer(
            MagicMock(), "alice", "bob", "100", idempotency_key="t-2", correlation_id="batch-1"
        )
        replay = await ledger.transfer(
            MagicMock(), "alice", "bob", "100", idempotency_key="t-2", correlation_id="batch-1"
        )

        assert replay.debit.log_id == second.debit.log_id
        assert replay.debit.balance_after == Decimal("415.00")
        assert replay.credit.balance_after == Decimal("105.00")
        assert repo.insert_log.await_count == 4

    async def test_replay_with_other_amount_conflicts(self) -> None:
        repo = _keyed_repo({"alice": _account("500", user_id="alice"),
                            "bob": _account("20", user_id="bob")})
        ledger = BudgetLedger(repo=repo)

        await ledger.transfer(MagicMock(), "bob", "alice", "15", idempotency_key="t-1")
        with pytest.raises(IdempotencyKeyConflictError):
            await ledger.transfer(MagicMock(), "bob", "alice", "16", idempotency_key="t-1")
        assert repo.insert_log.await_count == 2
