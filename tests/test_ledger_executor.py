import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.models.ledger import LedgerEventType, PointTransaction
from takoyadon_ledger.services.ledger import (
    GuardResult,
    IdempotencyConflictError,
    IdempotencyGuard,
    LedgerRejection,
    LedgerStore,
    RejectionCode,
    StoreUnavailableError,
    TransactionExecutor,
)


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is unreachable"))


async def _transaction_count(session, account_id: str) -> int:
    result = await session.execute(
        select(func.count(PointTransaction.id)).where(PointTransaction.account_id == account_id)
    )
    return int(result.scalar_one())


@pytest.mark.asyncio
async def test_debit_beyond_balance_is_rejected_without_side_effects(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=30)
        executor = TransactionExecutor(session)

        with pytest.raises(LedgerRejection) as excinfo:
            await executor.post(
                account_id="cust-1",
                delta=-31,
                reason="Redeemed: Too much",
                idempotency_key="redeem:cust-1:too-much",
                event_type=LedgerEventType.REDEEM,
            )

        assert excinfo.value.code == RejectionCode.INSUFFICIENT_BALANCE
        assert excinfo.value.message == "Not enough points"

    async with session_factory() as session:
        account = await session.get(LoyaltyAccount, "cust-1")
        assert account.balance == 30
        assert await _transaction_count(session, "cust-1") == 1
        assert await LedgerStore(session).find_transaction("redeem:cust-1:too-much") is None


@pytest.mark.asyncio
async def test_exact_balance_debit_reaches_zero(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=50)
        posting = await TransactionExecutor(session).post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )

    assert posting.balance == 0
    assert posting.transaction.balance_after == 0
    assert posting.replayed is False


@pytest.mark.asyncio
async def test_repeated_key_replays_original_posting(session_factory, seed_account, reset_ledger_metrics) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        executor = TransactionExecutor(session)
        first = await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )
        second = await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )

        assert first.replayed is False
        assert second.replayed is True
        assert second.transaction.id == first.transaction.id
        assert second.balance == first.balance == 50
        assert await LedgerStore(session).current_balance("cust-1") == 50
        assert await _transaction_count(session, "cust-1") == 2

    snapshot = reset_ledger_metrics.snapshot()
    assert snapshot.postings["replayed"] == 1


@pytest.mark.asyncio
async def test_replay_reports_balance_at_posting_time(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        executor = TransactionExecutor(session)
        await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )
        await executor.post(
            account_id="cust-1",
            delta=40,
            reason="Approved: Shared a photo",
            idempotency_key="activity:abc",
            event_type=LedgerEventType.ACTIVITY,
        )
        replay = await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )

    assert replay.replayed is True
    assert replay.balance == 50


@pytest.mark.asyncio
async def test_key_reuse_with_different_delta_is_a_conflict(
    session_factory, seed_account, reset_ledger_metrics
) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        executor = TransactionExecutor(session)
        await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )

        with pytest.raises(IdempotencyConflictError) as excinfo:
            await executor.post(
                account_id="cust-1",
                delta=-60,
                reason="Redeemed: Free Drink",
                idempotency_key="redeem:cust-1:free_drink",
                event_type=LedgerEventType.REDEEM,
            )

        assert excinfo.value.idempotency_key == "redeem:cust-1:free_drink"
        assert await LedgerStore(session).current_balance("cust-1") == 50

    assert reset_ledger_metrics.snapshot().alerts["idempotency_conflict"] == 1


@pytest.mark.asyncio
async def test_balance_equals_sum_of_deltas(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1")
        executor = TransactionExecutor(session)
        steps = [
            (120, LedgerEventType.ACTIVITY),
            (-50, LedgerEventType.REDEEM),
            (100, LedgerEventType.REFERRAL),
            (-500, LedgerEventType.REDEEM),
            (-70, LedgerEventType.REDEEM),
        ]
        for index, (delta, event_type) in enumerate(steps):
            try:
                await executor.post(
                    account_id="cust-1",
                    delta=delta,
                    reason=f"Step {index}",
                    idempotency_key=f"step:{index}",
                    event_type=event_type,
                )
            except LedgerRejection as rejection:
                assert rejection.code == RejectionCode.INSUFFICIENT_BALANCE

        store = LedgerStore(session)
        assert await store.current_balance("cust-1") == 100
        assert await store.sum_deltas("cust-1") == 100
        assert await store.count_transactions("cust-1") == 4


@pytest.mark.asyncio
async def test_unknown_and_inactive_accounts_are_rejected(session_factory, seed_account) -> None:
    async with session_factory() as session:
        executor = TransactionExecutor(session)
        with pytest.raises(LedgerRejection) as missing:
            await executor.post(
                account_id="ghost",
                delta=10,
                reason="Referral bonus: a@b.c",
                idempotency_key="referral:ghost:a@b.c",
                event_type=LedgerEventType.REFERRAL,
            )
        assert missing.value.code == RejectionCode.ACCOUNT_NOT_FOUND

        await seed_account(session, "cust-2", balance=10)
        account = await session.get(LoyaltyAccount, "cust-2")
        account.is_active = False
        await session.commit()

        with pytest.raises(LedgerRejection) as inactive:
            await executor.post(
                account_id="cust-2",
                delta=-5,
                reason="Redeemed: Sticker",
                idempotency_key="redeem:cust-2:sticker",
                event_type=LedgerEventType.REDEEM,
            )
        assert inactive.value.code == RejectionCode.ACCOUNT_INACTIVE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("delta", "reason", "key"),
    [
        (0, "Nothing", "zero"),
        (10, "  ", "blank-reason"),
        (10, "Bonus", ""),
        (10, "Bonus", "k" * 256),
    ],
)
async def test_invalid_postings_raise_value_error(session_factory, seed_account, delta, reason, key) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1")
        with pytest.raises(ValueError):
            await TransactionExecutor(session).post(
                account_id="cust-1",
                delta=delta,
                reason=reason,
                idempotency_key=key,
                event_type=LedgerEventType.ADJUSTMENT,
            )


@pytest.mark.asyncio
async def test_guard_rejects_blank_keys(session_factory) -> None:
    async with session_factory() as session:
        guard = IdempotencyGuard(LedgerStore(session))
        with pytest.raises(ValueError):
            await guard.check("   ")


@pytest.mark.asyncio
async def test_guard_fails_closed_when_store_unreachable(
    session_factory, seed_account, monkeypatch, reset_ledger_metrics
) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        store = LedgerStore(session)

        async def unreachable(_key: str):
            raise _operational_error()

        monkeypatch.setattr(store, "find_transaction", unreachable)
        executor = TransactionExecutor(session, store=store)

        with pytest.raises(StoreUnavailableError):
            await executor.post(
                account_id="cust-1",
                delta=-50,
                reason="Redeemed: Free Drink",
                idempotency_key="redeem:cust-1:free_drink",
                event_type=LedgerEventType.REDEEM,
            )

    async with session_factory() as session:
        assert await LedgerStore(session).current_balance("cust-1") == 100

    assert reset_ledger_metrics.snapshot().postings["store_unavailable"] == 1


@pytest.mark.asyncio
async def test_failure_mid_unit_of_work_rolls_back_log_entry(session_factory, seed_account, monkeypatch) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        store = LedgerStore(session)

        async def lost_connection(_account_id: str, _delta: int):
            raise _operational_error()

        monkeypatch.setattr(store, "apply_delta", lost_connection)
        executor = TransactionExecutor(session, store=store)

        with pytest.raises(StoreUnavailableError):
            await executor.post(
                account_id="cust-1",
                delta=-50,
                reason="Redeemed: Free Drink",
                idempotency_key="redeem:cust-1:free_drink",
                event_type=LedgerEventType.REDEEM,
            )

    async with session_factory() as session:
        store = LedgerStore(session)
        assert await store.current_balance("cust-1") == 100
        assert await store.find_transaction("redeem:cust-1:free_drink") is None

        retry = await TransactionExecutor(session).post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )
        assert retry.replayed is False
        assert retry.balance == 50


@pytest.mark.asyncio
async def test_unique_key_violation_replays_committed_row(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1", balance=100)
        first = await TransactionExecutor(session).post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )
        first_id = first.transaction.id

    class BlindGuard(IdempotencyGuard):
        async def check(self, idempotency_key: str) -> GuardResult:
            return GuardResult(already_applied=False)

    async with session_factory() as session:
        store = LedgerStore(session)
        executor = TransactionExecutor(session, store=store, guard=BlindGuard(store))
        posting = await executor.post(
            account_id="cust-1",
            delta=-50,
            reason="Redeemed: Free Drink",
            idempotency_key="redeem:cust-1:free_drink",
            event_type=LedgerEventType.REDEEM,
        )

        assert posting.replayed is True
        assert posting.transaction.id == first_id
        assert await store.current_balance("cust-1") == 50
