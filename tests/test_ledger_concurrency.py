import asyncio

import pytest

from takoyadon_ledger.models.ledger import LedgerEventType
from takoyadon_ledger.services.ledger import (
    LedgerEventHandlers,
    LedgerStore,
    RejectionCode,
    TransactionExecutor,
)


@pytest.mark.asyncio
async def test_concurrent_debits_cannot_overdraw(file_session_factory, seed_account, seed_catalog) -> None:
    async with file_session_factory() as session:
        await seed_catalog(session)
        await seed_account(session, "cust-1", balance=50)

    async def redeem(request_id: str):
        async with file_session_factory() as session:
            return await LedgerEventHandlers(session).redeem("cust-1", "free_drink", request_id=request_id)

    outcomes = await asyncio.gather(redeem("tab-a"), redeem("tab-b"))

    statuses = sorted(outcome.status for outcome in outcomes)
    assert statuses == ["committed", "rejected"]
    rejected = next(outcome for outcome in outcomes if outcome.status == "rejected")
    assert rejected.rejection_code == RejectionCode.INSUFFICIENT_BALANCE

    async with file_session_factory() as session:
        store = LedgerStore(session)
        assert await store.current_balance("cust-1") == 0
        assert await store.sum_deltas("cust-1") == 0


@pytest.mark.asyncio
async def test_concurrent_duplicates_apply_once(file_session_factory, seed_account) -> None:
    async with file_session_factory() as session:
        await seed_account(session, "cust-1")

    async def credit():
        async with file_session_factory() as session:
            return await TransactionExecutor(session).post(
                account_id="cust-1",
                delta=40,
                reason="Approved: Shared a photo",
                idempotency_key="activity:photo-1",
                event_type=LedgerEventType.ACTIVITY,
            )

    postings = await asyncio.gather(*(credit() for _ in range(4)))

    assert sum(1 for posting in postings if not posting.replayed) == 1
    assert {posting.transaction.id for posting in postings} == {postings[0].transaction.id}
    assert all(posting.balance == 40 for posting in postings)

    async with file_session_factory() as session:
        store = LedgerStore(session)
        assert await store.current_balance("cust-1") == 40
        assert await store.count_transactions("cust-1") == 1
