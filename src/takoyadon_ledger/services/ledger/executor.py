"""Atomic application of point deltas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.ledger import IDEMPOTENCY_KEY_MAX_LENGTH, LedgerEventType, PointTransaction
from takoyadon_ledger.observability.ledger import LedgerObservabilityStore, get_ledger_store

from .errors import (
    IdempotencyConflictError,
    LedgerRejection,
    RejectionCode,
    StoreUnavailableError,
    insufficient_balance,
)
from .guard import IdempotencyGuard
from .store import LedgerStore


@dataclass
class LedgerPosting:
    """Result of a committed (or replayed) posting."""

    transaction: PointTransaction
    balance: int
    replayed: bool = False


class TransactionExecutor:
    """The single writer of account balances.

    Each call to :meth:`post` is one unit of work: the log row insert, the
    balance guard and the balance update commit together or not at all.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        store: LedgerStore | None = None,
        guard: IdempotencyGuard | None = None,
        metrics: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or LedgerStore(db_session)
        self._guard = guard or IdempotencyGuard(self._store)
        self._metrics = metrics or get_ledger_store()

    async def post(
        self,
        *,
        account_id: str,
        delta: int,
        reason: str,
        idempotency_key: str,
        event_type: LedgerEventType,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerPosting:
        """Apply ``delta`` to the account exactly once per ``idempotency_key``.

        Raises :class:`LedgerRejection` for business refusals,
        :class:`StoreUnavailableError` when the store fails (safe to retry with
        the same key) and :class:`IdempotencyConflictError` when the key was
        already used for a different delta or reason.
        """

        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValueError("Ledger postings require a non-zero integer delta")
        if not reason or not reason.strip():
            raise ValueError("Ledger postings require a reason")
        if not idempotency_key or not idempotency_key.strip():
            raise ValueError("Ledger postings require an idempotency key")
        if len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise ValueError(f"Idempotency keys are limited to {IDEMPOTENCY_KEY_MAX_LENGTH} characters")

        try:
            return await self._post(
                account_id=account_id,
                delta=delta,
                reason=reason,
                idempotency_key=idempotency_key,
                event_type=event_type,
                metadata=metadata,
            )
        except StoreUnavailableError:
            await self._safe_rollback()
            self._metrics.record_store_unavailable()
            raise
        except DBAPIError as exc:
            await self._safe_rollback()
            self._metrics.record_store_unavailable()
            logger.warning(
                "Ledger store unavailable during posting",
                account_id=account_id,
                idempotency_key=idempotency_key,
                error=str(exc),
            )
            raise StoreUnavailableError("Ledger store unavailable") from exc

    async def _post(
        self,
        *,
        account_id: str,
        delta: int,
        reason: str,
        idempotency_key: str,
        event_type: LedgerEventType,
        metadata: dict[str, Any] | None,
    ) -> LedgerPosting:
        check = await self._guard.check(idempotency_key)
        if check.already_applied and check.transaction is not None:
            return self._replay(check.transaction, delta=delta, reason=reason)

        account = await self._store.lock_account(account_id)
        if account is None:
            await self._db.rollback()
            raise self._reject(
                RejectionCode.ACCOUNT_NOT_FOUND,
                "Account not found",
                account_id=account_id,
            )
        if not account.is_active:
            await self._db.rollback()
            raise self._reject(
                RejectionCode.ACCOUNT_INACTIVE,
                "Account is deactivated",
                account_id=account_id,
            )

        try:
            transaction = await self._store.add_transaction(
                account_id=account_id,
                delta=delta,
                reason=reason,
                idempotency_key=idempotency_key,
                event_type=event_type,
                metadata=metadata,
                created_at=datetime.now(timezone.utc),
            )
        except IntegrityError:
            await self._db.rollback()
            existing = await self._store.find_transaction(idempotency_key)
            if existing is None:
                raise
            logger.info("Concurrent duplicate posting detected", idempotency_key=idempotency_key)
            return self._replay(existing, delta=delta, reason=reason)

        new_balance = await self._store.apply_delta(account_id, delta)
        if new_balance is None:
            await self._db.rollback()
            rejection = insufficient_balance(account_id, delta)
            self._metrics.record_rejection(rejection.code.value)
            logger.info(
                "Rejected debit for insufficient balance",
                account_id=account_id,
                delta=delta,
                idempotency_key=idempotency_key,
            )
            raise rejection

        transaction.balance_after = new_balance
        await self._db.commit()

        self._metrics.record_commit(event_type.value)
        logger.info(
            "Posted ledger transaction",
            account_id=account_id,
            transaction_id=str(transaction.id),
            delta=delta,
            balance=new_balance,
            event_type=event_type.value,
        )
        return LedgerPosting(transaction=transaction, balance=new_balance)

    def _replay(self, existing: PointTransaction, *, delta: int, reason: str) -> LedgerPosting:
        if existing.delta != delta or existing.reason != reason:
            self._metrics.record_alert("idempotency_conflict")
            logger.error(
                "Idempotency key reused for a different event",
                idempotency_key=existing.idempotency_key,
                stored_delta=existing.delta,
                requested_delta=delta,
                stored_reason=existing.reason,
                requested_reason=reason,
            )
            raise IdempotencyConflictError(
                existing.idempotency_key,
                "Idempotency key already used for a different posting",
            )

        self._metrics.record_replay()
        logger.info(
            "Replayed ledger transaction",
            idempotency_key=existing.idempotency_key,
            transaction_id=str(existing.id),
        )
        return LedgerPosting(
            transaction=existing,
            balance=int(existing.balance_after or 0),
            replayed=True,
        )

    def _reject(self, code: RejectionCode, message: str, **context: Any) -> LedgerRejection:
        self._metrics.record_rejection(code.value)
        return LedgerRejection(code, message, **context)

    async def _safe_rollback(self) -> None:
        try:
            await self._db.rollback()
        except DBAPIError as exc:  # pragma: no cover - connection already gone
            logger.warning("Rollback after store failure failed", error=str(exc))


__all__ = ["LedgerPosting", "TransactionExecutor"]
