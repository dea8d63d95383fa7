"""Persistence access for balances and the transaction log."""

from __future__ import annotations

import base64
from datetime import datetime
from typing import Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.models.ledger import LedgerEventType, PointTransaction


HistoryCursor = Tuple[datetime, UUID]


class LedgerStore:
    """Owns every read and write of ``loyalty_accounts.balance`` and ``point_transactions``.

    The store never commits. Callers group its calls into one unit of work and
    decide when to commit or roll back.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    @property
    def session(self) -> AsyncSession:
        return self._db

    async def get_account(self, account_id: str) -> LoyaltyAccount | None:
        return await self._db.get(LoyaltyAccount, account_id)

    async def lock_account(self, account_id: str) -> LoyaltyAccount | None:
        """Load the account row holding a row lock until the unit of work ends.

        ``FOR UPDATE`` is a no-op on SQLite; the guarded update in
        :meth:`apply_delta` keeps the balance check atomic there.
        """

        stmt = (
            select(LoyaltyAccount)
            .where(LoyaltyAccount.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_transaction(self, idempotency_key: str) -> PointTransaction | None:
        stmt = select(PointTransaction).where(PointTransaction.idempotency_key == idempotency_key)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def add_transaction(
        self,
        *,
        account_id: str,
        delta: int,
        reason: str,
        idempotency_key: str,
        event_type: LedgerEventType,
        metadata: dict | None,
        created_at: datetime,
    ) -> PointTransaction:
        """Insert the log row; raises ``IntegrityError`` when the key already exists."""

        transaction = PointTransaction(
            account_id=account_id,
            delta=delta,
            reason=reason,
            idempotency_key=idempotency_key,
            event_type=event_type,
            metadata_json=metadata or {},
            created_at=created_at,
        )
        self._db.add(transaction)
        await self._db.flush()
        return transaction

    async def apply_delta(self, account_id: str, delta: int) -> int | None:
        """Add ``delta`` unless the balance would drop below zero.

        Returns the new balance, or ``None`` when the guard refused the update.
        """

        stmt = (
            update(LoyaltyAccount)
            .where(
                LoyaltyAccount.id == account_id,
                LoyaltyAccount.balance + delta >= 0,
            )
            .values(balance=LoyaltyAccount.balance + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.current_balance(account_id)

    async def current_balance(self, account_id: str) -> int:
        stmt = select(LoyaltyAccount.balance).where(LoyaltyAccount.id == account_id)
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def find_balance(self, account_id: str) -> int | None:
        stmt = select(LoyaltyAccount.balance).where(LoyaltyAccount.id == account_id)
        result = await self._db.execute(stmt)
        balance = result.scalar_one_or_none()
        return int(balance) if balance is not None else None

    async def sum_deltas(self, account_id: str) -> int:
        stmt = select(func.coalesce(func.sum(PointTransaction.delta), 0)).where(
            PointTransaction.account_id == account_id
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def count_transactions(self, account_id: str) -> int:
        stmt = select(func.count(PointTransaction.id)).where(PointTransaction.account_id == account_id)
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def list_transactions(
        self,
        account_id: str,
        *,
        limit: int = 25,
        cursor: HistoryCursor | None = None,
        event_types: list[LedgerEventType] | None = None,
        max_limit: int = 100,
    ) -> tuple[list[PointTransaction], HistoryCursor | None]:
        """Return a newest-first page of the account's history."""

        bounded_limit = max(1, min(limit, max_limit))
        stmt = (
            select(PointTransaction)
            .where(PointTransaction.account_id == account_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        )
        if event_types:
            stmt = stmt.where(PointTransaction.event_type.in_(event_types))
        if cursor:
            cursor_time, cursor_id = cursor
            stmt = stmt.where(
                or_(
                    PointTransaction.created_at < cursor_time,
                    and_(
                        PointTransaction.created_at == cursor_time,
                        PointTransaction.id < cursor_id,
                    ),
                )
            )

        stmt = stmt.limit(bounded_limit + 1)
        result = await self._db.execute(stmt)
        rows = list(result.scalars().all())
        has_more = len(rows) > bounded_limit
        entries = rows[:bounded_limit]
        next_cursor: HistoryCursor | None = None
        if has_more and entries:
            tail = entries[-1]
            next_cursor = (tail.created_at, tail.id)

        return entries, next_cursor


def encode_history_cursor(timestamp: datetime, identifier: UUID) -> str:
    """Encode pagination cursor for chronological queries."""

    payload = f"{timestamp.isoformat()}|{identifier}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("utf-8")


def decode_history_cursor(cursor: str) -> HistoryCursor:
    """Decode pagination cursor into datetime and UUID parts."""

    raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
    timestamp_str, identifier_str = raw.split("|", 1)
    return datetime.fromisoformat(timestamp_str), UUID(identifier_str)
