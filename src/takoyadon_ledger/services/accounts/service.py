"""Account lifecycle, referrals, history and audit."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.core.settings import get_settings
from takoyadon_ledger.models.account import AccountRole, LoyaltyAccount
from takoyadon_ledger.models.ledger import LedgerEventType, PointTransaction
from takoyadon_ledger.models.referral import Referral
from takoyadon_ledger.observability.ledger import LedgerObservabilityStore, get_ledger_store
from takoyadon_ledger.services.ledger.errors import LedgerRejection, RejectionCode
from takoyadon_ledger.services.ledger.guard import REFERRAL_IDENTITY_MAX_LENGTH
from takoyadon_ledger.services.ledger.store import (
    LedgerStore,
    decode_history_cursor,
    encode_history_cursor,
)


@dataclass
class AccountAudit:
    account_id: str
    balance: int
    ledger_sum: int
    transaction_count: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_sum


def account_not_found(account_id: str) -> LedgerRejection:
    return LedgerRejection(RejectionCode.ACCOUNT_NOT_FOUND, "Account not found", account_id=account_id)


class AccountService:
    """Registration and read-side operations for loyalty accounts.

    Balances are never written here; the transaction executor owns them.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        metrics: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._store = LedgerStore(db_session)
        self._metrics = metrics or get_ledger_store()

    async def get_account(self, account_id: str) -> LoyaltyAccount | None:
        return await self._store.get_account(account_id)

    async def require_account(self, account_id: str) -> LoyaltyAccount:
        account = await self._store.get_account(account_id)
        if account is None:
            raise account_not_found(account_id)
        return account

    async def register_account(
        self,
        account_id: str,
        *,
        email: str | None = None,
        full_name: str | None = None,
        role: AccountRole = AccountRole.CUSTOMER,
        referred_by_id: str | None = None,
    ) -> LoyaltyAccount:
        """Create the account for an identity-provider user, or return the existing one."""

        account_id = (account_id or "").strip()
        if not account_id:
            raise ValueError("Account id is required")

        existing = await self._store.get_account(account_id)
        if existing is not None:
            return existing

        if referred_by_id:
            if referred_by_id == account_id:
                raise ValueError("Accounts cannot refer themselves")
            if await self._store.get_account(referred_by_id) is None:
                raise account_not_found(referred_by_id)

        account = LoyaltyAccount(
            id=account_id,
            email=email.strip().lower() if email else None,
            full_name=full_name,
            role=role,
            balance=0,
            referred_by_id=referred_by_id,
        )
        self._db.add(account)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when registering account", account_id=account_id)
            return await self.require_account(account_id)

        await self._db.refresh(account)
        logger.info("Registered loyalty account", account_id=account_id, role=role.value)
        return account

    async def deactivate(self, account_id: str) -> LoyaltyAccount:
        account = await self.require_account(account_id)
        if not account.is_active:
            return account

        account.is_active = False
        account.deactivated_at = datetime.now(timezone.utc)
        await self._db.commit()
        await self._db.refresh(account)
        logger.info("Deactivated loyalty account", account_id=account_id)
        return account

    async def create_referral(self, referrer_id: str, referred_user_email: str) -> Referral:
        email = (referred_user_email or "").strip().lower()
        if not email or "@" not in email:
            raise ValueError("A valid referred user email is required")
        if len(email) > REFERRAL_IDENTITY_MAX_LENGTH:
            raise ValueError(f"Referred user email is limited to {REFERRAL_IDENTITY_MAX_LENGTH} characters")

        await self.require_account(referrer_id)
        existing = await self._find_referral(referrer_id, email)
        if existing is not None:
            return existing

        referral = Referral(referrer_id=referrer_id, referred_user_email=email)
        self._db.add(referral)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when creating referral", referrer_id=referrer_id)
            existing = await self._find_referral(referrer_id, email)
            if existing is None:
                raise
            return existing

        await self._db.refresh(referral)
        logger.info("Created referral invite", referrer_id=referrer_id, referral_id=str(referral.id))
        return referral

    async def list_referrals(self, referrer_id: str) -> list[Referral]:
        stmt = (
            select(Referral)
            .where(Referral.referrer_id == referrer_id)
            .order_by(Referral.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def history(
        self,
        account_id: str,
        *,
        limit: int = 25,
        cursor: str | None = None,
        event_types: Sequence[LedgerEventType] | None = None,
    ) -> tuple[list[PointTransaction], str | None]:
        """Return a newest-first page of transactions and the cursor for the next page."""

        decoded = None
        if cursor:
            try:
                decoded = decode_history_cursor(cursor)
            except ValueError as exc:
                raise ValueError("Invalid history cursor") from exc

        rows, next_cursor = await self._store.list_transactions(
            account_id,
            limit=limit,
            cursor=decoded,
            event_types=list(event_types) if event_types else None,
            max_limit=get_settings().ledger_history_page_limit,
        )
        encoded = encode_history_cursor(*next_cursor) if next_cursor else None
        return rows, encoded

    async def verify_account(self, account_id: str) -> AccountAudit:
        """Recompute the transaction sum and compare it with the stored balance."""

        balance = await self._store.find_balance(account_id)
        if balance is None:
            raise account_not_found(account_id)

        audit = AccountAudit(
            account_id=account_id,
            balance=balance,
            ledger_sum=await self._store.sum_deltas(account_id),
            transaction_count=await self._store.count_transactions(account_id),
        )
        if not audit.consistent:
            self._metrics.record_alert("balance_mismatch")
            logger.error(
                "Account balance does not match transaction log",
                account_id=account_id,
                balance=audit.balance,
                ledger_sum=audit.ledger_sum,
            )
        return audit

    async def _find_referral(self, referrer_id: str, email: str) -> Referral | None:
        stmt = select(Referral).where(
            Referral.referrer_id == referrer_id,
            Referral.referred_user_email == email,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()
