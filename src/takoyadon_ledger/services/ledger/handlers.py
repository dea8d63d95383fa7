"""Business events that move points: redemption, activity approval, referrals."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Literal
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.core.settings import get_settings
from takoyadon_ledger.models.activity import ActivityStatus, PointEarningActivity
from takoyadon_ledger.models.ledger import LedgerEventType
from takoyadon_ledger.models.referral import Referral, ReferralStatus
from takoyadon_ledger.observability.ledger import LedgerObservabilityStore, get_ledger_store
from takoyadon_ledger.services.catalog import ActivityRuleBook, RewardCatalog
from takoyadon_ledger.services.notifications import LedgerNotifier
from takoyadon_ledger.services.notifications.templates import (
    activity_approved_message,
    adjustment_message,
    redemption_message,
    referral_message,
    render_referral_success,
)

from .errors import LedgerRejection, RejectionCode, StoreUnavailableError
from .executor import LedgerPosting, TransactionExecutor
from .guard import REFERRAL_IDENTITY_MAX_LENGTH, IdempotencyGuard, activity_key, redeem_key, referral_key
from .store import LedgerStore


OutcomeStatus = Literal["committed", "replayed", "rejected"]


@dataclass
class LedgerOutcome:
    """What a business event did to the ledger, in plain values."""

    status: OutcomeStatus
    balance: int | None = None
    transaction_id: UUID | None = None
    delta: int | None = None
    reason: str | None = None
    created_at: datetime | None = None
    rejection_code: RejectionCode | None = None
    message: str | None = None
    notified: bool = False

    @property
    def applied(self) -> bool:
        return self.status != "rejected"

    @classmethod
    def from_posting(cls, posting: LedgerPosting) -> "LedgerOutcome":
        transaction = posting.transaction
        return cls(
            status="replayed" if posting.replayed else "committed",
            balance=posting.balance,
            transaction_id=transaction.id,
            delta=int(transaction.delta),
            reason=transaction.reason,
            created_at=transaction.created_at,
        )

    @classmethod
    def rejected(cls, rejection: LedgerRejection, *, balance: int | None = None) -> "LedgerOutcome":
        return cls(
            status="rejected",
            balance=balance,
            rejection_code=rejection.code,
            message=rejection.message,
        )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except DBAPIError as exc:
        logger.warning("Ledger store unavailable", operation=operation, error=str(exc))
        raise StoreUnavailableError("Ledger store unavailable") from exc


class LedgerEventHandlers:
    """Turns business events into ledger postings followed by a notification.

    Rejections come back as ``LedgerOutcome`` values. ``StoreUnavailableError``
    and ``IdempotencyConflictError`` propagate to the caller.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        executor: TransactionExecutor | None = None,
        notifier: LedgerNotifier | None = None,
        catalog: RewardCatalog | None = None,
        rules: ActivityRuleBook | None = None,
        metrics: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._metrics = metrics or get_ledger_store()
        self._store = LedgerStore(db_session)
        self._guard = IdempotencyGuard(self._store)
        self._executor = executor or TransactionExecutor(
            db_session,
            store=self._store,
            guard=self._guard,
            metrics=self._metrics,
        )
        self._notifier = notifier or LedgerNotifier(db_session, metrics=self._metrics)
        self._catalog = catalog or RewardCatalog(db_session)
        self._rules = rules or ActivityRuleBook(db_session)

    async def redeem(
        self,
        account_id: str,
        reward_id: str,
        request_id: str | None = None,
    ) -> LedgerOutcome:
        with _store_errors("redeem"):
            price = await self._catalog.lookup(reward_id)
        if price is None:
            return await self._reject(
                account_id,
                LedgerRejection(RejectionCode.REWARD_NOT_FOUND, "Reward not found", reward_id=reward_id),
            )

        try:
            posting = await self._executor.post(
                account_id=account_id,
                delta=-price.points_cost,
                reason=f"Redeemed: {price.name}",
                idempotency_key=redeem_key(account_id, reward_id, request_id),
                event_type=LedgerEventType.REDEEM,
                metadata={"reward_id": reward_id, "points_cost": price.points_cost},
            )
        except LedgerRejection as rejection:
            return await self._reject(account_id, rejection, recorded=True)

        outcome = LedgerOutcome.from_posting(posting)
        if not posting.replayed:
            outcome.notified = await self._notifier.notify(
                account_id,
                redemption_message(price.name, price.points_cost),
            )
        return outcome

    async def approve_activity(self, activity_id: UUID, reviewer_id: str | None = None) -> LedgerOutcome:
        """Credit the activity's points, then mark it approved.

        The status write runs in its own unit of work after the posting so a
        failure there never costs the customer their points.
        """

        key = activity_key(activity_id)
        with _store_errors("approve_activity"):
            activity = await self._db.get(PointEarningActivity, activity_id)
            if activity is None:
                return await self._reject(
                    None,
                    LedgerRejection(
                        RejectionCode.ACTIVITY_NOT_FOUND,
                        "Activity not found",
                        activity_id=str(activity_id),
                    ),
                )

            account_id = activity.account_id
            activity_type = activity.activity_type
            description = activity.description
            status = activity.status

            if status == ActivityStatus.REJECTED:
                return await self._reject(
                    account_id,
                    LedgerRejection(
                        RejectionCode.ACTIVITY_NOT_PENDING,
                        "Activity has already been rejected",
                        activity_id=str(activity_id),
                    ),
                )

            if status == ActivityStatus.APPROVED:
                check = await self._guard.check(key)
                if check.already_applied and check.transaction is not None:
                    self._metrics.record_replay()
                    return LedgerOutcome.from_posting(
                        LedgerPosting(
                            transaction=check.transaction,
                            balance=int(check.transaction.balance_after or 0),
                            replayed=True,
                        )
                    )

            points = await self._rules.points_for(activity_type)
        if points is None:
            return await self._reject(
                account_id,
                LedgerRejection(
                    RejectionCode.INVALID_ACTIVITY_TYPE,
                    "Invalid activity type",
                    activity_type=activity_type,
                ),
            )

        try:
            posting = await self._executor.post(
                account_id=account_id,
                delta=points,
                reason=f"Approved: {description}",
                idempotency_key=key,
                event_type=LedgerEventType.ACTIVITY,
                metadata={"activity_id": str(activity_id), "activity_type": activity_type},
            )
        except LedgerRejection as rejection:
            return await self._reject(account_id, rejection, recorded=True)

        outcome = LedgerOutcome.from_posting(posting)
        if status == ActivityStatus.PENDING:
            await self._run_secondary_write(
                "activity_status",
                self._mark_activity_approved(activity_id, reviewer_id),
                activity_id=str(activity_id),
                transaction_id=str(outcome.transaction_id),
            )
        if not posting.replayed:
            outcome.notified = await self._notifier.notify(
                account_id,
                activity_approved_message(description, points),
            )
        return outcome

    async def complete_referral(
        self,
        referrer_account_id: str,
        referred_user_identity: str,
        *,
        require_invite: bool = False,
    ) -> LedgerOutcome:
        """Credit the referrer once per referred identity.

        With ``require_invite`` the referrer must have invited the identity
        beforehand; self-service completions and signups use it, staff do not.
        """

        identity = (referred_user_identity or "").strip().lower()
        if not identity:
            raise ValueError("Referred user identity is required")
        if len(identity) > REFERRAL_IDENTITY_MAX_LENGTH:
            raise ValueError(f"Referred user identity is limited to {REFERRAL_IDENTITY_MAX_LENGTH} characters")

        points = get_settings().referral_reward_points
        with _store_errors("complete_referral"):
            referrer = await self._store.get_account(referrer_account_id)
            email = referrer.email if referrer is not None else None
            if require_invite and await self._find_referral(referrer_account_id, identity) is None:
                return await self._reject(
                    referrer_account_id if referrer is not None else None,
                    LedgerRejection(
                        RejectionCode.REFERRAL_NOT_FOUND,
                        "No referral invite for this user",
                        referrer_id=referrer_account_id,
                    ),
                )

        try:
            posting = await self._executor.post(
                account_id=referrer_account_id,
                delta=points,
                reason=f"Referral bonus: {identity}",
                idempotency_key=referral_key(referrer_account_id, identity),
                event_type=LedgerEventType.REFERRAL,
                metadata={"referred_user": identity},
            )
        except LedgerRejection as rejection:
            return await self._reject(referrer_account_id, rejection, recorded=True)

        outcome = LedgerOutcome.from_posting(posting)
        await self._run_secondary_write(
            "referral_status",
            self._mark_referral_completed(referrer_account_id, identity),
            referrer_id=referrer_account_id,
            transaction_id=str(outcome.transaction_id),
        )
        if not posting.replayed:
            outcome.notified = await self._notifier.notify(
                referrer_account_id,
                referral_message(identity, points),
                email=email,
                email_template=render_referral_success(identity, points),
            )
        return outcome

    async def adjust(
        self,
        account_id: str,
        delta: int,
        reason: str,
        idempotency_key: str,
        *,
        actor_id: str | None = None,
    ) -> LedgerOutcome:
        """Manual correction by a super admin; the caller owns the key."""

        try:
            posting = await self._executor.post(
                account_id=account_id,
                delta=delta,
                reason=reason,
                idempotency_key=f"adjustment:{idempotency_key}",
                event_type=LedgerEventType.ADJUSTMENT,
                metadata={"actor_id": actor_id} if actor_id else None,
            )
        except LedgerRejection as rejection:
            return await self._reject(account_id, rejection, recorded=True)

        outcome = LedgerOutcome.from_posting(posting)
        if not posting.replayed:
            outcome.notified = await self._notifier.notify(account_id, adjustment_message(delta, reason))
        return outcome

    async def _reject(
        self,
        account_id: str | None,
        rejection: LedgerRejection,
        *,
        recorded: bool = False,
    ) -> LedgerOutcome:
        if not recorded:
            self._metrics.record_rejection(rejection.code.value)
            logger.info(
                "Ledger event rejected",
                code=rejection.code.value,
                account_id=account_id,
                **rejection.context,
            )
        balance = None
        if account_id is not None:
            with _store_errors("rejection_balance"):
                balance = await self._store.find_balance(account_id)
        return LedgerOutcome.rejected(rejection, balance=balance)

    async def _run_secondary_write(self, name: str, write: Any, **context: Any) -> bool:
        try:
            await write
        except Exception as exc:  # noqa: BLE001 - points are already committed
            try:
                await self._db.rollback()
            except DBAPIError as rollback_exc:  # pragma: no cover - connection already gone
                logger.warning("Rollback after secondary write failure failed", error=str(rollback_exc))
            self._metrics.record_alert(f"secondary_write_failed:{name}")
            logger.opt(exception=exc).error(
                "Secondary write failed after ledger commit",
                write=name,
                error=str(exc),
                **context,
            )
            return False
        return True

    async def _mark_activity_approved(self, activity_id: UUID, reviewer_id: str | None) -> None:
        stmt = (
            update(PointEarningActivity)
            .where(
                PointEarningActivity.id == activity_id,
                PointEarningActivity.status == ActivityStatus.PENDING,
            )
            .values(
                status=ActivityStatus.APPROVED,
                reviewed_by_id=reviewer_id,
                reviewed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.execute(stmt)
        await self._db.commit()

    async def _find_referral(self, referrer_id: str, identity: str) -> Referral | None:
        stmt = select(Referral).where(
            Referral.referrer_id == referrer_id,
            Referral.referred_user_email == identity,
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _mark_referral_completed(self, referrer_id: str, identity: str) -> None:
        referral = await self._find_referral(referrer_id, identity)
        if referral is None:
            referral = Referral(referrer_id=referrer_id, referred_user_email=identity)
            self._db.add(referral)
        elif referral.status == ReferralStatus.COMPLETED:
            return
        referral.status = ReferralStatus.COMPLETED
        referral.completed_at = datetime.now(timezone.utc)
        await self._db.commit()


__all__ = ["LedgerEventHandlers", "LedgerOutcome"]
