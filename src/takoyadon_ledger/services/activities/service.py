"""Submission and review of point earning activities."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.activity import ActivityStatus, PointEarningActivity
from takoyadon_ledger.services.accounts import account_not_found
from takoyadon_ledger.services.ledger.errors import LedgerRejection, RejectionCode
from takoyadon_ledger.services.ledger.store import LedgerStore


class ActivityService:
    """Customers submit activities; staff review them.

    Approval lives in :class:`LedgerEventHandlers` because it moves points.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._store = LedgerStore(db_session)

    async def submit(self, account_id: str, *, activity_type: str, description: str) -> PointEarningActivity:
        activity_type = (activity_type or "").strip()
        description = (description or "").strip()
        if not activity_type:
            raise ValueError("Activity type is required")
        if not description:
            raise ValueError("Activity description is required")

        account = await self._store.get_account(account_id)
        if account is None:
            raise account_not_found(account_id)
        if not account.is_active:
            raise LedgerRejection(
                RejectionCode.ACCOUNT_INACTIVE,
                "Account is deactivated",
                account_id=account_id,
            )

        activity = PointEarningActivity(
            account_id=account_id,
            activity_type=activity_type,
            description=description,
            status=ActivityStatus.PENDING,
        )
        self._db.add(activity)
        await self._db.commit()
        await self._db.refresh(activity)
        logger.info(
            "Submitted point earning activity",
            account_id=account_id,
            activity_id=str(activity.id),
            activity_type=activity_type,
        )
        return activity

    async def get(self, activity_id: UUID) -> PointEarningActivity | None:
        return await self._db.get(PointEarningActivity, activity_id)

    async def list_activities(
        self,
        *,
        status: ActivityStatus | None = ActivityStatus.PENDING,
        account_id: str | None = None,
        limit: int = 50,
    ) -> list[PointEarningActivity]:
        stmt = (
            select(PointEarningActivity)
            .order_by(PointEarningActivity.submitted_at.asc(), PointEarningActivity.id.asc())
            .limit(max(1, min(limit, 200)))
        )
        if status is not None:
            stmt = stmt.where(PointEarningActivity.status == status)
        if account_id is not None:
            stmt = stmt.where(PointEarningActivity.account_id == account_id)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def reject(
        self,
        activity_id: UUID,
        *,
        reviewer_id: str | None = None,
        reason: str | None = None,
    ) -> PointEarningActivity:
        activity = await self.get(activity_id)
        if activity is None:
            raise LedgerRejection(
                RejectionCode.ACTIVITY_NOT_FOUND,
                "Activity not found",
                activity_id=str(activity_id),
            )
        if activity.status != ActivityStatus.PENDING:
            raise LedgerRejection(
                RejectionCode.ACTIVITY_NOT_PENDING,
                "Only pending activities can be rejected",
                activity_id=str(activity_id),
            )

        activity.status = ActivityStatus.REJECTED
        activity.rejection_reason = reason
        activity.reviewed_by_id = reviewer_id
        activity.reviewed_at = datetime.now(timezone.utc)
        await self._db.commit()
        await self._db.refresh(activity)
        logger.info("Rejected point earning activity", activity_id=str(activity_id), reviewer_id=reviewer_id)
        return activity
