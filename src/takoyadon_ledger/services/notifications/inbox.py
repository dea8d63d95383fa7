"""Read side of the in-app notification inbox."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.notification import Notification


class NotificationInboxService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_notifications(
        self,
        account_id: str,
        *,
        limit: int = 50,
        unread_only: bool = False,
    ) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.account_id == account_id)
            .order_by(Notification.created_at.desc())
            .limit(max(1, min(limit, 200)))
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def unread_count(self, account_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.account_id == account_id,
            Notification.is_read.is_(False),
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def mark_read(self, account_id: str, notification_ids: Sequence[UUID] | None = None) -> int:
        """Mark the owner's notifications read; all unread ones when no ids are given."""

        stmt = (
            update(Notification)
            .where(
                Notification.account_id == account_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if notification_ids:
            stmt = stmt.where(Notification.id.in_(list(notification_ids)))
        result = await self._db.execute(stmt)
        await self._db.commit()
        return int(result.rowcount or 0)
