"""Delivery of queued outbox emails."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.core.settings import get_settings
from takoyadon_ledger.models.notification import NotificationOutbox, OutboxStatusEnum

from .backend import EmailBackend, SMTPEmailBackend


@dataclass
class OutboxDispatchResult:
    sent: int = 0
    retried: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.retried + self.failed


def build_default_backend() -> Optional[EmailBackend]:
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_sender_email:
        return None

    return SMTPEmailBackend(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        sender_email=settings.smtp_sender_email,
    )


class OutboxDispatcher:
    """Sends pending outbox rows and records per-row delivery state."""

    def __init__(
        self,
        db_session: AsyncSession,
        backend: Optional[EmailBackend] = None,
        *,
        max_attempts: int | None = None,
    ) -> None:
        self._db = db_session
        self._backend = backend if backend is not None else build_default_backend()
        self._max_attempts = max_attempts or get_settings().notification_outbox_max_attempts

    async def dispatch_pending(self, *, limit: int = 50) -> OutboxDispatchResult:
        result = OutboxDispatchResult()
        if self._backend is None:
            logger.debug("Outbox dispatch skipped; no email backend configured")
            return result

        stmt = (
            select(NotificationOutbox)
            .where(NotificationOutbox.status == OutboxStatusEnum.PENDING)
            .order_by(NotificationOutbox.created_at.asc())
            .limit(limit)
        )
        rows = list((await self._db.execute(stmt)).scalars().all())
        for row in rows:
            row.attempts = (row.attempts or 0) + 1
            try:
                await self._backend.send_email(
                    row.recipient,
                    row.subject,
                    row.body_text,
                    body_html=row.body_html,
                )
            except Exception as exc:  # noqa: BLE001 - provider errors are recorded on the row
                row.last_error = str(exc)
                if row.attempts >= self._max_attempts:
                    row.status = OutboxStatusEnum.FAILED
                    result.failed += 1
                    logger.error(
                        "Outbox email permanently failed",
                        outbox_id=str(row.id),
                        attempts=row.attempts,
                        error=str(exc),
                    )
                else:
                    result.retried += 1
                    logger.warning(
                        "Outbox email delivery failed; will retry",
                        outbox_id=str(row.id),
                        attempts=row.attempts,
                        error=str(exc),
                    )
                continue

            row.status = OutboxStatusEnum.SENT
            row.sent_at = datetime.now(timezone.utc)
            row.last_error = None
            result.sent += 1

        if rows:
            await self._db.commit()
        logger.info(
            "Outbox dispatch completed",
            sent=result.sent,
            retried=result.retried,
            failed=result.failed,
        )
        return result


__all__ = ["OutboxDispatchResult", "OutboxDispatcher", "build_default_backend"]
