"""Best-effort user messages emitted after a ledger commit."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.notification import (
    Notification,
    NotificationChannelEnum,
    NotificationOutbox,
)
from takoyadon_ledger.observability.ledger import LedgerObservabilityStore, get_ledger_store

from .templates import RenderedTemplate


class LedgerNotifier:
    """Writes inbox messages and queues emails without ever raising.

    Call only after the ledger transaction has committed. Email delivery is
    deferred to the outbox worker so a slow provider never blocks a posting.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        metrics: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._metrics = metrics or get_ledger_store()

    async def notify(
        self,
        account_id: str,
        message: str,
        *,
        email: str | None = None,
        email_template: RenderedTemplate | None = None,
    ) -> bool:
        """Return ``True`` when the message was stored, ``False`` otherwise."""

        try:
            await self._write(account_id, message, email=email, email_template=email_template)
        except Exception as exc:  # noqa: BLE001 - notification failures never reach the caller
            await self._safe_rollback()
            self._metrics.record_notification("failed")
            logger.opt(exception=exc).error(
                "Failed to record ledger notification",
                account_id=account_id,
                error=str(exc),
            )
            return False

        self._metrics.record_notification("stored")
        logger.debug("Recorded ledger notification", account_id=account_id, queued_email=bool(email))
        return True

    async def _write(
        self,
        account_id: str,
        message: str,
        *,
        email: str | None,
        email_template: RenderedTemplate | None,
    ) -> None:
        self._db.add(Notification(account_id=account_id, message=message))
        if email and email_template is not None:
            self._db.add(
                NotificationOutbox(
                    account_id=account_id,
                    channel=NotificationChannelEnum.EMAIL,
                    recipient=email,
                    subject=email_template.subject,
                    body_text=email_template.text_body,
                    body_html=email_template.html_body,
                )
            )
        await self._db.commit()

    async def _safe_rollback(self) -> None:
        try:
            await self._db.rollback()
        except DBAPIError as exc:  # pragma: no cover - connection already gone
            logger.warning("Rollback after notification failure failed", error=str(exc))


__all__ = ["LedgerNotifier"]
