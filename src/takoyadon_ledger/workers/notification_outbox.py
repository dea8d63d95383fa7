"""Worker that drains the notification outbox on an interval."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.core.settings import settings
from takoyadon_ledger.services.notifications import EmailBackend, OutboxDispatcher
from takoyadon_ledger.services.notifications.outbox import OutboxDispatchResult

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class NotificationOutboxWorker:
    """Retries queued emails until they are sent or run out of attempts."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        backend: EmailBackend | None = None,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._backend = backend
        self.interval_seconds = interval_seconds or settings.notification_outbox_interval_seconds
        self.batch_size = batch_size or settings.notification_outbox_batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self._logger = logger.bind(worker="notification_outbox")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        self._logger.info("Notification outbox worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        self._logger.info("Notification outbox worker stopped")

    async def run_once(self) -> OutboxDispatchResult:
        session = await self._ensure_session()
        async with session as managed_session:
            dispatcher = OutboxDispatcher(managed_session, self._backend)
            return await dispatcher.dispatch_pending(limit=self.batch_size)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
                if result.processed:
                    self._logger.info(
                        "Notification outbox iteration",
                        sent=result.sent,
                        retried=result.retried,
                        failed=result.failed,
                    )
            except Exception as exc:  # pragma: no cover - loop must survive a bad iteration
                self._logger.exception("Notification outbox iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["NotificationOutboxWorker"]
