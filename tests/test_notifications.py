import pytest
from sqlalchemy import select

from takoyadon_ledger.models.notification import Notification, NotificationOutbox, OutboxStatusEnum
from takoyadon_ledger.services.notifications import (
    InMemoryEmailBackend,
    LedgerNotifier,
    NotificationInboxService,
    OutboxDispatcher,
)
from takoyadon_ledger.services.notifications.templates import render_referral_success
from takoyadon_ledger.workers import NotificationOutboxWorker


class BrokenEmailBackend:
    def __init__(self) -> None:
        self.calls = 0

    async def send_email(self, recipient, subject, body_text, *, body_html=None) -> None:
        self.calls += 1
        raise ConnectionError("smtp relay refused connection")


@pytest.mark.asyncio
async def test_inbox_lists_counts_and_marks_read(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1")
        await seed_account(session, "cust-2")
        notifier = LedgerNotifier(session)
        assert await notifier.notify("cust-1", "First message") is True
        assert await notifier.notify("cust-1", "Second message") is True
        assert await notifier.notify("cust-2", "Someone else's message") is True

        inbox = NotificationInboxService(session)
        items = await inbox.list_notifications("cust-1")
        assert {item.message for item in items} == {"First message", "Second message"}
        assert await inbox.unread_count("cust-1") == 2

        first_id = next(item.id for item in items if item.message == "First message")
        assert await inbox.mark_read("cust-1", [first_id]) == 1
        assert await inbox.unread_count("cust-1") == 1

        assert await inbox.mark_read("cust-1") == 1
        assert await inbox.unread_count("cust-1") == 0
        assert await inbox.unread_count("cust-2") == 1

        unread = await inbox.list_notifications("cust-1", unread_only=True)
        assert unread == []


@pytest.mark.asyncio
async def test_mark_read_ignores_other_accounts_notifications(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "cust-1")
        await seed_account(session, "cust-2")
        await LedgerNotifier(session).notify("cust-2", "Private")
        other_id = (await session.execute(select(Notification.id))).scalar_one()

        updated = await NotificationInboxService(session).mark_read("cust-1", [other_id])

        assert updated == 0
        assert await NotificationInboxService(session).unread_count("cust-2") == 1


@pytest.mark.asyncio
async def test_notifier_reports_failure_instead_of_raising(
    session_factory, seed_account, reset_ledger_metrics
) -> None:
    class ExplodingNotifier(LedgerNotifier):
        async def _write(self, account_id, message, *, email, email_template) -> None:
            raise RuntimeError("disk full")

    async with session_factory() as session:
        await seed_account(session, "cust-1")
        assert await ExplodingNotifier(session).notify("cust-1", "Hello") is False
        assert await LedgerNotifier(session).notify("cust-1", "Hello again") is True

    snapshot = reset_ledger_metrics.snapshot()
    assert snapshot.notifications == {"stored": 1, "failed": 1}


@pytest.mark.asyncio
async def test_outbox_dispatch_sends_pending_email(session_factory, seed_account) -> None:
    backend = InMemoryEmailBackend()
    async with session_factory() as session:
        await seed_account(session, "referrer-1", email="ref@example.com")
        await LedgerNotifier(session).notify(
            "referrer-1",
            "Referral credited",
            email="ref@example.com",
            email_template=render_referral_success("friend@example.com", 100),
        )

        result = await OutboxDispatcher(session, backend).dispatch_pending()

        assert result.sent == 1
        assert result.processed == 1
        assert len(backend.sent_messages) == 1
        message = backend.sent_messages[0]
        assert message["To"] == "ref@example.com"
        assert message["Subject"] == "Referral Successful!"

    async with session_factory() as session:
        row = (await session.execute(select(NotificationOutbox))).scalar_one()
        assert row.status == OutboxStatusEnum.SENT
        assert row.attempts == 1
        assert row.sent_at is not None


@pytest.mark.asyncio
async def test_outbox_retries_then_gives_up(session_factory, seed_account) -> None:
    backend = BrokenEmailBackend()
    async with session_factory() as session:
        await seed_account(session, "referrer-1", email="ref@example.com")
        await LedgerNotifier(session).notify(
            "referrer-1",
            "Referral credited",
            email="ref@example.com",
            email_template=render_referral_success("friend@example.com", 100),
        )
        dispatcher = OutboxDispatcher(session, backend, max_attempts=2)

        first = await dispatcher.dispatch_pending()
        assert first.retried == 1
        second = await dispatcher.dispatch_pending()
        assert second.failed == 1
        third = await dispatcher.dispatch_pending()
        assert third.processed == 0

    assert backend.calls == 2
    async with session_factory() as session:
        row = (await session.execute(select(NotificationOutbox))).scalar_one()
        assert row.status == OutboxStatusEnum.FAILED
        assert row.attempts == 2
        assert "refused" in row.last_error


@pytest.mark.asyncio
async def test_outbox_worker_run_once_uses_fresh_session(session_factory, seed_account) -> None:
    async with session_factory() as session:
        await seed_account(session, "referrer-1", email="ref@example.com")
        await LedgerNotifier(session).notify(
            "referrer-1",
            "Referral credited",
            email="ref@example.com",
            email_template=render_referral_success("friend@example.com", 100),
        )

    backend = InMemoryEmailBackend()
    worker = NotificationOutboxWorker(session_factory, backend=backend, interval_seconds=1, batch_size=10)
    result = await worker.run_once()

    assert result.sent == 1
    assert len(backend.sent_messages) == 1


@pytest.mark.asyncio
async def test_outbox_without_backend_is_skipped(session_factory) -> None:
    async with session_factory() as session:
        result = await OutboxDispatcher(session).dispatch_pending()

    assert result.processed == 0


def test_referral_email_escapes_identity() -> None:
    rendered = render_referral_success("<script>@example.com", 100)

    assert rendered.subject == "Referral Successful!"
    assert "<script>@example.com" in rendered.text_body
    assert "&lt;script&gt;@example.com" in rendered.html_body
    assert "100 loyalty points" in rendered.html_body
