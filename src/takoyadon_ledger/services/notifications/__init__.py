"""Notification service package."""

from .backend import EmailBackend, InMemoryEmailBackend, SMTPEmailBackend
from .inbox import NotificationInboxService
from .notifier import LedgerNotifier
from .outbox import OutboxDispatcher, build_default_backend
from .templates import RenderedTemplate

__all__ = [
    "EmailBackend",
    "InMemoryEmailBackend",
    "LedgerNotifier",
    "NotificationInboxService",
    "OutboxDispatcher",
    "RenderedTemplate",
    "SMTPEmailBackend",
    "build_default_backend",
]
