"""Background workers supporting async processing."""

from .notification_outbox import NotificationOutboxWorker

__all__ = ["NotificationOutboxWorker"]
