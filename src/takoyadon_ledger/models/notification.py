from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from takoyadon_ledger.db.base import Base


class OutboxStatusEnum(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationChannelEnum(str, Enum):
    EMAIL = "email"


class Notification(Base):
    """In-app inbox message shown to the account owner."""

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    account = relationship("LoyaltyAccount", back_populates="notifications")


class NotificationOutbox(Base):
    """Queued external delivery drained by the outbox worker."""

    __tablename__ = "notification_outbox"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=True)
    channel = Column(
        SqlEnum(NotificationChannelEnum, name="notification_channel_enum"),
        nullable=False,
        default=NotificationChannelEnum.EMAIL,
    )
    status = Column(
        SqlEnum(OutboxStatusEnum, name="outbox_status_enum"),
        nullable=False,
        default=OutboxStatusEnum.PENDING,
        server_default=OutboxStatusEnum.PENDING.name,
        index=True,
    )
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body_text = Column(Text, nullable=False)
    body_html = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
