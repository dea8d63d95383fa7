"""Append-only point transaction log."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    String,
    JSON,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from takoyadon_ledger.db.base import Base


IDEMPOTENCY_KEY_MAX_LENGTH = 255


class LedgerEventType(str, Enum):
    """Business events that may move a balance."""

    REDEEM = "redeem"
    ACTIVITY = "activity"
    REFERRAL = "referral"
    ADJUSTMENT = "adjustment"


class PointTransaction(Base):
    """Immutable record of one accepted business event."""

    __tablename__ = "point_transactions"
    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_point_transactions_delta_non_zero"),
        Index("ix_point_transactions_account_created", "account_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=False)
    event_type = Column(SqlEnum(LedgerEventType, name="ledger_event_type"), nullable=False)
    delta = Column(BigInteger, nullable=False)
    reason = Column(String, nullable=False)
    idempotency_key = Column(String(IDEMPOTENCY_KEY_MAX_LENGTH), nullable=False, unique=True)
    balance_after = Column(BigInteger, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("LoyaltyAccount", back_populates="transactions")
