"""Customer submitted point earning activities awaiting staff review."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from takoyadon_ledger.db.base import Base


class ActivityStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PointEarningActivity(Base):
    __tablename__ = "point_earning_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=False, index=True)
    activity_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(
        SqlEnum(ActivityStatus, name="activity_status"),
        nullable=False,
        default=ActivityStatus.PENDING,
        server_default=ActivityStatus.PENDING.name,
        index=True,
    )
    rejection_reason = Column(Text, nullable=True)
    reviewed_by_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("LoyaltyAccount", foreign_keys=[account_id])
