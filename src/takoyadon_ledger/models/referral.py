"""Referral invites linking a referrer to a referred user's identity."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from takoyadon_ledger.db.base import Base


class ReferralStatus(str, Enum):
    """Lifecycle statuses for referral invites."""

    PENDING = "pending"
    COMPLETED = "completed"


class Referral(Base):
    """Referral invite issued by an account for a prospective member."""

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_user_email", name="uq_referrals_referrer_email"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    referrer_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=False, index=True)
    referred_user_email = Column(String, nullable=False)
    status = Column(
        SqlEnum(ReferralStatus, name="referral_status"),
        nullable=False,
        default=ReferralStatus.PENDING,
        server_default=ReferralStatus.PENDING.name,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    referrer = relationship("LoyaltyAccount")
