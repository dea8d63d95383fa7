"""Loyalty accounts holding the authoritative point balance."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    String,
    func,
    true,
)
from sqlalchemy.orm import relationship

from takoyadon_ledger.db.base import Base


class AccountRole(str, Enum):
    """User tiers of the loyalty program."""

    CUSTOMER = "customer"
    BRANCH_STAFF = "branch_staff"
    FRANCHISE_ADMIN = "franchise_admin"
    SUPER_ADMIN = "super_admin"


class LoyaltyAccount(Base):
    """One account per registered user; never deleted, only deactivated."""

    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
    )

    id = Column(String(64), primary_key=True)
    email = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=True)
    role = Column(
        SqlEnum(AccountRole, name="account_role"),
        nullable=False,
        default=AccountRole.CUSTOMER,
        server_default=AccountRole.CUSTOMER.name,
    )
    balance = Column(BigInteger, nullable=False, default=0, server_default="0")
    referred_by_id = Column(String(64), ForeignKey("loyalty_accounts.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    transactions = relationship("PointTransaction", back_populates="account")
    notifications = relationship("Notification", back_populates="account")
    referred_by = relationship("LoyaltyAccount", remote_side=[id])
