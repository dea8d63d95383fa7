"""Reward catalog and activity point rules consulted by the ledger handlers."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
    true,
)

from takoyadon_ledger.db.base import Base


class Reward(Base):
    """Redeemable reward priced in points."""

    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("points_cost > 0", name="ck_rewards_points_cost_positive"),
    )

    id = Column(String(64), primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    points_cost = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ActivityPointRule(Base):
    """Points granted when an activity of a given type is approved."""

    __tablename__ = "activity_point_rules"
    __table_args__ = (
        CheckConstraint("points_value > 0", name="ck_activity_point_rules_points_positive"),
    )

    activity_type = Column(String(64), primary_key=True)
    points_value = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
