"""Reward catalog and activity rule lookups."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.models.catalog import ActivityPointRule, Reward


DEFAULT_ACTIVITY_RULES: dict[str, int] = {"social_share": 40}


@dataclass(frozen=True)
class RewardPrice:
    reward_id: str
    name: str
    points_cost: int


class RewardCatalog:
    """Resolves reward ids to their point cost and display name."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def lookup(self, reward_id: str) -> RewardPrice | None:
        """Return the price of an active reward, or ``None`` when it cannot be redeemed."""

        reward = await self._db.get(Reward, reward_id)
        if reward is None or not reward.is_active:
            return None
        return RewardPrice(reward_id=reward.id, name=reward.name, points_cost=int(reward.points_cost))

    async def list_rewards(self, *, include_inactive: bool = False) -> list[Reward]:
        stmt = select(Reward).order_by(Reward.points_cost.asc(), Reward.name.asc())
        if not include_inactive:
            stmt = stmt.where(Reward.is_active.is_(True))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def upsert_reward(
        self,
        reward_id: str,
        *,
        name: str,
        points_cost: int,
        description: str | None = None,
        is_active: bool = True,
    ) -> Reward:
        if points_cost <= 0:
            raise ValueError("Reward cost must be positive")

        reward = await self._db.get(Reward, reward_id)
        if reward is None:
            reward = Reward(id=reward_id)
            self._db.add(reward)
        reward.name = name
        reward.points_cost = points_cost
        reward.description = description
        reward.is_active = is_active
        await self._db.commit()
        await self._db.refresh(reward)
        logger.info("Saved reward", reward_id=reward_id, points_cost=points_cost, is_active=is_active)
        return reward


class ActivityRuleBook:
    """Point values per activity type; unknown types have no value."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def points_for(self, activity_type: str) -> int | None:
        rule = await self._db.get(ActivityPointRule, activity_type)
        if rule is None or not rule.is_active:
            return None
        return int(rule.points_value)

    async def list_rules(self) -> list[ActivityPointRule]:
        stmt = select(ActivityPointRule).order_by(ActivityPointRule.activity_type.asc())
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def upsert_rule(
        self,
        activity_type: str,
        *,
        points_value: int,
        description: str | None = None,
        is_active: bool = True,
    ) -> ActivityPointRule:
        if points_value <= 0:
            raise ValueError("Activity points must be positive")

        rule = await self._db.get(ActivityPointRule, activity_type)
        if rule is None:
            rule = ActivityPointRule(activity_type=activity_type)
            self._db.add(rule)
        rule.points_value = points_value
        rule.description = description
        rule.is_active = is_active
        await self._db.commit()
        await self._db.refresh(rule)
        logger.info("Saved activity rule", activity_type=activity_type, points_value=points_value)
        return rule

    async def ensure_defaults(self) -> int:
        """Insert the built-in rules that are missing; returns how many were added."""

        added = 0
        for activity_type, points in DEFAULT_ACTIVITY_RULES.items():
            if await self._db.get(ActivityPointRule, activity_type) is None:
                self._db.add(ActivityPointRule(activity_type=activity_type, points_value=points))
                added += 1
        if added:
            await self._db.commit()
        return added
