"""Reward catalog endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.errors import ledger_http_errors
from takoyadon_ledger.api.dependencies.session import ADMIN_ROLES, require_roles
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.models.catalog import Reward
from takoyadon_ledger.services.catalog import RewardCatalog


router = APIRouter(prefix="/rewards", tags=["Rewards"])


class RewardRequest(BaseModel):
    name: str = Field(..., min_length=1)
    pointsCost: int = Field(..., gt=0)
    description: Optional[str] = None
    isActive: bool = True


class RewardResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    pointsCost: int
    isActive: bool


def _serialize_reward(reward: Reward) -> RewardResponse:
    return RewardResponse(
        id=reward.id,
        name=reward.name,
        description=reward.description,
        pointsCost=int(reward.points_cost),
        isActive=bool(reward.is_active),
    )


@router.get("", response_model=List[RewardResponse])
async def list_rewards(db: AsyncSession = Depends(get_session)) -> List[RewardResponse]:
    rewards = await RewardCatalog(db).list_rewards()
    return [_serialize_reward(reward) for reward in rewards]


@router.put("/{reward_id}", response_model=RewardResponse)
async def upsert_reward(
    reward_id: str,
    payload: RewardRequest,
    _: LoyaltyAccount = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    with ledger_http_errors():
        reward = await RewardCatalog(db).upsert_reward(
            reward_id,
            name=payload.name,
            points_cost=payload.pointsCost,
            description=payload.description,
            is_active=payload.isActive,
        )
    return _serialize_reward(reward)
