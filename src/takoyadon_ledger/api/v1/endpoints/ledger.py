"""Reward redemption against the points ledger."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.errors import ledger_http_errors, raise_for_outcome
from takoyadon_ledger.api.dependencies.session import STAFF_ROLES, ensure_owner_or_roles, require_actor
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.schemas.ledger import LedgerOutcomeResponse, serialize_outcome
from takoyadon_ledger.services.ledger import LedgerEventHandlers


router = APIRouter(prefix="/ledger", tags=["Ledger"])


class RedemptionRequest(BaseModel):
    rewardId: str = Field(..., min_length=1, max_length=64, description="Reward to redeem")
    accountId: Optional[str] = Field(None, description="Defaults to the calling account")
    requestId: Optional[str] = Field(
        None,
        max_length=100,
        description="Client generated id; repeat it to retry safely, change it to redeem again",
    )


@router.post("/redemptions", response_model=LedgerOutcomeResponse)
async def redeem_reward(
    payload: RedemptionRequest,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> LedgerOutcomeResponse:
    account_id = payload.accountId or actor.id
    ensure_owner_or_roles(actor, account_id, *STAFF_ROLES)

    with ledger_http_errors():
        outcome = await LedgerEventHandlers(db).redeem(account_id, payload.rewardId, payload.requestId)
        raise_for_outcome(outcome)
    return serialize_outcome(outcome)
