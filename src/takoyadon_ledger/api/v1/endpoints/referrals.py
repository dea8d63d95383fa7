"""Referral invites and referral completion."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.errors import ledger_http_errors, raise_for_outcome
from takoyadon_ledger.api.dependencies.session import STAFF_ROLES, ensure_owner_or_roles, require_actor
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.models.referral import Referral
from takoyadon_ledger.schemas.ledger import LedgerOutcomeResponse, serialize_outcome
from takoyadon_ledger.services.accounts import AccountService
from takoyadon_ledger.services.ledger import REFERRAL_IDENTITY_MAX_LENGTH, LedgerEventHandlers


router = APIRouter(tags=["Referrals"])


class ReferralCreateRequest(BaseModel):
    referredUserEmail: str = Field(
        ..., min_length=3, max_length=REFERRAL_IDENTITY_MAX_LENGTH, description="Email of the invited friend"
    )


class ReferralCompleteRequest(BaseModel):
    referrerAccountId: str = Field(..., min_length=1, max_length=64)
    referredUserIdentity: str = Field(
        ...,
        min_length=1,
        max_length=REFERRAL_IDENTITY_MAX_LENGTH,
        description="Email of the user who signed up",
    )


class ReferralResponse(BaseModel):
    id: UUID
    referrerId: str
    referredUserEmail: str
    status: str
    createdAt: Optional[datetime]
    completedAt: Optional[datetime]


def _serialize_referral(referral: Referral) -> ReferralResponse:
    return ReferralResponse(
        id=referral.id,
        referrerId=referral.referrer_id,
        referredUserEmail=referral.referred_user_email,
        status=referral.status.value,
        createdAt=referral.created_at,
        completedAt=referral.completed_at,
    )


@router.post("/referrals", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def create_referral(
    payload: ReferralCreateRequest,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> ReferralResponse:
    with ledger_http_errors():
        referral = await AccountService(db).create_referral(actor.id, payload.referredUserEmail)
    return _serialize_referral(referral)


@router.get("/accounts/{account_id}/referrals", response_model=List[ReferralResponse])
async def list_referrals(
    account_id: str,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> List[ReferralResponse]:
    ensure_owner_or_roles(actor, account_id, *STAFF_ROLES)
    referrals = await AccountService(db).list_referrals(account_id)
    return [_serialize_referral(referral) for referral in referrals]


@router.post("/referrals/complete", response_model=LedgerOutcomeResponse)
async def complete_referral(
    payload: ReferralCompleteRequest,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> LedgerOutcomeResponse:
    """Credit the referrer once the referred user has signed up.

    Staff may complete any referral. A customer may only complete the referral
    naming their own email, from the account that registered with
    ``referredById`` set to the referrer, and only when the referrer sent an
    invite to that email.
    """

    identity = payload.referredUserIdentity.strip().lower()
    is_staff = actor.role in STAFF_ROLES
    if not is_staff:
        if (
            (actor.email or "").lower() != identity
            or actor.id == payload.referrerAccountId
            or actor.referred_by_id != payload.referrerAccountId
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the referred user or staff may complete a referral",
            )

    with ledger_http_errors():
        outcome = await LedgerEventHandlers(db).complete_referral(
            payload.referrerAccountId,
            identity,
            require_invite=not is_staff,
        )
        raise_for_outcome(outcome)
    return serialize_outcome(outcome)
