"""Activity submission, review and point rules."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.errors import ledger_http_errors, raise_for_outcome
from takoyadon_ledger.api.dependencies.session import (
    ADMIN_ROLES,
    STAFF_ROLES,
    require_actor,
    require_roles,
)
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import AccountRole, LoyaltyAccount
from takoyadon_ledger.models.activity import ActivityStatus, PointEarningActivity
from takoyadon_ledger.models.catalog import ActivityPointRule
from takoyadon_ledger.schemas.ledger import LedgerOutcomeResponse, serialize_outcome
from takoyadon_ledger.services.activities import ActivityService
from takoyadon_ledger.services.catalog import ActivityRuleBook
from takoyadon_ledger.services.ledger import LedgerEventHandlers


router = APIRouter(tags=["Activities"])


class ActivitySubmitRequest(BaseModel):
    activityType: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1)


class ActivityRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Shown to the customer")


class ActivityResponse(BaseModel):
    id: UUID
    accountId: str
    activityType: str
    description: str
    status: str
    rejectionReason: Optional[str]
    reviewedById: Optional[str]
    reviewedAt: Optional[datetime]
    submittedAt: Optional[datetime]


class ActivityRuleRequest(BaseModel):
    pointsValue: int = Field(..., gt=0)
    description: Optional[str] = None
    isActive: bool = True


class ActivityRuleResponse(BaseModel):
    activityType: str
    pointsValue: int
    description: Optional[str]
    isActive: bool


def _serialize_activity(activity: PointEarningActivity) -> ActivityResponse:
    return ActivityResponse(
        id=activity.id,
        accountId=activity.account_id,
        activityType=activity.activity_type,
        description=activity.description,
        status=activity.status.value,
        rejectionReason=activity.rejection_reason,
        reviewedById=activity.reviewed_by_id,
        reviewedAt=activity.reviewed_at,
        submittedAt=activity.submitted_at,
    )


def _serialize_rule(rule: ActivityPointRule) -> ActivityRuleResponse:
    return ActivityRuleResponse(
        activityType=rule.activity_type,
        pointsValue=int(rule.points_value),
        description=rule.description,
        isActive=bool(rule.is_active),
    )


@router.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def submit_activity(
    payload: ActivitySubmitRequest,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> ActivityResponse:
    """Customers submit proof of an activity for staff review."""

    with ledger_http_errors():
        activity = await ActivityService(db).submit(
            actor.id,
            activity_type=payload.activityType,
            description=payload.description,
        )
    return _serialize_activity(activity)


@router.get("/activities", response_model=List[ActivityResponse])
async def list_activities(
    status_filter: Optional[str] = Query("pending", alias="status"),
    account_id: Optional[str] = Query(None, alias="accountId"),
    limit: int = Query(50, ge=1, le=200),
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> List[ActivityResponse]:
    activity_status: ActivityStatus | None = None
    if status_filter and status_filter != "all":
        try:
            activity_status = ActivityStatus(status_filter)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported activity status: {status_filter}") from exc

    if actor.role == AccountRole.CUSTOMER:
        account_id = actor.id

    activities = await ActivityService(db).list_activities(
        status=activity_status,
        account_id=account_id,
        limit=limit,
    )
    return [_serialize_activity(activity) for activity in activities]


@router.post("/activities/{activity_id}/approve", response_model=LedgerOutcomeResponse)
async def approve_activity(
    activity_id: UUID,
    actor: LoyaltyAccount = Depends(require_roles(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_session),
) -> LedgerOutcomeResponse:
    reviewer_id = actor.id
    with ledger_http_errors():
        outcome = await LedgerEventHandlers(db).approve_activity(activity_id, reviewer_id=reviewer_id)
        raise_for_outcome(outcome)
    return serialize_outcome(outcome)


@router.post("/activities/{activity_id}/reject", response_model=ActivityResponse)
async def reject_activity(
    activity_id: UUID,
    payload: ActivityRejectRequest | None = None,
    actor: LoyaltyAccount = Depends(require_roles(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_session),
) -> ActivityResponse:
    with ledger_http_errors():
        activity = await ActivityService(db).reject(
            activity_id,
            reviewer_id=actor.id,
            reason=payload.reason if payload else None,
        )
    return _serialize_activity(activity)


@router.get("/activity-rules", response_model=List[ActivityRuleResponse])
async def list_activity_rules(db: AsyncSession = Depends(get_session)) -> List[ActivityRuleResponse]:
    rules = await ActivityRuleBook(db).list_rules()
    return [_serialize_rule(rule) for rule in rules]


@router.put("/activity-rules/{activity_type}", response_model=ActivityRuleResponse)
async def upsert_activity_rule(
    activity_type: str,
    payload: ActivityRuleRequest,
    _: LoyaltyAccount = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_session),
) -> ActivityRuleResponse:
    with ledger_http_errors():
        rule = await ActivityRuleBook(db).upsert_rule(
            activity_type,
            points_value=payload.pointsValue,
            description=payload.description,
            is_active=payload.isActive,
        )
    return _serialize_rule(rule)
