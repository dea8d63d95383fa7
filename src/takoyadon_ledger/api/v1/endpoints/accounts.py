"""Account registration, balance history, audit and manual adjustments."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.errors import ledger_http_errors, raise_for_outcome
from takoyadon_ledger.api.dependencies.session import (
    STAFF_ROLES,
    ensure_owner_or_roles,
    optional_actor,
    require_actor,
    require_roles,
)
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import AccountRole, LoyaltyAccount
from takoyadon_ledger.models.ledger import LedgerEventType
from takoyadon_ledger.schemas.ledger import (
    AccountResponse,
    LedgerOutcomeResponse,
    TransactionWindowResponse,
    serialize_account,
    serialize_outcome,
    serialize_transaction,
)
from takoyadon_ledger.services.accounts import AccountService
from takoyadon_ledger.services.ledger import REFERRAL_IDENTITY_MAX_LENGTH, LedgerEventHandlers


router = APIRouter(prefix="/accounts", tags=["Accounts"])


class AccountRegisterRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, description="Identity provider user id")
    email: Optional[str] = Field(
        None, max_length=REFERRAL_IDENTITY_MAX_LENGTH, description="Contact email used for notifications"
    )
    fullName: Optional[str] = None
    role: AccountRole = AccountRole.CUSTOMER
    referredById: Optional[str] = Field(None, max_length=64, description="Account id of the referrer, if any")


class AccountAuditResponse(BaseModel):
    accountId: str
    balance: int
    ledgerSum: int
    transactionCount: int
    consistent: bool


class AdjustmentRequest(BaseModel):
    delta: int = Field(..., description="Signed point change; never zero")
    reason: str = Field(..., min_length=1)
    idempotencyKey: str = Field(..., min_length=1, max_length=200)


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def register_account(
    payload: AccountRegisterRequest,
    actor: LoyaltyAccount | None = Depends(optional_actor),
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    """Register a user; only super admins may assign a non-customer role.

    A signup naming a referrer who invited this email credits the referrer.
    Re-registering replays that credit instead of paying it twice.
    """

    if payload.role != AccountRole.CUSTOMER and (actor is None or actor.role != AccountRole.SUPER_ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super admins may assign roles")

    service = AccountService(db)
    with ledger_http_errors():
        account = await service.register_account(
            payload.id,
            email=payload.email,
            full_name=payload.fullName,
            role=payload.role,
            referred_by_id=payload.referredById,
        )
        response = serialize_account(account)
        if account.referred_by_id and account.email:
            await LedgerEventHandlers(db).complete_referral(
                account.referred_by_id,
                account.email,
                require_invite=True,
            )
    return response


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    ensure_owner_or_roles(actor, account_id, *STAFF_ROLES)
    with ledger_http_errors():
        account = await AccountService(db).require_account(account_id)
    return serialize_account(account)


@router.post("/{account_id}/deactivate", response_model=AccountResponse)
async def deactivate_account(
    account_id: str,
    _: LoyaltyAccount = Depends(require_roles(AccountRole.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    with ledger_http_errors():
        account = await AccountService(db).deactivate(account_id)
    return serialize_account(account)


@router.get("/{account_id}/transactions", response_model=TransactionWindowResponse)
async def list_transactions(
    account_id: str,
    limit: int = Query(25, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="Opaque cursor from a previous page"),
    types: Optional[List[str]] = Query(None, description="Filter by event type"),
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionWindowResponse:
    ensure_owner_or_roles(actor, account_id, *STAFF_ROLES)

    event_types: list[LedgerEventType] = []
    for value in types or []:
        try:
            event_types.append(LedgerEventType(value))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported event type: {value}") from exc

    service = AccountService(db)
    with ledger_http_errors():
        account = await service.require_account(account_id)
        entries, next_cursor = await service.history(
            account_id,
            limit=limit,
            cursor=cursor,
            event_types=event_types or None,
        )
    return TransactionWindowResponse(
        accountId=account_id,
        balance=int(account.balance or 0),
        entries=[serialize_transaction(entry) for entry in entries],
        nextCursor=next_cursor,
    )


@router.get("/{account_id}/audit", response_model=AccountAuditResponse)
async def audit_account(
    account_id: str,
    _: LoyaltyAccount = Depends(require_roles(AccountRole.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_session),
) -> AccountAuditResponse:
    with ledger_http_errors():
        audit = await AccountService(db).verify_account(account_id)
    return AccountAuditResponse(
        accountId=audit.account_id,
        balance=audit.balance,
        ledgerSum=audit.ledger_sum,
        transactionCount=audit.transaction_count,
        consistent=audit.consistent,
    )


@router.post("/{account_id}/adjustments", response_model=LedgerOutcomeResponse)
async def adjust_balance(
    account_id: str,
    payload: AdjustmentRequest,
    actor: LoyaltyAccount = Depends(require_roles(AccountRole.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_session),
) -> LedgerOutcomeResponse:
    actor_id = actor.id
    with ledger_http_errors():
        outcome = await LedgerEventHandlers(db).adjust(
            account_id,
            payload.delta,
            payload.reason,
            payload.idempotencyKey,
            actor_id=actor_id,
        )
        raise_for_outcome(outcome)
    return serialize_outcome(outcome)
