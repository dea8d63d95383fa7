from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.models.ledger import PointTransaction
from takoyadon_ledger.services.ledger import LedgerOutcome

# meta: schema: ledger


class AccountResponse(BaseModel):
    id: str
    email: Optional[str]
    fullName: Optional[str]
    role: str
    balance: int
    isActive: bool
    referredById: Optional[str]
    createdAt: Optional[datetime]
    deactivatedAt: Optional[datetime]


class LedgerOutcomeResponse(BaseModel):
    status: Literal["committed", "replayed"]
    balance: int
    transactionId: UUID
    delta: int
    reason: str
    createdAt: Optional[datetime]
    notified: bool = Field(False, description="Whether the user notification was recorded")


class TransactionResponse(BaseModel):
    id: UUID
    eventType: str
    delta: int
    reason: str
    balanceAfter: Optional[int]
    metadata: dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime


class TransactionWindowResponse(BaseModel):
    accountId: str
    balance: int
    entries: list[TransactionResponse]
    nextCursor: Optional[str]


def serialize_account(account: LoyaltyAccount) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        email=account.email,
        fullName=account.full_name,
        role=account.role.value,
        balance=int(account.balance or 0),
        isActive=bool(account.is_active),
        referredById=account.referred_by_id,
        createdAt=account.created_at,
        deactivatedAt=account.deactivated_at,
    )


def serialize_outcome(outcome: LedgerOutcome) -> LedgerOutcomeResponse:
    return LedgerOutcomeResponse(
        status=outcome.status,
        balance=int(outcome.balance or 0),
        transactionId=outcome.transaction_id,
        delta=int(outcome.delta or 0),
        reason=outcome.reason or "",
        createdAt=outcome.created_at,
        notified=outcome.notified,
    )


def serialize_transaction(transaction: PointTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        eventType=transaction.event_type.value,
        delta=int(transaction.delta),
        reason=transaction.reason,
        balanceAfter=transaction.balance_after,
        metadata=dict(transaction.metadata_json or {}),
        createdAt=transaction.created_at,
    )


__all__ = [
    "AccountResponse",
    "LedgerOutcomeResponse",
    "TransactionResponse",
    "TransactionWindowResponse",
    "serialize_account",
    "serialize_outcome",
    "serialize_transaction",
]
