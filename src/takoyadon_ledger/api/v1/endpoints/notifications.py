"""In-app notification inbox for the owning account."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.api.dependencies.session import ensure_owner_or_roles, require_actor
from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import LoyaltyAccount
from takoyadon_ledger.services.notifications import NotificationInboxService


router = APIRouter(prefix="/accounts/{account_id}/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: UUID
    message: str
    isRead: bool
    createdAt: Optional[datetime]
    readAt: Optional[datetime]


class NotificationInboxResponse(BaseModel):
    unreadCount: int
    items: List[NotificationResponse]


class MarkReadRequest(BaseModel):
    notificationIds: Optional[List[UUID]] = Field(
        None, description="Notifications to mark read; omit to mark every unread message"
    )


class MarkReadResponse(BaseModel):
    updated: int
    unreadCount: int


@router.get("", response_model=NotificationInboxResponse)
async def list_notifications(
    account_id: str,
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False, alias="unreadOnly"),
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> NotificationInboxResponse:
    ensure_owner_or_roles(actor, account_id)
    inbox = NotificationInboxService(db)
    items = await inbox.list_notifications(account_id, limit=limit, unread_only=unread_only)
    return NotificationInboxResponse(
        unreadCount=await inbox.unread_count(account_id),
        items=[
            NotificationResponse(
                id=item.id,
                message=item.message,
                isRead=bool(item.is_read),
                createdAt=item.created_at,
                readAt=item.read_at,
            )
            for item in items
        ],
    )


@router.post("/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    account_id: str,
    payload: MarkReadRequest | None = None,
    actor: LoyaltyAccount = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    ensure_owner_or_roles(actor, account_id)
    inbox = NotificationInboxService(db)
    updated = await inbox.mark_read(account_id, payload.notificationIds if payload else None)
    return MarkReadResponse(updated=updated, unreadCount=await inbox.unread_count(account_id))
