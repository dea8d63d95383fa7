"""Actor-aware dependencies for ledger APIs."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from takoyadon_ledger.db.session import get_session
from takoyadon_ledger.models.account import AccountRole, LoyaltyAccount


STAFF_ROLES = (AccountRole.BRANCH_STAFF, AccountRole.FRANCHISE_ADMIN, AccountRole.SUPER_ADMIN)
ADMIN_ROLES = (AccountRole.FRANCHISE_ADMIN, AccountRole.SUPER_ADMIN)


async def _load_actor(actor_id: str, db: AsyncSession) -> LoyaltyAccount:
    account = await db.get(LoyaltyAccount, actor_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor account not found",
        )
    if not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Actor account is deactivated",
        )
    return account


async def require_actor(
    actor_id: str | None = Header(None, alias="X-Actor-Id"),
    db: AsyncSession = Depends(get_session),
) -> LoyaltyAccount:
    """Resolve the calling account from the forwarded identity header."""

    if not actor_id or not actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor context",
        )
    return await _load_actor(actor_id.strip(), db)


async def optional_actor(
    actor_id: str | None = Header(None, alias="X-Actor-Id"),
    db: AsyncSession = Depends(get_session),
) -> LoyaltyAccount | None:
    if not actor_id or not actor_id.strip():
        return None
    return await _load_actor(actor_id.strip(), db)


def require_roles(*roles: AccountRole) -> Callable[..., Awaitable[LoyaltyAccount]]:
    """Dependency factory admitting only actors holding one of ``roles``."""

    allowed = frozenset(roles)

    async def dependency(actor: LoyaltyAccount = Depends(require_actor)) -> LoyaltyAccount:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this operation",
            )
        return actor

    return dependency


def ensure_owner_or_roles(actor: LoyaltyAccount, account_id: str, *roles: AccountRole) -> None:
    """Customers may only touch their own account; ``roles`` may touch any."""

    if actor.id == account_id or actor.role in roles:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Actors may only access their own account",
    )


__all__ = [
    "ADMIN_ROLES",
    "STAFF_ROLES",
    "ensure_owner_or_roles",
    "optional_actor",
    "require_actor",
    "require_roles",
]
