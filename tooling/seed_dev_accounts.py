"""Seed development accounts, rewards and activity rules into the ledger database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from takoyadon_ledger.core.settings import settings
from takoyadon_ledger.db.base import Base
from takoyadon_ledger.models.account import AccountRole
from takoyadon_ledger.services.accounts import AccountService
from takoyadon_ledger.services.catalog import ActivityRuleBook, RewardCatalog


class SeedAccount(TypedDict):
    id: str
    email: str
    full_name: str
    role: AccountRole


class SeedReward(TypedDict):
    id: str
    name: str
    description: str
    points_cost: int


DEV_ACCOUNTS: list[SeedAccount] = [
    {
        "id": "dev-customer",
        "email": os.getenv("DEV_CUSTOMER_EMAIL", "customer@takoyadon.dev").lower(),
        "full_name": "Customer QA",
        "role": AccountRole.CUSTOMER,
    },
    {
        "id": "dev-staff",
        "email": os.getenv("DEV_STAFF_EMAIL", "staff@takoyadon.dev").lower(),
        "full_name": "Branch Staff QA",
        "role": AccountRole.BRANCH_STAFF,
    },
    {
        "id": "dev-franchise",
        "email": os.getenv("DEV_FRANCHISE_EMAIL", "franchise@takoyadon.dev").lower(),
        "full_name": "Franchise Admin QA",
        "role": AccountRole.FRANCHISE_ADMIN,
    },
    {
        "id": "dev-super",
        "email": os.getenv("DEV_SUPER_EMAIL", "super@takoyadon.dev").lower(),
        "full_name": "Super Admin QA",
        "role": AccountRole.SUPER_ADMIN,
    },
]

DEV_REWARDS: list[SeedReward] = [
    {"id": "free_drink", "name": "Free Drink", "description": "Any medium-sized drink", "points_cost": 50},
    {"id": "free_appetizer", "name": "Free Appetizer", "description": "Any appetizer up to $10", "points_cost": 75},
    {"id": "discount_voucher", "name": "Discount Voucher", "description": "10% off entire order", "points_cost": 100},
]


async def seed(session: AsyncSession) -> None:
    accounts = AccountService(session)
    for account in DEV_ACCOUNTS:
        await accounts.register_account(
            account["id"],
            email=account["email"],
            full_name=account["full_name"],
            role=account["role"],
        )

    catalog = RewardCatalog(session)
    for reward in DEV_REWARDS:
        await catalog.upsert_reward(
            reward["id"],
            name=reward["name"],
            points_cost=reward["points_cost"],
            description=reward["description"],
        )

    await ActivityRuleBook(session).ensure_defaults()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        if settings.environment == "development":
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            await seed(session)
        print("Development accounts, rewards and activity rules ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
