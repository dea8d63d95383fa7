import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from takoyadon_ledger.app import create_app  # noqa: E402
from takoyadon_ledger.db.base import Base  # noqa: E402
from takoyadon_ledger.db.session import get_session  # noqa: E402
from takoyadon_ledger.models.account import AccountRole, LoyaltyAccount  # noqa: E402
from takoyadon_ledger.models.catalog import ActivityPointRule, Reward  # noqa: E402
from takoyadon_ledger.models.ledger import LedgerEventType  # noqa: E402
from takoyadon_ledger.observability.ledger import get_ledger_store  # noqa: E402
from takoyadon_ledger.services.ledger import TransactionExecutor  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session so concurrent units of work really race."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_ledger_metrics():
    store = get_ledger_store()
    store.reset()
    yield store
    store.reset()


async def _seed_account(
    session: AsyncSession,
    account_id: str,
    *,
    balance: int = 0,
    email: str | None = None,
    role: AccountRole = AccountRole.CUSTOMER,
) -> None:
    session.add(LoyaltyAccount(id=account_id, email=email, role=role, balance=0))
    await session.commit()
    if balance:
        await TransactionExecutor(session).post(
            account_id=account_id,
            delta=balance,
            reason="Opening balance",
            idempotency_key=f"seed:{account_id}",
            event_type=LedgerEventType.ADJUSTMENT,
        )


async def _seed_catalog(session: AsyncSession) -> None:
    session.add_all(
        [
            Reward(id="free_drink", name="Free Drink", points_cost=50),
            Reward(id="free_appetizer", name="Free Appetizer", points_cost=60),
            Reward(id="retired_mug", name="Retired Mug", points_cost=10, is_active=False),
            ActivityPointRule(activity_type="social_share", points_value=40),
        ]
    )
    await session.commit()


@pytest.fixture
def seed_account():
    return _seed_account


@pytest.fixture
def seed_catalog():
    return _seed_catalog
