import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("INIT_DB_ON_STARTUP", "false")

import uuid

import pytest

from bookkeeping import models  # noqa: F401
from bookkeeping.database import Base, build_engine, build_session_factory
from bookkeeping.services.account_service import AccountService


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
async def chart(session, tenant_id):
    """Default chart of accounts keyed by account code."""
    service = AccountService(session, tenant_id)
    await service.initialize_default_accounts()
    return {account.code: account for account in await service.list_accounts()}
