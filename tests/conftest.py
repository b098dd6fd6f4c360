import itertools
import os

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ORDER_EVENTS_SECRET"] = "test-webhook-secret"
os.environ["RESEND_API_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from referral_ledger.db.base_class import Base
from referral_ledger.db.session import get_db
from referral_ledger.main import app
from referral_ledger.models import Account, Referral
from referral_ledger.models.enums import AccountRole, ReferralStatus
from referral_ledger.security import create_access_token

WEBHOOK_HEADERS = {"X-Webhook-Secret": "test-webhook-secret"}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file, for tests that race requests."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def _driver_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        # Writers queue on the database lock the way Postgres queues on row locks
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_account(db):
    counter = itertools.count(1)

    async def _make(
        *,
        full_name: str = "Test Customer",
        role: AccountRole = AccountRole.CUSTOMER,
        referral_code: str | None = None,
        device_fingerprint: str | None = None,
        signup_ip: str | None = None,
        created_at=None,
        is_active: bool = True,
    ) -> Account:
        n = next(counter)
        account = Account(
            email=f"customer{n}@example.com",
            full_name=full_name,
            role=role,
            is_active=is_active,
            referral_code=referral_code,
            device_fingerprint=device_fingerprint,
            signup_ip=signup_ip,
        )
        if created_at is not None:
            account.created_at = created_at
        db.add(account)
        await db.commit()
        return account

    return _make


@pytest.fixture
def make_referral(db):
    async def _make(
        referrer: Account,
        referred: Account,
        *,
        status: ReferralStatus = ReferralStatus.PENDING,
        created_at=None,
        qualified_at=None,
        order_id: str | None = None,
    ) -> Referral:
        referral = Referral(
            referrer_id=referrer.id,
            referred_account_id=referred.id,
            referral_code_used=referrer.referral_code or "unknown",
            status=status,
            qualified_at=qualified_at,
            qualifying_order_id=order_id,
        )
        if created_at is not None:
            referral.created_at = created_at
        db.add(referral)
        await db.commit()
        return referral

    return _make


def auth_headers(account: Account) -> dict:
    token = create_access_token(
        {"sub": account.email, "user_id": account.id, "role": AccountRole(account.role).value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    return auth_headers


@pytest.fixture
def webhook_headers():
    return dict(WEBHOOK_HEADERS)
