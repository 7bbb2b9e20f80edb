"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets its own engine and a transaction that rolls back after the test.
- The database defaults to in-memory SQLite (aiosqlite); set ``TEST_DATABASE_URL``
  to a PostgreSQL asyncpg URL to run against the production dialect.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_access_token
from app.billing.fees import FeeSchedule, get_fee_schedule
from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models.admin import Admin
from app.models.condominium import Condominium
from app.models.supplier import Supplier

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _make_engine():
    if not TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ---------------------------------------------------------------------------
# Per-test: fresh schema and transactional rollback for isolation
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create an engine with all tables; dropped again after the test."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest.fixture
def fee_schedule() -> FeeSchedule:
    """The documented default fee schedule, independent of the environment."""
    return FeeSchedule(
        base_fee=Decimal("29.99"),
        per_condo_fee=Decimal("8"),
        platform_fee_percent=Decimal("1"),
        processor_fee_percent=Decimal("0.25"),
        supplier_pro_price=Decimal("9.99"),
        currency="eur",
    )


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, fee_schedule: FeeSchedule
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and fee schedule."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fee_schedule] = lambda: fee_schedule

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def stripe_configured(monkeypatch):
    """Pretend Stripe keys are configured; actual Stripe calls are patched per test."""
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_dummy")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test_secret")
    return settings


class StripeObject(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects)."""

    def __getitem__(self, key: str):
        return getattr(self, key)


@pytest.fixture
def stripe_object() -> type[StripeObject]:
    """Factory for fake Stripe API objects: ``stripe_object(id="sub_1", ...)``."""
    return StripeObject


# ---------------------------------------------------------------------------
# Convenience fixtures: admins, condominiums, suppliers
# ---------------------------------------------------------------------------


async def _create_admin(
    db_session: AsyncSession,
    *,
    condo_count: int = 0,
    subscription_status: str = "trialing",
    stripe_customer_id: str | None = None,
    stripe_subscription_id: str | None = None,
    stripe_connect_account_id: str | None = None,
    is_active: bool = True,
    trial_ends_at=None,
) -> Admin:
    """Create an admin with ``condo_count`` condominiums directly in the DB."""
    unique = uuid.uuid4().hex[:8]
    admin = Admin(
        email=f"admin-{unique}@test.com",
        full_name="Test Admin",
        is_active=is_active,
        subscription_status=subscription_status,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
        stripe_connect_account_id=stripe_connect_account_id,
        trial_ends_at=trial_ends_at,
    )
    db_session.add(admin)
    await db_session.flush()

    for i in range(condo_count):
        db_session.add(Condominium(admin_id=admin.id, name=f"Condominio {i + 1}", address=None))
    await db_session.flush()
    return admin


async def _create_condominium(db_session: AsyncSession, admin: Admin, name: str = "Condominio") -> Condominium:
    condo = Condominium(admin_id=admin.id, name=name, address=None)
    db_session.add(condo)
    await db_session.flush()
    return condo


async def _create_supplier(
    db_session: AsyncSession,
    condo: Condominium | None,
    *,
    stripe_connect_account_id: str | None = "acct_supplier_123",
    owner_id: uuid.UUID | None = None,
    email: str | None = "fornitore@test.com",
    stripe_customer_id: str | None = None,
    plan: str = "free",
) -> Supplier:
    supplier = Supplier(
        condominium_id=condo.id if condo else None,
        owner_id=owner_id,
        name="Idraulica Rossi",
        email=email,
        stripe_connect_account_id=stripe_connect_account_id,
        stripe_customer_id=stripe_customer_id,
        plan=plan,
        plan_status=None,
    )
    db_session.add(supplier)
    await db_session.flush()
    return supplier


def _bearer(account_id: uuid.UUID) -> dict[str, str]:
    """Authorization headers for an auth-provider account id."""
    token = create_access_token({"sub": str(account_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> Admin:
    """An active admin with three condominiums."""
    return await _create_admin(db_session, condo_count=3, stripe_customer_id="cus_admin_123")


@pytest_asyncio.fixture
async def auth_headers(test_admin: Admin) -> dict[str, str]:
    """Return Authorization headers for the test admin."""
    return _bearer(test_admin.id)


@pytest.fixture
def make_admin(db_session: AsyncSession):
    """Factory: ``await make_admin(condo_count=2, ...)``."""

    async def _make(**kwargs) -> Admin:
        return await _create_admin(db_session, **kwargs)

    return _make


@pytest.fixture
def make_condominium(db_session: AsyncSession):
    async def _make(admin: Admin, name: str = "Condominio") -> Condominium:
        return await _create_condominium(db_session, admin, name)

    return _make


@pytest.fixture
def make_supplier(db_session: AsyncSession):
    """Factory: ``await make_supplier(condo, stripe_connect_account_id=None)``."""

    async def _make(condo: Condominium | None, **kwargs) -> Supplier:
        return await _create_supplier(db_session, condo, **kwargs)

    return _make


@pytest.fixture
def token_headers():
    """Factory building Bearer headers for an account id."""
    return _bearer
