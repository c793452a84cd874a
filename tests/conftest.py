"""
QLedger - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite database file so concurrent sessions see
real locking instead of a shared in-memory connection.
"""

import os

os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///./qledger.db")
os.environ.setdefault("APP_ENV", "test")

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Dict
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

import app.models  # noqa: F401
from app.database import Base, get_async_session
from app.models.accounting import AccountType, ChartOfAccounts, CostCenter, FiscalYear
from app.models.tenant import Tenant, TenantStatus
from app.schemas.accounting import (
    AccountCreate,
    CostCenterCreate,
    FiscalYearCreate,
    JournalCreate,
    JournalLineCreate,
)
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.fiscal_period_service import FiscalPeriodService
from main import app


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Engine bound to a fresh database file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 5},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    """Create a test tenant."""
    tenant = Tenant(
        id=uuid4(),
        code="TEN000001",
        name_en="Doha Trading Co.",
        name_ar="شركة الدوحة للتجارة",
        base_currency="QAR",
        status=TenantStatus.ACTIVE,
    )
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def other_tenant(db_session: AsyncSession) -> Tenant:
    """A second tenant for isolation checks."""
    tenant = Tenant(
        id=uuid4(),
        code="TEN000002",
        name_en="Gulf Services LLC",
        name_ar="خدمات الخليج",
        base_currency="QAR",
        status=TenantStatus.ACTIVE,
    )
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest.fixture
def user_id():
    return uuid4()


@pytest_asyncio.fixture
async def test_fiscal_year(db_session: AsyncSession, test_tenant: Tenant, user_id) -> FiscalYear:
    """Calendar 2024 with twelve open monthly periods."""
    service = FiscalPeriodService(db_session)
    return await service.create_fiscal_year(
        test_tenant.id,
        FiscalYearCreate(name="FY2024", start_date=date(2024, 1, 1), end_date=date(2024, 12, 31)),
        user_id,
    )


@pytest_asyncio.fixture
async def test_accounts(db_session: AsyncSession, test_tenant: Tenant, user_id) -> Dict[str, ChartOfAccounts]:
    """
    Small chart:

        1000 Assets (header)
          1110 Cash
        4100 Sales Revenue
        5300 Rent Expense (cost center required)
    """
    service = ChartOfAccountsService(db_session)
    assets = await service.create_account(
        test_tenant.id,
        AccountCreate(code="1000", name_en="Assets", name_ar="الأصول",
                      type=AccountType.ASSET, is_posting_allowed=False),
        user_id,
    )
    cash = await service.create_account(
        test_tenant.id,
        AccountCreate(code="1110", name_en="Cash", name_ar="النقدية",
                      type=AccountType.ASSET, parent_id=assets.id),
        user_id,
    )
    revenue = await service.create_account(
        test_tenant.id,
        AccountCreate(code="4100", name_en="Sales Revenue", name_ar="إيرادات المبيعات",
                      type=AccountType.REVENUE),
        user_id,
    )
    rent = await service.create_account(
        test_tenant.id,
        AccountCreate(code="5300", name_en="Rent Expense", name_ar="مصروف الإيجار",
                      type=AccountType.EXPENSE, cost_center_required=True),
        user_id,
    )
    return {"assets": assets, "cash": cash, "revenue": revenue, "rent": rent}


@pytest_asyncio.fixture
async def test_cost_center(db_session: AsyncSession, test_tenant: Tenant) -> CostCenter:
    service = ChartOfAccountsService(db_session)
    return await service.create_cost_center(
        test_tenant.id,
        CostCenterCreate(code="HQ", name_en="Head Office", name_ar="المكتب الرئيسي"),
    )


def make_journal(
    debit_account,
    credit_account,
    amount: str = "150.00",
    transaction_date: date = date(2024, 3, 15),
    **header,
) -> JournalCreate:
    """Two-line journal moving `amount` from credit_account to debit_account."""
    return JournalCreate(
        description_ar="قيد اختبار",
        description_en="Test journal",
        transaction_date=transaction_date,
        lines=[
            JournalLineCreate(account_id=debit_account.id, debit=Decimal(amount)),
            JournalLineCreate(account_id=credit_account.id, credit=Decimal(amount)),
        ],
        **header,
    )


@pytest.fixture
def journal_factory():
    return make_journal
