"""
QLedger - Accounting Router

API endpoints for the chart of accounts, fiscal calendar, journals and balances.
Tenant and user come from the gateway headers (see app.dependencies).
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import RequestContext, get_request_context
from app.models.accounting import AccountType, JournalStatus, JournalType
from app.schemas.accounting import (
    AccountBalanceResponse,
    AccountCreate,
    AccountDetailResponse,
    AccountResponse,
    AccountTreeNode,
    AccountUpdate,
    CostCenterCreate,
    CostCenterResponse,
    FiscalPeriodResponse,
    FiscalYearCreate,
    FiscalYearResponse,
    JournalCreate,
    JournalLinesReplace,
    JournalResponse,
    JournalReverse,
    JournalUpdate,
    JournalWorkflowResponse,
    TenantCreate,
    TenantResponse,
)
from app.services.balance_service import BalanceService
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.fiscal_period_service import FiscalPeriodService
from app.services.journal_service import JournalService
from app.services.tenant_service import TenantService


router = APIRouter(prefix="/api/v1/accounting", tags=["Accounting"])


# ============================================================================
# TENANT ENDPOINTS
# ============================================================================

@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    data: TenantCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register a tenant and assign its sequential code."""
    service = TenantService(db)
    return await service.create_tenant(data)


# ============================================================================
# CHART OF ACCOUNTS ENDPOINTS
# ============================================================================

@router.get("/accounts", response_model=List[AccountTreeNode])
async def list_accounts(
    include_inactive: bool = Query(False, description="Include inactive accounts"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the chart of accounts as a tree."""
    service = ChartOfAccountsService(db)
    return await service.get_account_tree(ctx.tenant_id, include_inactive)


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Create a new account in the chart of accounts."""
    service = ChartOfAccountsService(db)
    return await service.create_account(ctx.tenant_id, data, ctx.user_id)


@router.post("/accounts/seed-default", response_model=List[AccountResponse], status_code=status.HTTP_201_CREATED)
async def seed_default_chart(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Create the default chart of accounts for an empty tenant."""
    service = ChartOfAccountsService(db)
    return await service.seed_default_chart(ctx.tenant_id, ctx.user_id)


@router.get("/accounts/by-code/{code}", response_model=AccountResponse)
async def get_account_by_code(
    code: str = Path(..., description="Account code"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = ChartOfAccountsService(db)
    return await service.get_account_by_code(ctx.tenant_id, code)


@router.get("/accounts/by-type/{account_type}", response_model=List[AccountResponse])
async def get_accounts_by_type(
    account_type: AccountType = Path(..., description="Account type"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Active, posting-allowed accounts of one type."""
    service = ChartOfAccountsService(db)
    return await service.get_accounts_by_type(ctx.tenant_id, account_type)


@router.get("/accounts/{account_id}", response_model=AccountDetailResponse)
async def get_account(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = ChartOfAccountsService(db)
    return await service.get_account(ctx.tenant_id, account_id)


@router.patch("/accounts/{account_id}", response_model=AccountDetailResponse)
async def update_account(
    data: AccountUpdate,
    account_id: uuid.UUID = Path(..., description="Account ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Partially update an account. Code, type and parent cannot change."""
    service = ChartOfAccountsService(db)
    return await service.update_account(ctx.tenant_id, account_id, data)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = ChartOfAccountsService(db)
    await service.delete_account(ctx.tenant_id, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/accounts/{account_id}/balance", response_model=AccountBalanceResponse)
async def get_account_balance(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    as_of_date: Optional[date] = Query(None, description="Only journals dated on or before"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Balance of an account from posted journals."""
    service = BalanceService(db)
    return await service.get_balance(ctx.tenant_id, account_id, as_of_date)


# ============================================================================
# COST CENTER ENDPOINTS
# ============================================================================

@router.get("/cost-centers", response_model=List[CostCenterResponse])
async def list_cost_centers(
    include_inactive: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = ChartOfAccountsService(db)
    return await service.list_cost_centers(ctx.tenant_id, include_inactive)


@router.post("/cost-centers", response_model=CostCenterResponse, status_code=status.HTTP_201_CREATED)
async def create_cost_center(
    data: CostCenterCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = ChartOfAccountsService(db)
    return await service.create_cost_center(ctx.tenant_id, data)


# ============================================================================
# FISCAL PERIOD ENDPOINTS
# ============================================================================

@router.get("/fiscal-years", response_model=List[FiscalYearResponse])
async def list_fiscal_years(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = FiscalPeriodService(db)
    return await service.get_fiscal_years(ctx.tenant_id)


@router.post("/fiscal-years", response_model=FiscalYearResponse, status_code=status.HTTP_201_CREATED)
async def create_fiscal_year(
    data: FiscalYearCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Create a fiscal year, with monthly periods unless auto_create_periods is false."""
    service = FiscalPeriodService(db)
    return await service.create_fiscal_year(ctx.tenant_id, data, ctx.user_id)


@router.get("/fiscal-periods", response_model=List[FiscalPeriodResponse])
async def list_fiscal_periods(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = FiscalPeriodService(db)
    return await service.list_periods(ctx.tenant_id)


@router.get("/fiscal-periods/for-date", response_model=FiscalPeriodResponse)
async def get_fiscal_period_for_date(
    on: date = Query(..., description="Date to look up"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the fiscal period containing a date."""
    service = FiscalPeriodService(db)
    return await service.resolve_period(ctx.tenant_id, on)


@router.get("/fiscal-periods/{period_id}", response_model=FiscalPeriodResponse)
async def get_fiscal_period(
    period_id: uuid.UUID = Path(..., description="Fiscal period ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = FiscalPeriodService(db)
    return await service.get_period(ctx.tenant_id, period_id)


@router.post("/fiscal-periods/{period_id}/lock", response_model=FiscalPeriodResponse)
async def lock_fiscal_period(
    period_id: uuid.UUID = Path(..., description="Fiscal period ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = FiscalPeriodService(db)
    return await service.lock(ctx.tenant_id, period_id, ctx.user_id)


@router.post("/fiscal-periods/{period_id}/unlock", response_model=FiscalPeriodResponse)
async def unlock_fiscal_period(
    period_id: uuid.UUID = Path(..., description="Fiscal period ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = FiscalPeriodService(db)
    return await service.unlock(ctx.tenant_id, period_id)


# ============================================================================
# JOURNAL ENDPOINTS
# ============================================================================

@router.get("/journals", response_model=List[JournalResponse])
async def list_journals(
    status_filter: Optional[JournalStatus] = Query(None, alias="status"),
    journal_type: Optional[JournalType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """List journals, newest transaction date first."""
    service = JournalService(db)
    return await service.find_all(
        ctx.tenant_id,
        status=status_filter,
        journal_type=journal_type,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/journals", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
async def create_journal(
    data: JournalCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Create a draft journal."""
    service = JournalService(db)
    return await service.create(ctx.tenant_id, ctx.user_id, data, branch_id=ctx.branch_id)


@router.get("/journals/{journal_id}", response_model=JournalResponse)
async def get_journal(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = JournalService(db)
    return await service.get_journal(ctx.tenant_id, journal_id)


@router.patch("/journals/{journal_id}", response_model=JournalResponse)
async def update_journal(
    data: JournalUpdate,
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Update header fields of a draft journal."""
    service = JournalService(db)
    return await service.update(ctx.tenant_id, ctx.user_id, journal_id, data)


@router.put("/journals/{journal_id}/lines", response_model=JournalResponse)
async def replace_journal_lines(
    data: JournalLinesReplace,
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Replace all lines of a draft journal."""
    service = JournalService(db)
    return await service.update_lines(ctx.tenant_id, ctx.user_id, journal_id, data.lines)


@router.delete("/journals/{journal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_journal(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Delete a draft journal."""
    service = JournalService(db)
    await service.remove(ctx.tenant_id, journal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/journals/{journal_id}/submit", response_model=JournalResponse)
async def submit_journal(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = JournalService(db)
    return await service.submit(ctx.tenant_id, ctx.user_id, journal_id)


@router.post("/journals/{journal_id}/approve", response_model=JournalResponse)
async def approve_journal(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = JournalService(db)
    return await service.approve(ctx.tenant_id, ctx.user_id, journal_id)


@router.post("/journals/{journal_id}/post", response_model=JournalResponse)
async def post_journal(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Post an approved journal to the general ledger."""
    service = JournalService(db)
    return await service.post(ctx.tenant_id, ctx.user_id, journal_id)


@router.post("/journals/{journal_id}/reverse", response_model=JournalResponse)
async def reverse_journal(
    data: JournalReverse,
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Reverse a posted journal. Returns the reversing journal."""
    service = JournalService(db)
    return await service.reverse(
        ctx.tenant_id, ctx.user_id, journal_id,
        reversal_date=data.reversal_date,
        reason=data.reason,
    )


@router.get("/journals/{journal_id}/history", response_model=List[JournalWorkflowResponse])
async def get_journal_history(
    journal_id: uuid.UUID = Path(..., description="Journal ID"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    service = JournalService(db)
    return await service.get_history(ctx.tenant_id, journal_id)
