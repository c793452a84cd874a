"""
QLedger - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.accounting import (
    # Tenant
    TenantCreate,
    TenantResponse,
    # Chart of Accounts
    AccountCreate,
    AccountUpdate,
    AccountSummary,
    AccountResponse,
    AccountDetailResponse,
    AccountTreeNode,
    AccountBalanceResponse,
    # Cost Centers
    CostCenterCreate,
    CostCenterResponse,
    # Fiscal Calendar
    FiscalYearCreate,
    FiscalYearResponse,
    FiscalPeriodResponse,
    # Journals
    JournalLineCreate,
    JournalLineResponse,
    JournalCreate,
    JournalUpdate,
    JournalLinesReplace,
    JournalReverse,
    JournalResponse,
    JournalWorkflowResponse,
)
