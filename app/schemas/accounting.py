"""
QLedger - Accounting Schemas

Pydantic schemas for Chart of Accounts, Fiscal Periods, Journals and balances.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from app.models.accounting import (
    AccountType,
    BalanceType,
    JournalStatus,
    JournalType,
    WorkflowAction,
)
from app.models.tenant import TenantStatus


# =============================================================================
# TENANT SCHEMAS
# =============================================================================

class TenantCreate(BaseModel):
    """Schema for registering a tenant. The code is generated."""
    name_en: str = Field(..., min_length=1, max_length=255)
    name_ar: str = Field(..., min_length=1, max_length=255)
    base_currency: str = Field("QAR", min_length=3, max_length=3)
    status: TenantStatus = TenantStatus.TRIAL


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name_en: str
    name_ar: str
    base_currency: str
    status: TenantStatus
    created_at: datetime


# =============================================================================
# CHART OF ACCOUNTS SCHEMAS
# =============================================================================

class AccountBase(BaseModel):
    """Base schema for Chart of Accounts."""
    code: str = Field(..., min_length=1, max_length=20)
    name_en: str = Field(..., min_length=1, max_length=255)
    name_ar: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: AccountType
    subtype: Optional[str] = Field(None, max_length=50)
    is_control_account: bool = False
    is_posting_allowed: bool = True
    cost_center_required: bool = False
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class AccountCreate(AccountBase):
    """
    Schema for creating a new account.

    level is accepted for compatibility but always derived from the parent.
    """
    parent_id: Optional[UUID] = None
    level: Optional[int] = Field(None, ge=1)
    balance_type: Optional[BalanceType] = None
    is_active: bool = True


class AccountUpdate(BaseModel):
    """Schema for updating an account. Code, type, parent and level are immutable."""
    model_config = ConfigDict(extra="forbid")

    name_en: Optional[str] = Field(None, min_length=1, max_length=255)
    name_ar: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    subtype: Optional[str] = Field(None, max_length=50)
    balance_type: Optional[BalanceType] = None
    is_control_account: Optional[bool] = None
    is_posting_allowed: Optional[bool] = None
    is_active: Optional[bool] = None
    cost_center_required: Optional[bool] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @field_validator(
        'name_en', 'name_ar', 'balance_type', 'is_control_account',
        'is_posting_allowed', 'is_active', 'cost_center_required',
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError('Field cannot be null')
        return v


class AccountSummary(BaseModel):
    """Compact account reference embedded in other responses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name_en: str
    name_ar: str
    type: AccountType


class AccountResponse(AccountBase):
    """Schema for account response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    parent_id: Optional[UUID] = None
    level: int
    balance_type: BalanceType
    is_active: bool
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class AccountDetailResponse(AccountResponse):
    """Account with its parent and direct children."""
    parent: Optional[AccountSummary] = None
    children: List[AccountSummary] = []


class AccountTreeNode(AccountResponse):
    """Schema for hierarchical account tree."""
    children: List["AccountTreeNode"] = []


# Self-reference for nested tree
AccountTreeNode.model_rebuild()


class AccountBalanceResponse(BaseModel):
    """Debit/credit totals and natural-side balance of one account."""
    account_id: UUID
    as_of_date: Optional[date] = None
    debit: Decimal
    credit: Decimal
    balance: Decimal
    net_debit: Decimal
    net_credit: Decimal
    balance_type: BalanceType


# =============================================================================
# COST CENTER SCHEMAS
# =============================================================================

class CostCenterCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name_en: str = Field(..., min_length=1, max_length=255)
    name_ar: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class CostCenterSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name_en: str


class CostCenterResponse(CostCenterCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    created_at: datetime


# =============================================================================
# FISCAL PERIOD SCHEMAS
# =============================================================================

class FiscalYearCreate(BaseModel):
    """Schema for creating fiscal year."""
    name: str = Field(..., min_length=1, max_length=50)
    name_ar: Optional[str] = Field(None, max_length=50)
    start_date: date
    end_date: date
    auto_create_periods: bool = True

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("Fiscal year end date must be after start date")
        return self


class FiscalPeriodResponse(BaseModel):
    """Schema for fiscal period response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    fiscal_year_id: UUID
    name_en: str
    name_ar: Optional[str] = None
    period_number: int
    start_date: date
    end_date: date
    is_locked: bool
    locked_at: Optional[datetime] = None
    locked_by_id: Optional[UUID] = None


class FiscalYearResponse(BaseModel):
    """Schema for fiscal year response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    name: str
    name_ar: Optional[str] = None
    start_date: date
    end_date: date
    is_closed: bool
    periods: List[FiscalPeriodResponse] = []


# =============================================================================
# JOURNAL SCHEMAS
# =============================================================================

class JournalLineCreate(BaseModel):
    """One debit-or-credit line of a journal."""
    account_id: UUID
    description_en: Optional[str] = None
    description_ar: Optional[str] = None
    cost_center_id: Optional[UUID] = None
    debit: Decimal = Field(Decimal("0.00"), ge=0)
    credit: Decimal = Field(Decimal("0.00"), ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    reference: Optional[str] = Field(None, max_length=255)
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[UUID] = None


class JournalLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    journal_id: UUID
    line_number: int
    account_id: UUID
    account: Optional[AccountSummary] = None
    cost_center_id: Optional[UUID] = None
    cost_center: Optional[CostCenterSummary] = None
    description_en: Optional[str] = None
    description_ar: Optional[str] = None
    debit: Decimal
    credit: Decimal
    currency: Optional[str] = None
    exchange_rate: Decimal
    reference: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None


class JournalCreate(BaseModel):
    """Schema for creating a journal. Saved as draft."""
    journal_type: JournalType = JournalType.GENERAL
    journal_number: Optional[str] = Field(None, min_length=1, max_length=50)
    reference_number: Optional[str] = Field(None, max_length=50)
    description_en: Optional[str] = None
    description_ar: str = Field(..., min_length=1)
    transaction_date: date
    posting_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    notes: Optional[str] = None
    attachment_url: Optional[str] = None
    source_module: Optional[str] = Field(None, max_length=50)
    source_id: Optional[UUID] = None
    lines: List[JournalLineCreate] = Field(..., min_length=1)


class JournalUpdate(BaseModel):
    """Schema for updating a draft journal header."""
    model_config = ConfigDict(extra="forbid")

    reference_number: Optional[str] = Field(None, max_length=50)
    description_en: Optional[str] = None
    description_ar: Optional[str] = Field(None, min_length=1)
    transaction_date: Optional[date] = None
    posting_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = None
    attachment_url: Optional[str] = None

    @field_validator('transaction_date', 'description_ar', 'exchange_rate', 'currency')
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError('Field cannot be null')
        return v


class JournalLinesReplace(BaseModel):
    """Full replacement line set for a draft journal."""
    lines: List[JournalLineCreate] = Field(..., min_length=1)


class JournalReverse(BaseModel):
    """Schema for reversing a posted journal."""
    reversal_date: date
    reason: str = Field(..., min_length=1, max_length=500)


class JournalResponse(BaseModel):
    """Schema for journal response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    branch_id: Optional[UUID] = None
    fiscal_period_id: Optional[UUID] = None
    journal_number: str
    journal_type: JournalType
    reference_number: Optional[str] = None
    description_en: Optional[str] = None
    description_ar: str
    transaction_date: date
    posting_date: Optional[date] = None
    currency: str
    exchange_rate: Decimal
    total_debit: Decimal
    total_credit: Decimal
    status: JournalStatus
    notes: Optional[str] = None
    attachment_url: Optional[str] = None
    source_module: Optional[str] = None
    source_id: Optional[UUID] = None
    created_by_id: Optional[UUID] = None
    submitted_by_id: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    posted_by_id: Optional[UUID] = None
    posted_at: Optional[datetime] = None
    reversed_by_id: Optional[UUID] = None
    reversed_at: Optional[datetime] = None
    reversal_journal_id: Optional[UUID] = None
    reversal_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    lines: List[JournalLineResponse] = []


class JournalWorkflowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    journal_id: UUID
    action: WorkflowAction
    from_status: Optional[JournalStatus] = None
    to_status: JournalStatus
    actioned_by_id: Optional[UUID] = None
    actioned_at: datetime
    notes: Optional[str] = None
