"""
QLedger - Chart of Accounts & General Ledger Models

Double-entry accounting core:
- Chart of Accounts (Assets, Liabilities, Equity, Revenue, Expenses)
- Cost Centers
- Fiscal Years and lockable Fiscal Periods
- Journals with balanced debit/credit lines and an approval workflow
- Document sequences for tenant-scoped numbering

Every table except the sequence counter is tenant-scoped.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum, UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel, AuditMixin, TenantMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Main account classes."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class BalanceType(str, Enum):
    """Natural (increasing) side of an account."""
    DEBIT = "debit"
    CREDIT = "credit"


# Natural side used when an account is created without an explicit balance type
DEFAULT_BALANCE_TYPES = {
    AccountType.ASSET: BalanceType.DEBIT,
    AccountType.EXPENSE: BalanceType.DEBIT,
    AccountType.LIABILITY: BalanceType.CREDIT,
    AccountType.EQUITY: BalanceType.CREDIT,
    AccountType.REVENUE: BalanceType.CREDIT,
}


def default_balance_type(account_type: AccountType) -> BalanceType:
    return DEFAULT_BALANCE_TYPES.get(AccountType(account_type), BalanceType.CREDIT)


class JournalType(str, Enum):
    """Document kind of a journal."""
    GENERAL = "general"
    SALES = "sales"
    PURCHASE = "purchase"
    RECEIPT = "receipt"
    PAYMENT = "payment"
    EXPENSE = "expense"
    DEPRECIATION = "depreciation"
    ADJUSTMENT = "adjustment"
    OPENING = "opening"
    CLOSING = "closing"


class JournalStatus(str, Enum):
    """Approval workflow state of a journal."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    POSTED = "posted"
    REVERSED = "reversed"


# Statuses whose lines belong to the general ledger
LEDGER_STATUSES = (JournalStatus.POSTED, JournalStatus.REVERSED)


class WorkflowAction(str, Enum):
    """Actions recorded in the journal workflow history."""
    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    POSTED = "posted"
    REVERSED = "reversed"


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class ChartOfAccounts(BaseModel, TenantMixin, AuditMixin):
    """
    One node in a tenant's chart of accounts.

    Children point at their parent through parent_id only; a parent can't be
    deleted while it has children.
    """

    __tablename__ = "chart_of_accounts"

    # Account Identification
    code: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="Account code, unique per tenant (e.g., 1000, 1100)",
    )
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Classification
    type: Mapped[AccountType] = mapped_column(SQLEnum(AccountType), nullable=False)
    subtype: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    balance_type: Mapped[BalanceType] = mapped_column(SQLEnum(BalanceType), nullable=False)

    # Hierarchy
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chart_of_accounts.id"),
        nullable=True,
        comment="Parent account for hierarchical COA",
    )
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Flags
    is_control_account: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_posting_allowed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    cost_center_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Relationships
    parent: Mapped[Optional["ChartOfAccounts"]] = relationship(
        "ChartOfAccounts",
        remote_side="ChartOfAccounts.id",
        back_populates="children",
    )
    children: Mapped[List["ChartOfAccounts"]] = relationship(
        "ChartOfAccounts",
        back_populates="parent",
        order_by="ChartOfAccounts.code",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_coa_tenant_code'),
        Index('ix_coa_tenant_type', 'tenant_id', 'type'),
        Index('ix_coa_tenant_parent', 'tenant_id', 'parent_id'),
    )

    def __repr__(self) -> str:
        return f"<ChartOfAccounts({self.code}: {self.name_en})>"


class CostCenter(BaseModel, TenantMixin):
    """Cost center a journal line can be tagged with."""

    __tablename__ = "cost_centers"

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_cost_center_tenant_code'),
    )


# =============================================================================
# FISCAL PERIODS
# =============================================================================

class FiscalYear(BaseModel, TenantMixin, AuditMixin):
    """
    Fiscal year definition.
    """

    __tablename__ = "fiscal_years"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    periods: Mapped[List["FiscalPeriod"]] = relationship(
        "FiscalPeriod",
        back_populates="fiscal_year",
        cascade="all, delete-orphan",
        order_by="FiscalPeriod.period_number",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_fiscal_year_tenant_name'),
        CheckConstraint('end_date > start_date', name='ck_fiscal_year_dates'),
    )


class FiscalPeriod(BaseModel, TenantMixin):
    """
    Fiscal period (month) within a fiscal year.
    A locked period blocks new journals dated inside it.
    """

    __tablename__ = "fiscal_periods"

    fiscal_year_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fiscal_years.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name_en: Mapped[str] = mapped_column(String(50), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Relationships
    fiscal_year: Mapped["FiscalYear"] = relationship("FiscalYear", back_populates="periods")

    __table_args__ = (
        UniqueConstraint('fiscal_year_id', 'period_number', name='uq_fiscal_period_number'),
        CheckConstraint('period_number >= 1 AND period_number <= 12', name='ck_period_number'),
        CheckConstraint('end_date >= start_date', name='ck_fiscal_period_dates'),
        Index('ix_fiscal_periods_tenant_dates', 'tenant_id', 'start_date', 'end_date'),
    )


# =============================================================================
# JOURNALS
# =============================================================================

class Journal(BaseModel, TenantMixin, AuditMixin):
    """
    Journal - one transaction document.

    Totals always balance within the configured tolerance and the status only
    moves forward: draft -> submitted -> approved -> posted -> reversed.
    """

    __tablename__ = "journals"

    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    fiscal_period_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fiscal_periods.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Identification
    journal_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Generated number (e.g., GN000001)",
    )
    journal_type: Mapped[JournalType] = mapped_column(
        SQLEnum(JournalType),
        default=JournalType.GENERAL,
        nullable=False,
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Description
    description_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_ar: Mapped[str] = mapped_column(Text, nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    posting_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Currency
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=6),
        default=Decimal("1"),
        nullable=False,
    )

    # Totals (must always balance)
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    status: Mapped[JournalStatus] = mapped_column(
        SQLEnum(JournalStatus),
        default=JournalStatus.DRAFT,
        nullable=False,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Originating document
    source_module: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True,
        comment="Module that created this journal (invoices, payments, etc.)",
    )
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Workflow audit
    submitted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Reversal tracking
    reversed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversal_journal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("journals.id", ondelete="SET NULL"),
        nullable=True,
        comment="ID of the reversing journal",
    )
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    lines: Mapped[List["JournalLine"]] = relationship(
        "JournalLine",
        back_populates="journal",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'journal_number', name='uq_journal_tenant_number'),
        Index('ix_journals_tenant_date', 'tenant_id', 'transaction_date'),
        Index('ix_journals_tenant_status', 'tenant_id', 'status'),
        Index('ix_journals_source', 'source_module', 'source_id'),
    )

    def __repr__(self) -> str:
        return f"<Journal({self.journal_number}: {self.status.value})>"


class JournalLine(BaseModel, TenantMixin):
    """
    One debit-or-credit row of a journal.
    Exactly one of debit/credit is positive.
    """

    __tablename__ = "journal_lines"

    journal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("journals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chart_of_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cost_centers.id", ondelete="SET NULL"),
        nullable=True,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_ar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=6),
        default=Decimal("1"),
        nullable=False,
    )

    # Free-text references back to the source document
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Relationships
    journal: Mapped["Journal"] = relationship("Journal", back_populates="lines")
    account: Mapped["ChartOfAccounts"] = relationship("ChartOfAccounts")
    cost_center: Mapped[Optional["CostCenter"]] = relationship("CostCenter")

    __table_args__ = (
        UniqueConstraint('journal_id', 'line_number', name='uq_journal_line_number'),
        CheckConstraint(
            '(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)',
            name='ck_one_sided_line',
        ),
    )


class JournalWorkflow(BaseModel, TenantMixin):
    """Append-only history of journal lifecycle actions."""

    __tablename__ = "journal_workflow"

    journal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("journals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[WorkflowAction] = mapped_column(SQLEnum(WorkflowAction), nullable=False)
    from_status: Mapped[Optional[JournalStatus]] = mapped_column(SQLEnum(JournalStatus), nullable=True)
    to_status: Mapped[JournalStatus] = mapped_column(SQLEnum(JournalStatus), nullable=False)
    actioned_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    actioned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# =============================================================================
# NUMBERING
# =============================================================================

class DocumentSequence(Base):
    """
    Monotonic counter per (scope, prefix).

    scope is the tenant id for tenant-owned documents, or "global" for
    namespaces shared by all tenants (tenant codes).
    """

    __tablename__ = "document_sequences"

    scope: Mapped[str] = mapped_column(String(64), primary_key=True)
    prefix: Mapped[str] = mapped_column(String(20), primary_key=True)
    last_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
