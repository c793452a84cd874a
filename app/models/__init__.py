"""
QLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, TenantMixin, AuditMixin
from app.models.tenant import Tenant, TenantStatus
from app.models.accounting import (
    AccountType,
    BalanceType,
    DEFAULT_BALANCE_TYPES,
    LEDGER_STATUSES,
    default_balance_type,
    JournalType,
    JournalStatus,
    WorkflowAction,
    ChartOfAccounts,
    CostCenter,
    FiscalYear,
    FiscalPeriod,
    Journal,
    JournalLine,
    JournalWorkflow,
    DocumentSequence,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "TenantMixin",
    "AuditMixin",
    # Tenant
    "Tenant",
    "TenantStatus",
    # Accounting
    "AccountType",
    "BalanceType",
    "DEFAULT_BALANCE_TYPES",
    "LEDGER_STATUSES",
    "default_balance_type",
    "JournalType",
    "JournalStatus",
    "WorkflowAction",
    "ChartOfAccounts",
    "CostCenter",
    "FiscalYear",
    "FiscalPeriod",
    "Journal",
    "JournalLine",
    "JournalWorkflow",
    "DocumentSequence",
]
