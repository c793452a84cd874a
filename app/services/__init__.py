"""
QLedger - Services Package

Business logic services.
"""

from app.services.sequence_service import SequenceService
from app.services.tenant_service import TenantService
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.fiscal_period_service import FiscalPeriodService
from app.services.journal_service import JournalService
from app.services.balance_service import BalanceService

__all__ = [
    "SequenceService",
    "TenantService",
    "ChartOfAccountsService",
    "FiscalPeriodService",
    "JournalService",
    "BalanceService",
]
