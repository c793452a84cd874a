"""
QLedger - Balance Service

Account balances derived on demand from ledger lines.

Only journals in the ledger (posted, or posted and later reversed) are
summed. Draft, submitted and approved journals never move a balance. A
reversed journal stays in the sum because its posted mirror offsets it.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.accounting import (
    BalanceType,
    ChartOfAccounts,
    Journal,
    JournalLine,
    LEDGER_STATUSES,
    default_balance_type,
)
from app.services.journal_service import to_money
from app.utils.error_handling import BusinessRuleException

logger = logging.getLogger(__name__)


def classify_balance(debit: Decimal, credit: Decimal, balance_type: Optional[BalanceType]) -> Dict[str, Any]:
    """Balance on the account's natural side, mirrored onto net_debit/net_credit."""
    debit, credit = to_money(debit), to_money(credit)
    is_debit_balance = balance_type == BalanceType.DEBIT
    balance = debit - credit if is_debit_balance else credit - debit
    zero = Decimal("0.00")
    return {
        "debit": debit,
        "credit": credit,
        "balance": balance,
        "net_debit": balance if is_debit_balance else zero,
        "net_credit": zero if is_debit_balance else balance,
        "balance_type": BalanceType.DEBIT if is_debit_balance else BalanceType.CREDIT,
    }


class BalanceService:
    """Service for account balance queries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(
        self,
        tenant_id: uuid.UUID,
        account_id: uuid.UUID,
        as_of_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Debit and credit totals of an account, optionally up to a date."""
        result = await self.db.execute(
            select(ChartOfAccounts.type, ChartOfAccounts.balance_type).where(
                ChartOfAccounts.id == account_id,
                ChartOfAccounts.tenant_id == tenant_id,
            )
        )
        account = result.first()
        if account is None:
            raise BusinessRuleException(
                message="Account not found",
                rule="ACCOUNT_EXISTS",
                details={"account_id": str(account_id)},
            )

        conditions = [
            JournalLine.account_id == account_id,
            JournalLine.tenant_id == tenant_id,
            Journal.tenant_id == tenant_id,
            Journal.status.in_(LEDGER_STATUSES),
        ]
        if as_of_date:
            conditions.append(Journal.transaction_date <= as_of_date)

        totals = await self.db.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .select_from(JournalLine)
            .join(Journal, Journal.id == JournalLine.journal_id)
            .where(and_(*conditions))
        )
        debit, credit = totals.one()

        balance_type = account.balance_type or default_balance_type(account.type)
        summary = classify_balance(debit, credit, balance_type)
        summary["account_id"] = account_id
        summary["as_of_date"] = as_of_date

        logger.debug(
            "Balance of account %s as of %s: %s %s",
            account_id, as_of_date or "now", summary["balance"], summary["balance_type"].value,
        )
        return summary
